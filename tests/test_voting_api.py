from conftest import auth_header, set_voting_open
from voting_portal.errors import BackendUnavailable
from voting_portal.storage_mongo import storage


def test_login_returns_token_and_profile(client, voter):
    rv = client.post("/auth/login", data={"email": "juan@chapter.org", "password": "voter-pass"})
    assert rv.status_code == 200
    body = rv.json()
    assert body["token_type"] == "bearer"
    assert body["profile"]["email"] == "juan@chapter.org"

    rv = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert rv.status_code == 200
    assert rv.json()["has_voted"] is False


def test_login_rejects_wrong_password(client, voter):
    rv = client.post("/auth/login", data={"email": "juan@chapter.org", "password": "nope"})
    assert rv.status_code == 401
    assert rv.json()["code"] == "authentication_failure"


def test_endpoints_require_a_token(client, db):
    assert client.get("/election").status_code == 401
    assert client.post("/vote/cast", json={"position_id": "x"}).status_code == 401
    assert client.get("/election", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_election_snapshot_is_live(client, voter, ballot):
    set_voting_open()
    rv = client.get("/election", headers=auth_header(voter))
    assert rv.status_code == 200
    body = rv.json()
    assert body["mode"] == "live"
    assert body["settings"]["is_voting_open"] is True
    assert [p["title"] for p in body["positions"]] == ["President", "Treasurer"]
    treasurer = body["positions"][1]
    assert [c["first_name"] for c in treasurer["candidates"]] == ["Evelyn", "Mairie"]
    assert treasurer["user_vote"] is None
    assert body["total_eligible_voters"] == 1
    assert body["voter"]["email"] == "juan@chapter.org"


def test_cast_vote_then_duplicate(client, voter, ballot):
    set_voting_open()
    headers = auth_header(voter)
    payload = {"position_id": ballot["treasurer"], "candidate_id": ballot["mairie"]}

    rv = client.post("/vote/cast", json=payload, headers=headers)
    assert rv.status_code == 200
    assert rv.json()["outcome"] == "ok"
    assert rv.json()["has_voted"] is True

    rv = client.post("/vote/cast", json=payload, headers=headers)
    assert rv.status_code == 409
    assert rv.json()["outcome"] == "already_voted"
    assert storage.get_candidate(ballot["mairie"]).vote_count == 1

    body = client.get("/election", headers=headers).json()
    treasurer = body["positions"][1]
    assert treasurer["user_vote"]["candidate_id"] == ballot["mairie"]
    assert treasurer["total_votes"] == 1
    assert len(client.get("/vote/mine", headers=headers).json()) == 1


def test_cast_vote_while_closed(client, voter, ballot):
    rv = client.post(
        "/vote/cast",
        json={"position_id": ballot["president"], "candidate_id": ballot["aileen"]},
        headers=auth_header(voter),
    )
    assert rv.status_code == 403
    assert rv.json()["outcome"] == "voting_closed"
    assert storage.get_candidate(ballot["aileen"]).vote_count == 0


def test_abstain_and_invalid_candidate(client, voter, ballot):
    set_voting_open()
    headers = auth_header(voter)

    rv = client.post("/vote/cast", json={"position_id": ballot["president"], "candidate_id": None}, headers=headers)
    assert rv.status_code == 200
    assert rv.json()["vote"]["candidate_id"] is None

    rv = client.post("/vote/cast", json={"position_id": ballot["treasurer"], "candidate_id": ballot["aileen"]}, headers=headers)
    assert rv.status_code == 422
    assert rv.json()["outcome"] == "validation_error"


def test_results_after_votes(client, voter, ballot):
    set_voting_open()
    headers = auth_header(voter)
    client.post("/vote/cast", json={"position_id": ballot["president"], "candidate_id": ballot["aileen"]}, headers=headers)

    rv = client.get("/election/results", headers=headers)
    assert rv.status_code == 200
    assert rv.json()["mode"] == "live"
    president = rv.json()["results"][0]
    assert president["title"] == "President"
    assert president["total_votes"] == 1
    assert president["participation_rate"] == 100
    assert president["winner_id"] == ballot["aileen"]


def test_snapshot_degrades_to_static_data(client, voter, ballot, monkeypatch):
    headers = auth_header(voter)

    def unavailable():
        raise BackendUnavailable()

    monkeypatch.setattr(storage, "get_settings", unavailable)
    rv = client.get("/election", headers=headers)

    assert rv.status_code == 200
    body = rv.json()
    assert body["mode"] == "degraded"
    assert body["reason"]
    assert body["settings"]["is_voting_open"] is False
    assert body["positions"][0]["title"] == "President"
    assert all(p["user_vote"] is None for p in body["positions"])


def test_health(client, db):
    rv = client.get("/health")
    assert rv.status_code == 200
    assert rv.json()["status"] in ("excellent", "good", "slow")


def test_results_are_tagged_degraded_when_database_is_down(client, voter, ballot, monkeypatch):
    headers = auth_header(voter)

    def unavailable():
        raise BackendUnavailable("connection refused")

    monkeypatch.setattr(storage, "get_settings", unavailable)
    rv = client.get("/election/results", headers=headers)

    assert rv.status_code == 200
    body = rv.json()
    assert body["mode"] == "degraded"
    assert body["reason"] == "connection refused"
    assert body["results"][0]["title"] == "President"
    assert all(r["total_votes"] == 0 for r in body["results"])
