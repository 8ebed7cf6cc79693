from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from pymongo.errors import AutoReconnect, OperationFailure

from conftest import add_candidate, add_position, add_voter, set_voting_open
from voting_portal import procedures
from voting_portal.database.connection import MongoConnector
from voting_portal.errors import BackendUnavailable
from voting_portal.models.vote_model import VoteOutcome
from voting_portal.storage_mongo import storage


def vote_count(db, candidate_id):
    return db.candidates.find_one({"_id": candidate_id})["vote_count"]


def test_submit_vote_records_row_and_increments_candidate(db, ballot):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()

    result = procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])

    assert result.success is True
    assert result.outcome == VoteOutcome.OK
    assert result.has_voted is True
    assert result.votes_cast == 1
    assert result.ballot_complete is False
    assert vote_count(db, ballot["aileen"]) == 1
    assert db.votes.count_documents({"voter_id": voter_id}) == 1


def test_same_vote_twice_counts_once(db, ballot):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()

    first = procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])
    second = procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])

    assert first.success is True
    assert second.success is False
    assert second.outcome == VoteOutcome.ALREADY_VOTED
    assert vote_count(db, ballot["aileen"]) == 1
    assert db.votes.count_documents({"voter_id": voter_id, "position_id": ballot["president"]}) == 1


def test_later_attempts_never_replace_the_first_accepted_vote(db, ballot):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()

    procedures.submit_vote(voter_id, ballot["treasurer"], ballot["mairie"])
    assert procedures.submit_vote(voter_id, ballot["treasurer"], ballot["evelyn"]).outcome == VoteOutcome.ALREADY_VOTED
    assert procedures.submit_vote(voter_id, ballot["treasurer"], None).outcome == VoteOutcome.ALREADY_VOTED

    rows = list(db.votes.find({"voter_id": voter_id, "position_id": ballot["treasurer"]}))
    assert len(rows) == 1
    assert rows[0]["candidate_id"] == ballot["mairie"]
    assert vote_count(db, ballot["mairie"]) == 1
    assert vote_count(db, ballot["evelyn"]) == 0


def test_closed_voting_leaves_no_trace(db, ballot):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open(False)

    result = procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])

    assert result.outcome == VoteOutcome.VOTING_CLOSED
    assert db.votes.count_documents({}) == 0
    assert vote_count(db, ballot["aileen"]) == 0


def test_voting_is_closed_until_settings_exist(db, ballot):
    voter_id = add_voter(db, "ana@chapter.org")

    result = procedures.submit_vote(voter_id, ballot["president"], None)

    assert result.outcome == VoteOutcome.VOTING_CLOSED


def test_abstain_counts_toward_totals_not_candidates(db, ballot):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()

    result = procedures.submit_vote(voter_id, ballot["treasurer"], None)

    assert result.success is True
    assert result.vote.is_abstain
    assert procedures.get_abstain_votes_count(ballot["treasurer"]) == 1
    assert procedures.get_total_votes_count(ballot["treasurer"]) == 1
    assert vote_count(db, ballot["mairie"]) == 0
    assert vote_count(db, ballot["evelyn"]) == 0


@pytest.mark.parametrize(
    "case",
    ["unknown voter", "unknown position", "candidate of another position", "admin voter"],
)
def test_invalid_submissions_are_validation_errors(db, ballot, case):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()
    args = {
        "unknown voter": ("nobody", ballot["president"], ballot["aileen"]),
        "unknown position": (voter_id, "no-such-position", None),
        "candidate of another position": (voter_id, ballot["president"], ballot["mairie"]),
        "admin voter": (add_voter(db, "boss@chapter.org", is_admin=True), ballot["president"], ballot["aileen"]),
    }[case]

    result = procedures.submit_vote(*args)

    assert result.outcome == VoteOutcome.VALIDATION_ERROR
    assert db.votes.count_documents({}) == 0


def connection_lost(*args, **kwargs):
    raise AutoReconnect("connection reset by peer")


def test_failed_increment_removes_the_vote_row(db, ballot, monkeypatch):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()
    original = db.candidates.update_one
    calls = []

    def first_call_fails(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise OperationFailure("write conflict")
        return original(*args, **kwargs)

    monkeypatch.setattr(db.candidates, "update_one", first_call_fails)

    with pytest.raises(BackendUnavailable):
        procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])

    assert db.votes.count_documents({}) == 0
    assert vote_count(db, ballot["aileen"]) == 0


def test_interrupted_vote_is_never_counted_and_can_be_retried(db, ballot, monkeypatch):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()
    monkeypatch.setattr(db.candidates, "update_one", connection_lost)
    monkeypatch.setattr(db.votes, "delete_one", connection_lost)

    with pytest.raises(BackendUnavailable):
        procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])

    assert vote_count(db, ballot["aileen"]) == 0
    assert procedures.get_total_votes_count(ballot["president"]) == 0
    assert storage.get_voter(voter_id).has_voted is False
    assert storage.list_votes_for_voter(voter_id) == []

    monkeypatch.undo()
    result = procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])

    assert result.outcome == VoteOutcome.OK
    assert db.votes.count_documents({"voter_id": voter_id}) == 1
    assert vote_count(db, ballot["aileen"]) == 1


def test_release_pending_votes_restores_counters(db, ballot, monkeypatch):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()
    original = db.candidates.update_one
    calls = []

    def only_the_increment_succeeds(*args, **kwargs):
        calls.append(args)
        if len(calls) > 1:
            raise AutoReconnect("connection reset by peer")
        return original(*args, **kwargs)

    monkeypatch.setattr(db.candidates, "update_one", only_the_increment_succeeds)
    monkeypatch.setattr(db.votes, "update_one", connection_lost)

    with pytest.raises(BackendUnavailable):
        procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])

    assert vote_count(db, ballot["aileen"]) == 1
    assert procedures.get_total_votes_count(ballot["president"]) == 0

    monkeypatch.undo()
    assert procedures.release_pending_votes() == 1

    assert vote_count(db, ballot["aileen"]) == 0
    assert db.votes.count_documents({}) == 0
    assert procedures.release_pending_votes() == 0


def test_concurrent_attempts_record_exactly_one_vote(db, ballot):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()
    choices = [ballot["mairie"], ballot["evelyn"], None] * 4

    with ThreadPoolExecutor(max_workers=len(choices)) as pool:
        results = list(pool.map(lambda choice: procedures.submit_vote(voter_id, ballot["treasurer"], choice), choices))

    accepted = [r for r in results if r.outcome == VoteOutcome.OK]
    assert len(accepted) == 1
    assert [r.outcome for r in results].count(VoteOutcome.ALREADY_VOTED) == len(choices) - 1

    rows = list(db.votes.find({"voter_id": voter_id, "position_id": ballot["treasurer"]}))
    assert len(rows) == 1
    assert rows[0]["candidate_id"] == accepted[0].vote.candidate_id
    assert vote_count(db, ballot["mairie"]) + vote_count(db, ballot["evelyn"]) == (
        0 if accepted[0].vote.is_abstain else 1
    )


def test_closed_voting_is_reported_before_validation(db, ballot):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open(False)

    assert procedures.submit_vote(voter_id, ballot["president"], "no-such-candidate").outcome == VoteOutcome.VOTING_CLOSED
    assert procedures.submit_vote("nobody", "no-such-position", None).outcome == VoteOutcome.VOTING_CLOSED


def transactional_connector():
    connector = MongoConnector._build(MagicMock(), "voting_portal_test", transactions=True)
    for name in ("voters", "positions", "candidates", "votes", "settings"):
        setattr(connector, name, MagicMock())
    connector.settings.find_one.return_value = {"_id": "election_settings", "is_voting_open": True}
    connector.voters.find_one.return_value = {"_id": "v1", "is_admin": False}
    connector.positions.find_one.return_value = {"_id": "p1", "is_active": True}
    connector.candidates.find_one.return_value = {"_id": "c1", "position_id": "p1", "is_active": True}
    connector.votes.find_one.return_value = None
    connector.candidates.update_one.return_value.matched_count = 1
    connector.votes.update_one.return_value.matched_count = 1
    connector.votes.count_documents.return_value = 1
    connector.positions.count_documents.return_value = 2
    session = connector.client.start_session.return_value.__enter__.return_value
    session.with_transaction.side_effect = lambda callback: callback(session)
    return connector, session


def test_vote_runs_in_one_transaction_when_supported(monkeypatch):
    connector, session = transactional_connector()
    monkeypatch.setattr(MongoConnector, "_instance", connector)

    result = procedures.submit_vote("v1", "p1", "c1")

    assert result.outcome == VoteOutcome.OK
    session.with_transaction.assert_called_once()
    for call in (
        connector.settings.find_one.call_args,
        connector.votes.find_one.call_args,
        connector.votes.insert_one.call_args,
        connector.candidates.update_one.call_args,
        connector.votes.update_one.call_args,
    ):
        assert call.kwargs["session"] is session


def test_transaction_support_is_detected_from_the_server():
    client = MagicMock()
    client.admin.command.return_value = {"isWritablePrimary": True, "setName": "rs0"}
    assert MongoConnector._build(client, "x").supports_transactions is True

    client = MagicMock()
    client.admin.command.return_value = {"isWritablePrimary": True}
    standalone = MongoConnector._build(client, "x")
    assert standalone.supports_transactions is False
    assert standalone.run_in_transaction(lambda session: session) is None
    client.start_session.assert_not_called()


def test_ballot_complete_after_every_position(db, ballot):
    voter_id = add_voter(db, "ana@chapter.org")
    set_voting_open()

    procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])
    result = procedures.submit_vote(voter_id, ballot["treasurer"], None)

    assert result.votes_cast == 2
    assert result.ballot_complete is True
    profile = storage.get_voter(voter_id)
    assert profile.has_voted is True
    assert profile.ballot_complete is True


def test_treasurer_scenario(db):
    treasurer = add_position(db, "Treasurer", 5)
    first = add_candidate(db, treasurer, "Ana", "Reyes", vote_count=3)
    second = add_candidate(db, treasurer, "Ben", "Santos", vote_count=5)
    set_voting_open()

    result = procedures.submit_vote(add_voter(db, "ana@chapter.org"), treasurer, second)

    assert result.success is True
    assert vote_count(db, first) == 3
    assert vote_count(db, second) == 6
    assert vote_count(db, first) + vote_count(db, second) == 9

    procedures.submit_vote(add_voter(db, "carl@chapter.org"), treasurer, None)
    assert procedures.get_abstain_votes_count(treasurer) == 1
    assert vote_count(db, first) + vote_count(db, second) + procedures.get_abstain_votes_count(treasurer) == 10


def test_clear_all_votes_resets_everything(db, ballot):
    set_voting_open()
    voters = [add_voter(db, f"member{i}@chapter.org") for i in range(3)]
    admin_id = add_voter(db, "boss@chapter.org", is_admin=True)
    for voter_id in voters:
        procedures.submit_vote(voter_id, ballot["president"], ballot["aileen"])
        procedures.submit_vote(voter_id, ballot["treasurer"], ballot["mairie"])

    verification = procedures.clear_all_votes()

    assert verification.remaining_votes == 0
    assert verification.voters_who_voted == 0
    assert verification.total_candidate_votes == 0
    assert db.votes.count_documents({}) == 0
    assert all(doc["vote_count"] == 0 for doc in db.candidates.find({}))
    for profile in storage.list_voters():
        assert profile.has_voted is False
    assert storage.get_voter(admin_id).is_admin is True


def test_clear_all_votes_reports_backend_failure(db, monkeypatch):
    def broken_delete(*args, **kwargs):
        raise OperationFailure("not primary")

    monkeypatch.setattr(db.votes, "delete_many", broken_delete)

    with pytest.raises(BackendUnavailable):
        procedures.clear_all_votes()


def test_delete_voter_account_removes_votes_and_counts(db, ballot):
    set_voting_open()
    keep = add_voter(db, "keep@chapter.org")
    gone = add_voter(db, "gone@chapter.org")
    procedures.submit_vote(keep, ballot["president"], ballot["aileen"])
    procedures.submit_vote(gone, ballot["president"], ballot["aileen"])
    procedures.submit_vote(gone, ballot["treasurer"], None)

    result = procedures.delete_voter_account("gone@chapter.org")

    assert result.success is True
    assert vote_count(db, ballot["aileen"]) == 1
    assert db.votes.count_documents({"voter_id": gone}) == 0
    assert db.voters.find_one({"_id": gone}) is None
    assert db.votes.count_documents({"voter_id": keep}) == 1


def test_delete_voter_account_refuses_unknown_and_admin(db):
    add_voter(db, "boss@chapter.org", is_admin=True)

    assert procedures.delete_voter_account("nobody@chapter.org").success is False
    result = procedures.delete_voter_account("boss@chapter.org")
    assert result.success is False
    assert db.voters.count_documents({}) == 1


def test_dashboard_bulk_read_groups_candidates_by_position(db, ballot):
    data = procedures.get_admin_dashboard_data()

    assert [p["title"] for p in data["positions"]] == ["President", "Treasurer"]
    assert [c["first_name"] for c in data["candidates"]] == ["Aileen", "Evelyn", "Mairie"]
    assert data["settings"].is_voting_open is False
