"""Election procedures.

These functions are the only code that writes ``election_votes`` and the
only code that changes ``Candidate.vote_count``.

A vote is recorded in three steps: insert the row as pending, increment the
candidate counter, mark the row counted. On a replica set the three steps
run in one transaction together with the voting-open check, so either all
of them happen or none. On a standalone server each step is recoverable on
its own:

* the unique ``(voter_id, position_id)`` index lets only one row exist;
* the increment is guarded by ``counted_vote_ids`` on the candidate, so it
  is applied at most once per vote row;
* reads only see counted rows, and a pending row left behind by a failure
  is released (counter restored, row removed) on the voter's next attempt.
"""
import logging
from typing import Any, Dict, Optional

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from voting_portal.cache import read_cache
from voting_portal.config import SETTINGS_DOCUMENT_ID
from voting_portal.database.connection import MongoConnector
from voting_portal.inflight import KeyedLock
from voting_portal.models.vote_model import ElectionVote, VoteOutcome, VoteResult
from voting_portal.schemas import ClearVotesVerification, OperationResult
from voting_portal.storage_mongo import COUNTED, backend_call, new_id, storage, utcnow

logger = logging.getLogger(__name__)

_ballot_locks = KeyedLock()


def _ballot_state(voter_id: str):
    db = MongoConnector()
    votes_cast = db.votes.count_documents(dict(COUNTED, voter_id=voter_id))
    positions_total = db.positions.count_documents({"is_active": True})
    return votes_cast, positions_total


def _release_vote(db: MongoConnector, vote_doc: Dict[str, Any], session=None):
    """Take back an uncounted vote: restore the counter if it moved, then drop the row."""
    if vote_doc.get("candidate_id") is not None:
        db.candidates.update_one(
            {"_id": vote_doc["candidate_id"], "counted_vote_ids": vote_doc["_id"]},
            {"$inc": {"vote_count": -1}, "$pull": {"counted_vote_ids": vote_doc["_id"]}},
            session=session,
        )
    db.votes.delete_one({"_id": vote_doc["_id"], "counted": False}, session=session)


def _record_vote(session, voter_id: str, position_id: str, candidate_id: Optional[str]) -> VoteResult:
    db = MongoConnector()

    settings = db.settings.find_one({"_id": SETTINGS_DOCUMENT_ID}, session=session)
    if not settings or not settings.get("is_voting_open"):
        logger.warning(f"Vote rejected for voter {voter_id}: voting is closed")
        return VoteResult.failed(VoteOutcome.VOTING_CLOSED, "Voting is currently closed.")

    voter = db.voters.find_one({"_id": voter_id}, session=session)
    if voter is None:
        return VoteResult.failed(VoteOutcome.VALIDATION_ERROR, "Voter not found.")
    if voter.get("is_admin"):
        return VoteResult.failed(VoteOutcome.VALIDATION_ERROR, "Administrator accounts cannot cast ballots.")

    position = db.positions.find_one({"_id": position_id}, session=session)
    if position is None or not position.get("is_active", True):
        return VoteResult.failed(VoteOutcome.VALIDATION_ERROR, "Position not found.")

    if candidate_id is not None:
        candidate = db.candidates.find_one({"_id": candidate_id, "position_id": position_id}, session=session)
        if candidate is None or not candidate.get("is_active", True):
            return VoteResult.failed(VoteOutcome.VALIDATION_ERROR, "Candidate is not running for this position.")

    existing = db.votes.find_one({"voter_id": voter_id, "position_id": position_id}, session=session)
    if existing is not None:
        if existing.get("counted", True):
            return VoteResult.failed(VoteOutcome.ALREADY_VOTED, "You have already voted for this position.")
        logger.warning(f"Releasing interrupted vote {existing['_id']} of voter {voter_id}")
        _release_vote(db, existing, session)

    vote_doc = {
        "_id": new_id(),
        "voter_id": voter_id,
        "position_id": position_id,
        "candidate_id": candidate_id,
        "counted": False,
        "created_at": utcnow(),
    }
    db.votes.insert_one(vote_doc, session=session)

    try:
        if candidate_id is not None:
            result = db.candidates.update_one(
                {"_id": candidate_id, "counted_vote_ids": {"$ne": vote_doc["_id"]}},
                {"$inc": {"vote_count": 1}, "$push": {"counted_vote_ids": vote_doc["_id"]}},
                session=session,
            )
            if result.matched_count == 0:
                _release_vote(db, vote_doc, session)
                return VoteResult.failed(VoteOutcome.VALIDATION_ERROR, "Candidate no longer exists.")
        marked = db.votes.update_one({"_id": vote_doc["_id"], "counted": False}, {"$set": {"counted": True}}, session=session)
        if marked.matched_count == 0:
            # Another attempt released this row first; it owns the ballot entry now
            _release_vote(db, vote_doc, session)
            return VoteResult.failed(VoteOutcome.ALREADY_VOTED, "You have already voted for this position.")
    except PyMongoError:
        if session is None:
            try:
                _release_vote(db, vote_doc)
            except PyMongoError as e:
                logger.error(f"Vote {vote_doc['_id']} left pending; it is released on the voter's next attempt: {e}")
        raise

    vote_doc["counted"] = True
    return VoteResult(success=True, outcome=VoteOutcome.OK, vote=ElectionVote.from_doc(vote_doc), has_voted=True)


@backend_call
def submit_vote(voter_id: str, position_id: str, candidate_id: Optional[str] = None) -> VoteResult:
    """Record one ballot choice; ``candidate_id=None`` records an abstention.

    Concurrent calls for the same voter and position are serialized in this
    process; across processes the unique index decides which one wins.
    """
    db = MongoConnector()
    with _ballot_locks.hold((voter_id, position_id)):
        try:
            result = db.run_in_transaction(
                lambda session: _record_vote(session, voter_id, position_id, candidate_id)
            )
        except DuplicateKeyError:
            logger.warning(f"Duplicate vote rejected for voter {voter_id} on position {position_id}")
            return VoteResult.failed(VoteOutcome.ALREADY_VOTED, "You have already voted for this position.")

    if not result.success:
        return result

    read_cache.invalidate()
    votes_cast, positions_total = _ballot_state(voter_id)
    logger.info(
        f"Vote recorded for voter {voter_id} on position {position_id} "
        f"({'abstain' if candidate_id is None else 'candidate ' + candidate_id})"
    )
    return result.model_copy(
        update={
            "votes_cast": votes_cast,
            "ballot_complete": positions_total > 0 and votes_cast >= positions_total,
        }
    )


@backend_call
def release_pending_votes() -> int:
    """Release every vote row a failed submission left uncounted."""
    db = MongoConnector()
    released = 0
    for vote_doc in list(db.votes.find({"counted": False})):
        with _ballot_locks.hold((vote_doc["voter_id"], vote_doc["position_id"])):
            if db.votes.find_one({"_id": vote_doc["_id"], "counted": False}) is None:
                continue
            _release_vote(db, vote_doc)
        released += 1
    if released:
        read_cache.invalidate()
        logger.info(f"Released {released} pending vote rows")
    return released


@backend_call
def get_abstain_votes_count(position_id: str) -> int:
    return MongoConnector().votes.count_documents(dict(COUNTED, position_id=position_id, candidate_id=None))


@backend_call
def get_total_votes_count(position_id: str) -> int:
    return MongoConnector().votes.count_documents(dict(COUNTED, position_id=position_id))


@backend_call
def clear_all_votes() -> ClearVotesVerification:
    """Reset the election: no votes, all counters at zero.

    ``has_voted`` is derived from the vote rows, so emptying them resets it
    for every voter. The counts are re-read afterwards as a sanity check.
    """
    db = MongoConnector()
    deleted = db.votes.delete_many({}).deleted_count
    db.candidates.update_many({}, {"$set": {"vote_count": 0, "counted_vote_ids": []}})
    read_cache.invalidate()

    non_admin_ids = [doc["_id"] for doc in db.voters.find({"is_admin": False}, {"_id": 1})]
    voted_ids = set(db.votes.distinct("voter_id"))
    total_candidate_votes = sum(doc.get("vote_count", 0) for doc in db.candidates.find({}, {"vote_count": 1}))
    verification = ClearVotesVerification(
        remaining_votes=db.votes.count_documents({}),
        voters_who_voted=len(voted_ids.intersection(non_admin_ids)),
        total_candidate_votes=total_candidate_votes,
    )
    logger.info(f"Votes cleared ({deleted} removed): {verification.model_dump()}")
    return verification


@backend_call
def delete_voter_account(email: str) -> OperationResult:
    """Remove a voter, their ballot entries, and their login."""
    db = MongoConnector()
    voter = db.voters.find_one({"email": email.lower()})
    if voter is None:
        return OperationResult(success=False, error=f"No voter with email {email}.")
    if voter.get("is_admin"):
        return OperationResult(success=False, error="Administrator accounts cannot be deleted here.")

    for vote in db.votes.find({"voter_id": voter["_id"]}):
        # Remove the row first so a counter is only ever decremented for a vote that is gone
        if db.votes.delete_one({"_id": vote["_id"]}).deleted_count and vote.get("candidate_id"):
            db.candidates.update_one(
                {"_id": vote["candidate_id"], "counted_vote_ids": vote["_id"]},
                {"$inc": {"vote_count": -1}, "$pull": {"counted_vote_ids": vote["_id"]}},
            )

    db.voters.delete_one({"_id": voter["_id"]})
    if voter.get("user_id"):
        db.auth_users.delete_one({"_id": voter["user_id"]})
    read_cache.invalidate()
    logger.info(f"Voter account {email} deleted")
    return OperationResult(success=True, message="Voter deleted successfully.")


@backend_call
def get_admin_dashboard_data() -> Dict[str, Any]:
    """Positions with their candidates in one round trip, plus voters and settings."""
    db = MongoConnector()
    pipeline = [
        {"$sort": {"order_index": ASCENDING}},
        {
            "$lookup": {
                "from": db.candidates.name,
                "localField": "_id",
                "foreignField": "position_id",
                "as": "candidates",
            }
        },
    ]
    positions = list(db.positions.aggregate(pipeline))
    candidates = []
    for position in positions:
        candidates.extend(position.pop("candidates", []))
    candidates.sort(key=lambda c: (c.get("first_name", ""), c.get("last_name", "")))
    return {
        "positions": positions,
        "candidates": candidates,
        "voters": storage.list_voters(),
        "settings": storage.get_settings(),
    }
