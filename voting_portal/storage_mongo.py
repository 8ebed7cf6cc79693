# storage_mongo.py
import functools
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from voting_portal.cache import read_cache
from voting_portal.config import DEFAULT_ELECTION_TITLE, SETTINGS_DOCUMENT_ID
from voting_portal.database.connection import MongoConnector
from voting_portal.errors import BackendUnavailable, Conflict
from voting_portal.models.election_model import Candidate, ElectionSettings, Position
from voting_portal.models.vote_model import ElectionVote
from voting_portal.models.voter_model import VoterProfile

logger = logging.getLogger(__name__)

# Vote rows a submission has not finished are invisible to every read
COUNTED = {"counted": True}


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def backend_call(func):
    """Translate driver failures into BackendUnavailable."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PyMongoError as e:
            logger.error(f"Database error in {func.__name__}: {e}")
            raise BackendUnavailable() from e

    return wrapper


class ElectionStorage:
    """Row-level access to the election collections.

    Every write invalidates the read cache; vote counters are not written
    here (see ``voting_portal.procedures``).
    """

    @property
    def db(self) -> MongoConnector:
        return MongoConnector()

    # --- Voter profiles ---

    @backend_call
    def _votes_cast_by_voter(self, voter_ids: Optional[List[str]] = None) -> Dict[str, int]:
        match = dict(COUNTED)
        if voter_ids is not None:
            match["voter_id"] = {"$in": voter_ids}
        pipeline = [{"$match": match}]
        pipeline.append({"$group": {"_id": "$voter_id", "count": {"$sum": 1}}})
        return {row["_id"]: row["count"] for row in self.db.votes.aggregate(pipeline)}

    @backend_call
    def count_active_positions(self) -> int:
        return self.db.positions.count_documents({"is_active": True})

    def _to_profiles(self, docs: List[Dict[str, Any]]) -> List[VoterProfile]:
        if not docs:
            return []
        counts = self._votes_cast_by_voter([doc["_id"] for doc in docs])
        positions_total = self.count_active_positions()
        return [VoterProfile.from_doc(doc, counts.get(doc["_id"], 0), positions_total) for doc in docs]

    @backend_call
    def list_voters(self) -> List[VoterProfile]:
        docs = list(self.db.voters.find({}).sort([("first_name", ASCENDING), ("last_name", ASCENDING)]))
        profiles = self._to_profiles(docs)
        logger.info(f"Retrieved {len(profiles)} voter profiles")
        return profiles

    def _find_voter(self, query: Dict[str, Any]) -> Optional[VoterProfile]:
        doc = self.db.voters.find_one(query)
        if doc is None:
            return None
        return self._to_profiles([doc])[0]

    @backend_call
    def get_voter(self, voter_id: str) -> Optional[VoterProfile]:
        return self._find_voter({"_id": voter_id})

    @backend_call
    def get_voter_by_email(self, email: str) -> Optional[VoterProfile]:
        return self._find_voter({"email": email.lower()})

    @backend_call
    def get_voter_by_user_id(self, user_id: str) -> Optional[VoterProfile]:
        return self._find_voter({"user_id": user_id})

    @backend_call
    def count_eligible_voters(self) -> int:
        return self.db.voters.count_documents({"is_admin": False})

    @backend_call
    def insert_voter(self, voter_data: Dict[str, Any]) -> VoterProfile:
        doc = dict(voter_data)
        doc["_id"] = doc.get("_id") or new_id()
        doc["email"] = doc["email"].lower()
        doc.setdefault("is_admin", False)
        doc.setdefault("member_id", None)
        doc["created_at"] = utcnow()
        try:
            self.db.voters.insert_one(doc)
        except DuplicateKeyError:
            logger.warning(f"Voter profile for {doc['email']} already exists")
            raise Conflict(f"A voter profile for {doc['email']} already exists.")
        read_cache.invalidate()
        logger.info(f"Voter profile {doc['_id']} saved successfully")
        return VoterProfile.from_doc(doc, 0, self.count_active_positions())

    @backend_call
    def update_voter(self, voter_id: str, update_data: Dict[str, Any]) -> Optional[VoterProfile]:
        fields = dict(update_data)
        if "email" in fields:
            fields["email"] = fields["email"].lower()
        try:
            result = self.db.voters.update_one({"_id": voter_id}, {"$set": fields})
        except DuplicateKeyError:
            raise Conflict(f"Email {fields.get('email')} is already used by another voter.")
        if result.matched_count == 0:
            return None
        read_cache.invalidate()
        logger.info(f"Voter profile {voter_id} updated successfully")
        return self.get_voter(voter_id)

    @backend_call
    def delete_voter(self, voter_id: str) -> bool:
        result = self.db.voters.delete_one({"_id": voter_id})
        if result.deleted_count > 0:
            read_cache.invalidate()
            logger.info(f"Voter profile {voter_id} deleted successfully")
            return True
        return False

    # --- Login identities ---

    @backend_call
    def insert_identity(self, identity: Dict[str, Any]) -> Dict[str, Any]:
        doc = dict(identity)
        doc["_id"] = new_id()
        doc["email"] = doc["email"].lower()
        doc["created_at"] = utcnow()
        try:
            self.db.auth_users.insert_one(doc)
        except DuplicateKeyError:
            raise Conflict(f"A login for {doc['email']} already exists.")
        return doc

    @backend_call
    def get_identity(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.db.auth_users.find_one({"_id": user_id})

    @backend_call
    def get_identity_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.db.auth_users.find_one({"email": email.lower()})

    @backend_call
    def update_identity(self, user_id: str, update_data: Dict[str, Any]) -> bool:
        fields = dict(update_data)
        if "email" in fields:
            fields["email"] = fields["email"].lower()
        try:
            result = self.db.auth_users.update_one({"_id": user_id}, {"$set": fields})
        except DuplicateKeyError:
            raise Conflict(f"A login for {fields.get('email')} already exists.")
        return result.matched_count > 0

    @backend_call
    def delete_identity(self, user_id: str) -> bool:
        return self.db.auth_users.delete_one({"_id": user_id}).deleted_count > 0

    # --- Positions ---

    @backend_call
    def list_positions(self) -> List[Position]:
        return [Position.from_doc(doc) for doc in self.db.positions.find({}).sort("order_index", ASCENDING)]

    @backend_call
    def get_position(self, position_id: str) -> Optional[Position]:
        doc = self.db.positions.find_one({"_id": position_id})
        return Position.from_doc(doc) if doc else None

    @backend_call
    def insert_position(self, position_data: Dict[str, Any]) -> Position:
        doc = dict(position_data, _id=new_id(), created_at=utcnow())
        self.db.positions.insert_one(doc)
        read_cache.invalidate()
        logger.info(f"Position {doc['title']!r} created")
        return Position.from_doc(doc)

    # --- Candidates ---

    @backend_call
    def list_candidates(self, position_id: Optional[str] = None) -> List[Candidate]:
        query = {"position_id": position_id} if position_id else {}
        cursor = self.db.candidates.find(query).sort([("first_name", ASCENDING), ("last_name", ASCENDING)])
        return [Candidate.from_doc(doc) for doc in cursor]

    @backend_call
    def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        doc = self.db.candidates.find_one({"_id": candidate_id})
        return Candidate.from_doc(doc) if doc else None

    @backend_call
    def insert_candidate(self, candidate_data: Dict[str, Any]) -> Candidate:
        doc = dict(candidate_data, _id=new_id(), vote_count=0, counted_vote_ids=[], created_at=utcnow())
        self.db.candidates.insert_one(doc)
        read_cache.invalidate()
        logger.info(f"Candidate {doc['first_name']} {doc['last_name']} created")
        return Candidate.from_doc(doc)

    @backend_call
    def update_candidate(self, candidate_id: str, update_data: Dict[str, Any]) -> Optional[Candidate]:
        fields = {k: v for k, v in update_data.items() if k not in ("vote_count", "counted_vote_ids")}
        doc = self.db.candidates.find_one_and_update(
            {"_id": candidate_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        read_cache.invalidate()
        logger.info(f"Candidate {candidate_id} updated")
        return Candidate.from_doc(doc)

    @backend_call
    def delete_candidate(self, candidate_id: str) -> bool:
        if self.db.votes.count_documents({"candidate_id": candidate_id}) > 0:
            raise Conflict("Votes have been cast for this candidate; clear the votes before deleting.")
        result = self.db.candidates.delete_one({"_id": candidate_id})
        if result.deleted_count == 0:
            return False
        read_cache.invalidate()
        logger.info(f"Candidate {candidate_id} deleted")
        return True

    # --- Election settings ---

    @staticmethod
    def default_settings() -> ElectionSettings:
        return ElectionSettings(
            id=SETTINGS_DOCUMENT_ID,
            is_voting_open=False,
            election_title=DEFAULT_ELECTION_TITLE,
        )

    @backend_call
    def get_settings(self) -> ElectionSettings:
        doc = self.db.settings.find_one({"_id": SETTINGS_DOCUMENT_ID})
        return ElectionSettings.from_doc(doc) if doc else self.default_settings()

    @backend_call
    def save_settings(self, update_data: Dict[str, Any], updated_by: Optional[str] = None) -> ElectionSettings:
        """Create or update the settings singleton; the last write wins."""
        fields = dict(update_data, updated_at=utcnow(), updated_by=updated_by)
        on_insert = {} if "election_title" in fields else {"election_title": DEFAULT_ELECTION_TITLE}
        if "is_voting_open" not in fields:
            on_insert["is_voting_open"] = False
        update = {"$set": fields, "$inc": {"version": 1}}
        if on_insert:
            update["$setOnInsert"] = on_insert
        doc = self.db.settings.find_one_and_update(
            {"_id": SETTINGS_DOCUMENT_ID},
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        read_cache.invalidate()
        logger.info(f"Election settings saved (version {doc.get('version')}) by {updated_by}")
        return ElectionSettings.from_doc(doc)

    # --- Votes ---

    @backend_call
    def list_votes_for_voter(self, voter_id: str) -> List[ElectionVote]:
        return [ElectionVote.from_doc(doc) for doc in self.db.votes.find(dict(COUNTED, voter_id=voter_id))]


# Create singleton instance
storage = ElectionStorage()
