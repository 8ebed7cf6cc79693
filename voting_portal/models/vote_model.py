from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Vote(BaseModel):
    position_id: str
    candidate_id: Optional[str] = None  # None means abstain


class ElectionVote(BaseModel):
    id: str
    voter_id: str
    position_id: str
    candidate_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "ElectionVote":
        return cls(id=doc["_id"], **{k: v for k, v in doc.items() if k != "_id"})

    @property
    def is_abstain(self) -> bool:
        return self.candidate_id is None


class VoteOutcome(str, Enum):
    OK = "ok"
    ALREADY_VOTED = "already_voted"
    VOTING_CLOSED = "voting_closed"
    VALIDATION_ERROR = "validation_error"


class VoteResult(BaseModel):
    success: bool
    outcome: VoteOutcome
    error: Optional[str] = None
    vote: Optional[ElectionVote] = None
    has_voted: bool = False
    votes_cast: int = 0
    ballot_complete: bool = False

    @classmethod
    def failed(cls, outcome: VoteOutcome, error: str) -> "VoteResult":
        return cls(success=False, outcome=outcome, error=error)
