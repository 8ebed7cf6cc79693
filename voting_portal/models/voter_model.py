from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr


class VoterProfile(BaseModel):
    id: str
    user_id: str
    email: EmailStr
    first_name: str
    last_name: str
    member_id: Optional[str] = None
    is_admin: bool = False
    # Derived from election_votes on every read, never stored
    has_voted: bool = False
    votes_cast: int = 0
    ballot_complete: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict, votes_cast: int = 0, positions_total: int = 0) -> "VoterProfile":
        data = {k: v for k, v in doc.items() if k not in ("_id", "has_voted", "votes_cast", "ballot_complete")}
        return cls(
            id=doc["_id"],
            has_voted=votes_cast > 0,
            votes_cast=votes_cast,
            ballot_complete=positions_total > 0 and votes_cast >= positions_total,
            **data,
        )
