from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class Position(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    order_index: int
    is_active: bool = True
    created_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "Position":
        return cls(id=doc["_id"], **{k: v for k, v in doc.items() if k != "_id"})


class PositionCreate(BaseModel):
    title: str = Field(..., min_length=1, examples=["Treasurer"])
    description: Optional[str] = None
    order_index: int = Field(..., ge=0, examples=[5])
    is_active: bool = True


class Candidate(BaseModel):
    id: str
    position_id: str
    first_name: str
    last_name: str
    platform: Optional[str] = None
    photo_url: Optional[str] = None
    vote_count: int = 0
    is_active: bool = True
    created_at: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> "Candidate":
        return cls(id=doc["_id"], **{k: v for k, v in doc.items() if k != "_id"})

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class CandidateCreate(BaseModel):
    position_id: str
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    platform: Optional[str] = None
    photo_url: Optional[str] = None
    is_active: bool = True


class CandidateUpdate(BaseModel):
    # vote_count is deliberately absent: only the vote procedures change it
    position_id: Optional[str] = None
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    platform: Optional[str] = None
    photo_url: Optional[str] = None
    is_active: Optional[bool] = None


class ElectionSettings(BaseModel):
    id: str
    is_voting_open: bool = False
    election_title: str
    voting_start_time: Optional[datetime] = None
    voting_end_time: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    version: int = 0

    @classmethod
    def from_doc(cls, doc: dict) -> "ElectionSettings":
        return cls(id=doc["_id"], **{k: v for k, v in doc.items() if k != "_id"})


class SettingsUpdate(BaseModel):
    is_voting_open: Optional[bool] = None
    election_title: Optional[str] = Field(None, min_length=1)
    voting_start_time: Optional[datetime] = None
    voting_end_time: Optional[datetime] = None


class PositionWithCandidates(Position):
    candidates: List[Candidate] = []
    user_vote: Optional[dict] = None
    abstain_count: int = 0
    total_votes: int = 0


class ElectionSnapshot(BaseModel):
    """What a voter sees: either live data or the static fallback dataset."""

    mode: Literal["live", "degraded"]
    reason: Optional[str] = None
    settings: ElectionSettings
    positions: List[PositionWithCandidates]
    total_eligible_voters: int = 0
