from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from voting_portal.config import MIN_PASSWORD_LENGTH
from voting_portal.models.voter_model import VoterProfile


class VoterCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    member_id: Optional[str] = None


class VoterUpdate(BaseModel):
    voter_id: str
    email: EmailStr
    # Blank means "keep the current password"
    password: Optional[str] = None
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    member_id: Optional[str] = None

    @field_validator("password")
    @classmethod
    def blank_or_long_enough(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        return value


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile: VoterProfile


class ClearVotesVerification(BaseModel):
    remaining_votes: int
    voters_who_voted: int
    total_candidate_votes: int


class OperationResult(BaseModel):
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
