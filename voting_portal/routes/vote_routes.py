import logging
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from voting_portal import procedures
from voting_portal.errors import AlreadyVoted, ValidationError, VotingClosed
from voting_portal.inflight import guard
from voting_portal.models.vote_model import ElectionVote, Vote, VoteOutcome, VoteResult
from voting_portal.models.voter_model import VoterProfile
from voting_portal.security import get_current_profile
from voting_portal.storage_mongo import storage

logger = logging.getLogger(__name__)

vote_router = APIRouter(prefix="/vote", tags=["Vote"])

FAILURE_STATUS = {
    VoteOutcome.ALREADY_VOTED: AlreadyVoted.status_code,
    VoteOutcome.VOTING_CLOSED: VotingClosed.status_code,
    VoteOutcome.VALIDATION_ERROR: ValidationError.status_code,
}


@vote_router.post("/cast", response_model=VoteResult)
def cast_vote(vote: Vote, profile: VoterProfile = Depends(get_current_profile)):
    """
    Casts one ballot choice for the signed-in voter.
    A null candidate_id records an abstention for the position.
    """
    with guard.claim(f"vote:{profile.id}:{vote.position_id}"):
        result = procedures.submit_vote(profile.id, vote.position_id, vote.candidate_id)

    if not result.success:
        return JSONResponse(status_code=FAILURE_STATUS[result.outcome], content=result.model_dump(mode="json"))
    return result


@vote_router.get("/mine", response_model=List[ElectionVote])
def my_votes(profile: VoterProfile = Depends(get_current_profile)):
    return storage.list_votes_for_voter(profile.id)
