from typing import Optional

from fastapi import APIRouter, Depends

from voting_portal.election_state import ResultsView, load_election_snapshot, load_results
from voting_portal.models.election_model import ElectionSnapshot
from voting_portal.models.voter_model import VoterProfile
from voting_portal.security import get_current_profile

router = APIRouter(prefix="/election", tags=["Election"])


class VoterElectionView(ElectionSnapshot):
    voter: Optional[VoterProfile] = None


@router.get("", response_model=VoterElectionView)
def get_election(profile: VoterProfile = Depends(get_current_profile)):
    """
    Settings, positions with candidates, and the caller's own ballot entries.
    Served from the static dataset with mode="degraded" when the database is down.
    """
    snapshot = load_election_snapshot(profile)
    return VoterElectionView(**snapshot.model_dump(), voter=profile)


@router.get("/results", response_model=ResultsView)
def get_results(profile: VoterProfile = Depends(get_current_profile)):
    """Per-position tallies, tagged live or degraded like the election snapshot."""
    return load_results()
