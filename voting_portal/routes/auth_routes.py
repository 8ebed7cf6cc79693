from fastapi import APIRouter, Depends, Form

from voting_portal.crud import login_voter
from voting_portal.errors import AuthenticationFailure
from voting_portal.models.voter_model import VoterProfile
from voting_portal.schemas import OperationResult, TokenOut
from voting_portal.security import create_access_token, get_current_profile

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=TokenOut)
def login(email: str = Form(...), password: str = Form(...)):
    profile, error = login_voter(email, password)
    if error:
        raise AuthenticationFailure(error)
    token = create_access_token({"sub": profile.user_id, "email": profile.email})
    return TokenOut(access_token=token, profile=profile)


@router.get("/me", response_model=VoterProfile)
def read_me(profile: VoterProfile = Depends(get_current_profile)):
    return profile


@router.post("/logout", response_model=OperationResult)
def logout(profile: VoterProfile = Depends(get_current_profile)):
    # Tokens are stateless; the client discards its copy
    return OperationResult(success=True, message=f"Logged out {profile.email}")
