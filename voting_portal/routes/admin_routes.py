import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from voting_portal import procedures
from voting_portal.crud import create_voter_account, update_voter_account
from voting_portal.election_state import AdminDashboard, load_admin_dashboard
from voting_portal.errors import BackendUnavailable, NotFound, PortalError
from voting_portal.inflight import guard
from voting_portal.models.election_model import (
    Candidate,
    CandidateCreate,
    CandidateUpdate,
    ElectionSettings,
    Position,
    PositionCreate,
    SettingsUpdate,
)
from voting_portal.models.voter_model import VoterProfile
from voting_portal.schemas import OperationResult, VoterCreate, VoterUpdate
from voting_portal.security import require_admin
from voting_portal.storage_mongo import storage

logger = logging.getLogger(__name__)

# The three account/reset endpoints the admin screens call directly
api_router = APIRouter(prefix="/api", tags=["Admin API"])
router = APIRouter(prefix="/admin", tags=["Administration"])


@api_router.post("/clear-votes")
def clear_votes(admin: VoterProfile = Depends(require_admin)):
    try:
        with guard.claim("clear-votes"):
            verification = procedures.clear_all_votes()
    except BackendUnavailable as e:
        logger.error(f"Clear votes failed, requested by {admin.email}: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    logger.info(f"All votes cleared by {admin.email}")
    return {
        "success": True,
        "message": "All votes cleared successfully",
        "verification": verification.model_dump(),
    }


@api_router.post("/create-voter")
def create_voter(payload: VoterCreate, admin: VoterProfile = Depends(require_admin)):
    try:
        profile = create_voter_account(payload)
    except BackendUnavailable:
        raise
    except PortalError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "user_id": profile.user_id, "voter": profile.model_dump(mode="json")}


@api_router.put("/update-voter")
def update_voter(payload: VoterUpdate, admin: VoterProfile = Depends(require_admin)):
    try:
        profile = update_voter_account(payload)
    except (BackendUnavailable, NotFound):
        raise
    except PortalError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "message": "Voter updated successfully", "voter": profile.model_dump(mode="json")}


# --- Dashboard ---

@router.get("/dashboard", response_model=AdminDashboard)
def dashboard(admin: VoterProfile = Depends(require_admin)):
    return load_admin_dashboard()


# --- Voters ---

@router.get("/voters", response_model=List[VoterProfile])
def list_voters(admin: VoterProfile = Depends(require_admin)):
    return storage.list_voters()


@router.delete("/voters/{email}", response_model=OperationResult)
def delete_voter(email: str, admin: VoterProfile = Depends(require_admin)):
    result = procedures.delete_voter_account(email)
    if not result.success:
        return JSONResponse(status_code=400, content=result.model_dump())
    return result


@router.post("/votes/release-pending")
def release_pending(admin: VoterProfile = Depends(require_admin)):
    released = procedures.release_pending_votes()
    logger.info(f"{released} pending votes released by {admin.email}")
    return {"success": True, "released": released}


# --- Positions ---

@router.get("/positions", response_model=List[Position])
def list_positions(admin: VoterProfile = Depends(require_admin)):
    return storage.list_positions()


@router.post("/positions", response_model=Position, status_code=201)
def create_position(payload: PositionCreate, admin: VoterProfile = Depends(require_admin)):
    return storage.insert_position(payload.model_dump())


# --- Candidates ---

@router.get("/candidates", response_model=List[Candidate])
def list_candidates(admin: VoterProfile = Depends(require_admin)):
    return storage.list_candidates()


@router.post("/candidates", response_model=Candidate, status_code=201)
def create_candidate(payload: CandidateCreate, admin: VoterProfile = Depends(require_admin)):
    if storage.get_position(payload.position_id) is None:
        raise HTTPException(status_code=404, detail="Position not found.")
    return storage.insert_candidate(payload.model_dump())


@router.put("/candidates/{candidate_id}", response_model=Candidate)
def update_candidate(candidate_id: str, payload: CandidateUpdate, admin: VoterProfile = Depends(require_admin)):
    fields = payload.model_dump(exclude_unset=True)
    if "position_id" in fields and storage.get_position(fields["position_id"]) is None:
        raise HTTPException(status_code=404, detail="Position not found.")
    updated = storage.update_candidate(candidate_id, fields)
    if updated is None:
        raise NotFound("Candidate not found.")
    return updated


@router.delete("/candidates/{candidate_id}", response_model=OperationResult)
def delete_candidate(candidate_id: str, admin: VoterProfile = Depends(require_admin)):
    if not storage.delete_candidate(candidate_id):
        raise NotFound("Candidate not found.")
    return OperationResult(success=True, message="Candidate deleted successfully.")


# --- Settings ---

@router.get("/settings", response_model=ElectionSettings)
def get_settings(admin: VoterProfile = Depends(require_admin)):
    return storage.get_settings()


@router.put("/settings", response_model=ElectionSettings)
def update_settings(payload: SettingsUpdate, admin: VoterProfile = Depends(require_admin)):
    fields = payload.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No settings to update.")
    return storage.save_settings(fields, updated_by=admin.email)


@router.post("/settings/toggle", response_model=ElectionSettings)
def toggle_voting(admin: VoterProfile = Depends(require_admin)):
    current = storage.get_settings()
    settings = storage.save_settings({"is_voting_open": not current.is_voting_open}, updated_by=admin.email)
    logger.info(f"Voting {'opened' if settings.is_voting_open else 'closed'} by {admin.email}")
    return settings
