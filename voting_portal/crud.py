import logging
from typing import Optional, Tuple

from voting_portal.errors import BackendUnavailable, NotFound, PortalError
from voting_portal.models.voter_model import VoterProfile
from voting_portal.schemas import VoterCreate, VoterUpdate
from voting_portal.security import hash_password, verify_password
from voting_portal.storage_mongo import storage

logger = logging.getLogger(__name__)


# Create a login identity and its voter profile
def create_voter_account(data: VoterCreate, is_admin: bool = False) -> VoterProfile:
    identity = storage.insert_identity(
        {
            "email": data.email,
            "hashed_password": hash_password(data.password),
            "user_metadata": {
                "first_name": data.first_name,
                "last_name": data.last_name,
                "member_id": data.member_id,
                "is_admin": is_admin,
            },
        }
    )
    try:
        profile = storage.insert_voter(
            {
                "user_id": identity["_id"],
                "email": data.email,
                "first_name": data.first_name,
                "last_name": data.last_name,
                "member_id": data.member_id or None,
                "is_admin": is_admin,
            }
        )
    except PortalError:
        # If profile creation fails, delete the login so no orphan remains
        try:
            storage.delete_identity(identity["_id"])
        except BackendUnavailable:
            logger.error(f"Could not remove orphaned login {identity['_id']} for {data.email}")
        raise
    logger.info(f"Voter account created for {data.email} (admin={is_admin})")
    return profile


# Update the profile, then the login if the email changed or a password was given
def update_voter_account(data: VoterUpdate) -> VoterProfile:
    current = storage.get_voter(data.voter_id)
    if current is None:
        raise NotFound("Voter not found")

    profile = storage.update_voter(
        data.voter_id,
        {
            "email": data.email,
            "first_name": data.first_name,
            "last_name": data.last_name,
            "member_id": data.member_id or None,
        },
    )
    if profile is None:
        raise NotFound("Voter not found")

    auth_updates = {}
    if data.email.lower() != current.email.lower():
        auth_updates["email"] = data.email
    if data.password and data.password.strip():
        auth_updates["hashed_password"] = hash_password(data.password)
    if auth_updates:
        try:
            storage.update_identity(current.user_id, auth_updates)
        except PortalError:
            # Put the profile back so it keeps matching the unchanged login
            storage.update_voter(
                data.voter_id,
                {
                    "email": current.email,
                    "first_name": current.first_name,
                    "last_name": current.last_name,
                    "member_id": current.member_id,
                },
            )
            logger.error(f"Login update failed for voter {data.voter_id}; profile restored")
            raise
        logger.info(f"Login for voter {data.voter_id} updated ({', '.join(sorted(auth_updates))})")
    return profile


# Login
def login_voter(email: str, password: str) -> Tuple[Optional[VoterProfile], Optional[str]]:
    identity = storage.get_identity_by_email(email)
    if not identity or not verify_password(password, identity["hashed_password"]):
        return None, "Invalid email or password"

    profile = storage.get_voter_by_user_id(identity["_id"])
    if profile is None:
        return None, "No voter profile is linked to this account"
    return profile, None
