from datetime import datetime, timedelta, timezone

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from voting_portal.config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from voting_portal.errors import AuthenticationFailure, Forbidden
from voting_portal.models.voter_model import VoterProfile
from voting_portal.storage_mongo import storage

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


# Hash a password
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


# Verify a plain password against a hash
def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


# Create JWT access token
def create_access_token(data: dict, expires_delta: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_delta)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> str:
    """Return the identity id carried by ``token``."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthenticationFailure()
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationFailure()
    return user_id


def get_current_profile(token: str = Depends(oauth2_scheme)) -> VoterProfile:
    if not token:
        raise AuthenticationFailure("Not authenticated")
    profile = storage.get_voter_by_user_id(decode_access_token(token))
    if profile is None:
        raise AuthenticationFailure("No voter profile for this account")
    return profile


def require_admin(profile: VoterProfile = Depends(get_current_profile)) -> VoterProfile:
    if not profile.is_admin:
        raise Forbidden()
    return profile
