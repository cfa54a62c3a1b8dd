"""
assessment_engine/security/principal.py
Bearer-token principal extraction.

Token issuance belongs to the platform's auth service; the engine only
verifies the signature and reads the owner id from the `sub` claim.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from assessment_engine.config import settings
from assessment_engine.errors import UnauthorizedError, ErrorCode

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 30

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    owner_id: str


# ================= TOKEN UTILS =================

def create_access_token(owner_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token for an owner (used by tests and local tooling)"""
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": str(owner_id),
        "exp": expire,
        "type": "access"
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT; None when invalid or expired"""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


# ================= AUTH DEPENDENCIES =================

async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Principal:
    """
    Resolve the calling principal from the Authorization header.
    Raises 401 if the token is missing, invalid or expired.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()

    payload = decode_token(credentials.credentials)
    if not payload:
        raise UnauthorizedError("Invalid or expired token", code=ErrorCode.AUTH_INVALID)

    if payload.get("type", "access") != "access":
        raise UnauthorizedError("Invalid or expired token", code=ErrorCode.AUTH_INVALID)

    owner_id = payload.get("sub")
    if not owner_id:
        logger.warning("Token without subject rejected")
        raise UnauthorizedError("Invalid or expired token", code=ErrorCode.AUTH_INVALID)

    return Principal(owner_id=str(owner_id))
