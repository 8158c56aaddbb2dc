from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import logging
import os
from models import UserRole

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))

def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Sign a JWT with an exp claim (default JWT_EXPIRATION_HOURS)."""
    issued_at = datetime.now(timezone.utc)
    claims = {
        **data,
        "iat": issued_at,
        "exp": issued_at + (expires_delta or timedelta(hours=JWT_EXPIRATION_HOURS)),
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)

def create_user_token(user_id: str, email: Optional[str] = None, role: UserRole = UserRole.USER) -> str:
    """Access token carrying the claims the assistant routes read."""
    return create_access_token({"user_id": user_id, "email": email, "role": role.value})

def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify signature and expiry. Returns the claims or None."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected access token: {e}")
        return None

def user_from_claims(claims: Dict[str, Any]) -> Dict[str, Any]:
    """
    Reduce token claims to the user dict the assistant pipeline expects.

    Unknown roles fall back to a plain user so a malformed claim can never
    grant admin.
    """
    role = claims.get("role")
    if role not in {r.value for r in UserRole}:
        role = UserRole.USER.value
    return {
        "user_id": claims.get("user_id"),
        "email": claims.get("email"),
        "role": role,
    }
