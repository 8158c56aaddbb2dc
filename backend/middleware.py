from fastapi import Request, HTTPException, status
from typing import Optional
import logging
from auth import decode_access_token, user_from_claims

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "

def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization") or ""
    if not auth_header.startswith(BEARER_PREFIX):
        return None
    token = auth_header[len(BEARER_PREFIX):].strip()
    return token or None

async def get_current_user(request: Request) -> Optional[dict]:
    """Authenticated user from the bearer token, or None."""
    token = _bearer_token(request)
    if not token:
        return None

    claims = decode_access_token(token)
    if not claims:
        return None

    return user_from_claims(claims)

async def assistant_route_guard(request: Request) -> dict:
    """
    Guard for assistant routes.

    401 "Not authenticated" when the token is missing, expired or forged;
    401 "Invalid token" when it verifies but names no user.
    """
    user = await get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )

    if not user.get("user_id"):
        logger.warning(f"Token without user_id rejected on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )
    return user
