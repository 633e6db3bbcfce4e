"""
Bearer token authentication for video streaming and download
"""

from fastapi import Security, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import Optional
import hashlib
import hmac
from config import settings

bearer_scheme = HTTPBearer(auto_error=False)


def check_api_key(api_key: str) -> bool:
    """
    Verify a token against WORKER_API_KEY

    Supports:
    - Multiple keys (comma-separated)
    - Hashed keys ("hash:<sha256 hex>") for storing keys in env vars
    """
    configured_key = settings.WORKER_API_KEY
    if not configured_key or not api_key:
        return False

    valid_keys = [key.strip() for key in configured_key.split(",") if key.strip()]

    for valid_key in valid_keys:
        if valid_key.startswith("hash:"):
            provided_hash = hashlib.sha256(api_key.encode()).hexdigest()
            if hmac.compare_digest(valid_key[5:], provided_hash):
                return True
        elif hmac.compare_digest(valid_key, api_key):
            return True

    return False


async def verify_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)
) -> Optional[str]:
    """
    Require "Authorization: Bearer <WORKER_API_KEY>" in production

    Outside production every request passes.

    Usage:
        @router.get("/videos/{video_id}/stream")
        async def stream(video_id: str, _: Optional[str] = Depends(verify_bearer_token)):
            ...
    """
    if not settings.is_production:
        return None

    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization token missing. Provide an Authorization: Bearer header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not check_api_key(credentials.credentials):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return credentials.credentials
