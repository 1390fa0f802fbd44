"""
API key check for operator-only endpoints
"""

import hmac
from typing import Optional

from fastapi import HTTPException, status, Header

from ..config import settings


def verify_admin_api_key(x_api_key: Optional[str] = Header(None)) -> bool:
    """
    Verify the operator API key from the X-API-Key header

    Returns:
        True if valid, raises HTTPException if invalid
    """
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API key not configured on server"
        )

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-API-Key header",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if not hmac.compare_digest(x_api_key, settings.ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    return True
