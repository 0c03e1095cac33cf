"""
Security utilities - access token verification
Sessions are owned by the auth service; the gateway only needs the user id.
"""

from typing import Optional

from jose import JWTError, jwt

from surge_ai.config import get_settings


def verify_access_token(token: str) -> Optional[str]:
    """Verify an access token and return the user id, or None if invalid"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None
    return payload.get("sub")


def mask_api_key(api_key: Optional[str]) -> str:
    """Mask an API key for log output"""
    if not api_key:
        return "<none>"
    if len(api_key) <= 8:
        return "****"
    return f"{api_key[:4]}...{api_key[-4:]}"
