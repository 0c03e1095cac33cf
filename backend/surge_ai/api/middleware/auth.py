"""
Authentication Middleware
Sessions are issued elsewhere; this layer only turns an optional bearer
token into a user id.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from surge_ai.utils import verify_access_token

optional_security = HTTPBearer(auto_error=False)


async def get_current_user_id_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[str]:
    """
    Optional authentication - returns None for anonymous callers.
    An invalid or expired token is treated the same as no token.
    """
    if credentials is None:
        return None
    return verify_access_token(credentials.credentials)


async def get_current_user_id(
    user_id: Optional[str] = Depends(get_current_user_id_optional),
) -> str:
    """
    Dependency for endpoints that need a known caller.

    Raises:
        HTTPException: If no valid token was presented
    """
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
