"""
Utility modules for the Surge SEO AI gateway
"""

from .database import (
    SessionFactory,
    get_db_context,
    make_session_context,
    init_db,
    close_db,
)
from .security import (
    verify_access_token,
    mask_api_key,
)

__all__ = [
    # Database
    "SessionFactory",
    "get_db_context",
    "make_session_context",
    "init_db",
    "close_db",
    # Security
    "verify_access_token",
    "mask_api_key",
]
