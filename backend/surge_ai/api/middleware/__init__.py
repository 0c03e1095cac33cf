"""
API Middleware
"""

from .auth import get_current_user_id, get_current_user_id_optional

__all__ = ["get_current_user_id", "get_current_user_id_optional"]
