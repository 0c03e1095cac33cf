"""
Database Models for Surge SEO
"""

from .database import (
    Base,
    # Enums
    SubscriptionTier,
    LLMProvider,
    # Models
    UserProfile,
    TokenUsage,
)

__all__ = [
    "Base",
    # Enums
    "SubscriptionTier",
    "LLMProvider",
    # Models
    "UserProfile",
    "TokenUsage",
]
