"""
Surge SEO Database Models
Only the tables the AI gateway reads or writes
"""

from datetime import datetime
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Enum, Index, Uuid
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class SubscriptionTier(str, PyEnum):
    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"


class LLMProvider(str, PyEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"      # Claude
    MISTRAL = "mistral"
    LLAMA = "llama"
    COHERE = "cohere"
    TOGETHER = "together"        # Together.ai
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"            # Local model server
    CUSTOM = "custom"            # Any OpenAI-compatible endpoint


# ============================================================================
# USERS
# ============================================================================

class UserProfile(Base):
    """Subscription profile of an account, owned by the auth/billing side"""
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    subscription_tier = Column(Enum(SubscriptionTier), default=SubscriptionTier.FREE, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ============================================================================
# TOKEN USAGE
# ============================================================================

class TokenUsage(Base):
    """
    One row per completed (or streamed) request.
    Append-only: rows are never updated or deleted by the gateway.
    """
    __tablename__ = "token_usage"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(String(64), nullable=False)

    model = Column(String(255), nullable=False)
    prompt_tokens = Column(Integer, default=0, nullable=False)
    completion_tokens = Column(Integer, default=0, nullable=False)
    total_tokens = Column(Integer, default=0, nullable=False)

    # True when counts come from the 4-chars-per-token heuristic
    is_estimated = Column(Boolean, default=False, nullable=False)

    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_token_usage_user_timestamp', 'user_id', 'timestamp'),
    )
