"""
Quota Tracker
Per-user monthly token budgets.

Reads fail open: a storage outage must never lock paying users out, so any
error while reading usage is treated as "not exceeded". Writes are
best-effort: a failed usage insert is logged and dropped.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select

from ..config import get_settings
from ..models.database import SubscriptionTier, TokenUsage, UserProfile
from ..utils.database import SessionFactory, get_db_context

logger = logging.getLogger(__name__)


class QuotaExceededError(Exception):
    """Raised when a user has used up this month's token budget"""

    status_code = 429

    def __init__(self, message: str = "Token limit exceeded for this month"):
        super().__init__(message)
        self.message = message


@dataclass
class QuotaState:
    used_tokens: int
    limit: int
    remaining: int
    exceeded: bool


def month_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the current UTC calendar month"""
    now = now or datetime.utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class QuotaTracker:
    """
    Tier lookup, usage accounting and limit checks.
    Owns its own short-lived sessions so that streamed responses can record
    usage after the request handler has returned.
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_db_context,
        limits: Optional[Dict[str, int]] = None,
    ):
        self.session_factory = session_factory
        self.limits = limits or get_settings().token_limits

    def get_limit(self, tier: SubscriptionTier) -> int:
        tier = SubscriptionTier(tier)
        return self.limits.get(tier.value, self.limits[SubscriptionTier.FREE.value])

    async def get_tier(self, user_id: str) -> SubscriptionTier:
        """Subscription tier of a user; free when unknown or unreadable"""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(UserProfile.subscription_tier).where(UserProfile.id == user_id)
                )
                tier = result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"Error fetching subscription tier for {user_id}: {e}")
            return SubscriptionTier.FREE

        if tier is None:
            return SubscriptionTier.FREE
        return SubscriptionTier(tier)

    async def get_monthly_usage(self, user_id: str) -> int:
        """Total tokens recorded for the user since the start of the month"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(TokenUsage.total_tokens), 0)).where(
                    TokenUsage.user_id == user_id,
                    TokenUsage.timestamp >= month_start(),
                )
            )
            return int(result.scalar_one())

    async def has_exceeded_limit(self, user_id: str, tier: SubscriptionTier) -> bool:
        try:
            used = await self.get_monthly_usage(user_id)
        except Exception as e:
            logger.error(f"Error checking token limit for {user_id}: {e}")
            return False
        return used >= self.get_limit(tier)

    async def get_quota_state(self, user_id: str, tier: SubscriptionTier) -> QuotaState:
        limit = self.get_limit(tier)
        try:
            used = await self.get_monthly_usage(user_id)
        except Exception as e:
            logger.error(f"Error reading token usage for {user_id}: {e}")
            used = 0
        return QuotaState(
            used_tokens=used,
            limit=limit,
            remaining=max(limit - used, 0),
            exceeded=used >= limit,
        )

    async def get_usage_by_model(self, user_id: str) -> List[Dict]:
        """Current-month usage grouped by model, largest consumer first"""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(
                        TokenUsage.model,
                        func.sum(TokenUsage.prompt_tokens),
                        func.sum(TokenUsage.completion_tokens),
                        func.sum(TokenUsage.total_tokens),
                        func.count(TokenUsage.id),
                    )
                    .where(
                        TokenUsage.user_id == user_id,
                        TokenUsage.timestamp >= month_start(),
                    )
                    .group_by(TokenUsage.model)
                    .order_by(func.sum(TokenUsage.total_tokens).desc())
                )
                rows = result.all()
        except Exception as e:
            logger.error(f"Error reading usage breakdown for {user_id}: {e}")
            return []

        return [
            {
                "model": model,
                "prompt_tokens": int(prompt or 0),
                "completion_tokens": int(completion or 0),
                "total_tokens": int(total or 0),
                "requests": int(count),
            }
            for model, prompt, completion, total, count in rows
        ]

    async def record_usage(
        self,
        user_id: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        is_estimated: bool = False,
    ) -> Optional[TokenUsage]:
        """Append a usage row. Never raises."""
        usage = TokenUsage(
            user_id=user_id,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            is_estimated=is_estimated,
            timestamp=datetime.utcnow(),
        )
        try:
            async with self.session_factory() as session:
                session.add(usage)
        except Exception as e:
            logger.error(f"Error recording token usage for {user_id}: {e}")
            return None

        logger.info(
            f"Recorded {usage.total_tokens} tokens for {user_id} on {model}"
            f"{' (estimated)' if is_estimated else ''}"
        )
        return usage
