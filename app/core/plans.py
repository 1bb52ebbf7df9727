"""
Subscription plans and the channel quota each one grants
"""
from datetime import datetime, timedelta
from typing import Optional

from app.core.config import get_settings

settings = get_settings()

# New installations start on the free plan
DEFAULT_PLAN = "free"

PLAN_CHANNEL_LIMITS = {
    "free": 1,
    "starter": 3,
    "unlimited": 5000,
    "enterprise": 5001,
}


def get_channel_limit(plan: Optional[str]) -> int:
    """Number of channels a plan may sync. Unknown plans get none."""
    if not plan:
        return 0
    return PLAN_CHANNEL_LIMITS.get(plan.lower(), 0)


def is_subscription_active(
    period_end: Optional[datetime],
    now: Optional[datetime] = None,
    buffer_hours: Optional[int] = None,
) -> bool:
    """
    A subscription with no recorded period end is treated as active.
    Otherwise it stays active until the period end plus a grace buffer.
    """
    if period_end is None:
        return True

    if buffer_hours is None:
        buffer_hours = settings.subscription_expiration_buffer_hours
    now = now or datetime.utcnow()
    return period_end + timedelta(hours=buffer_hours) >= now
