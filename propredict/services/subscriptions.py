"""Subscription record helpers shared by the payment webhooks and entitlements."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.models.profile import Profile
from propredict.models.subscription import UserSubscription
from propredict.services.entitlements import UserPlan

logger = logging.getLogger(__name__)

_UNSET = object()


async def get_subscription(db: AsyncSession, user_id: str) -> Optional[UserSubscription]:
    result = await db.execute(
        select(UserSubscription).where(UserSubscription.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_effective_plan(
    db: AsyncSession,
    user_id: Optional[str],
    now: Optional[datetime] = None,
) -> UserPlan:
    """
    Get the plan a user is currently entitled to.

    Anonymous callers and users without a subscription are on the free plan.
    """
    if not user_id:
        return UserPlan.FREE
    subscription = await get_subscription(db, user_id)
    if subscription is None:
        return UserPlan.FREE
    return UserPlan.parse(subscription.effective_plan(now or datetime.now(timezone.utc)))


async def upsert_subscription(
    db: AsyncSession,
    user_id: str,
    *,
    plan: str,
    status: str = "active",
    expires_at=_UNSET,
    stripe_subscription_id: Optional[str] = None,
) -> UserSubscription:
    """
    Create or update the single subscription row of a user.

    Args:
        db: Database session.
        user_id: Subscriber.
        plan: free, basic or premium.
        status: active, past_due, canceled or expired.
        expires_at: New expiry; omit to keep the stored one. None clears it.
        stripe_subscription_id: Stripe subscription, kept if omitted.
    """
    subscription = await get_subscription(db, user_id)
    if subscription is None:
        subscription = UserSubscription(user_id=user_id)
        db.add(subscription)

    subscription.plan = plan
    subscription.status = status
    if expires_at is not _UNSET:
        subscription.expires_at = expires_at
    if stripe_subscription_id:
        subscription.stripe_subscription_id = stripe_subscription_id

    await db.commit()
    logger.info(f"Subscription for {user_id}: plan={plan} status={status}")
    return subscription


async def set_subscription_status(db: AsyncSession, user_id: str, status: str) -> bool:
    """Change only the status of an existing subscription. Returns False if there is none."""
    subscription = await get_subscription(db, user_id)
    if subscription is None:
        return False
    subscription.status = status
    await db.commit()
    return True


async def find_user_id_by_email(db: AsyncSession, email: str) -> Optional[str]:
    result = await db.execute(
        select(Profile.user_id).where(Profile.email == email).limit(1)
    )
    return result.scalar_one_or_none()


async def user_exists(db: AsyncSession, user_id: str) -> bool:
    result = await db.execute(
        select(Profile.id).where(Profile.user_id == user_id).limit(1)
    )
    return result.scalar_one_or_none() is not None
