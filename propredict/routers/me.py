"""Current user endpoints."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.db.database import get_db
from propredict.dependencies import SessionContext, require_session
from propredict.models.profile import Profile
from propredict.services.subscriptions import get_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/me", tags=["Me"])


class PreferencesResponse(BaseModel):
    push_enabled: bool
    goal_alerts_enabled: bool


class PreferencesUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    push_enabled: Optional[bool] = None
    goal_alerts_enabled: Optional[bool] = None


class SubscriptionInfo(BaseModel):
    status: str
    expires_at: Optional[datetime] = None


class MeResponse(BaseModel):
    """Response model for the current user."""

    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    plan: str
    platform: str
    subscription: Optional[SubscriptionInfo] = None
    preferences: PreferencesResponse


@router.get("", response_model=MeResponse)
async def get_me(
    context: SessionContext = Depends(require_session),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Get the caller's profile, effective plan and preferences.

    The plan is the effective one: an expired or inactive subscription
    reads as free.
    """
    result = await db.execute(select(Profile).where(Profile.user_id == context.user_id))
    profile = result.scalar_one_or_none()
    subscription = await get_subscription(db, context.user_id)
    preferences = await context.preferences.get(context.user_id)

    return {
        "user_id": context.user_id,
        "email": (profile.email if profile else None) or context.user.get("email") or None,
        "full_name": profile.full_name if profile else None,
        "plan": context.plan.value,
        "platform": context.platform.name,
        "subscription": (
            {"status": subscription.status, "expires_at": subscription.expires_at}
            if subscription
            else None
        ),
        "preferences": preferences.to_dict(),
    }


@router.get("/preferences", response_model=PreferencesResponse)
async def get_preferences(
    context: SessionContext = Depends(require_session),
) -> Dict[str, bool]:
    preferences = await context.preferences.get(context.user_id)
    return preferences.to_dict()


@router.patch("/preferences", response_model=PreferencesResponse)
async def update_preferences(
    update: PreferencesUpdate,
    context: SessionContext = Depends(require_session),
) -> Dict[str, bool]:
    """Turn marketing pushes or goal alerts on or off."""
    preferences = await context.preferences.update(
        context.user_id,
        push_enabled=update.push_enabled,
        goal_alerts_enabled=update.goal_alerts_enabled,
    )
    return preferences.to_dict()
