"""Unlock decision and rewarded-ad unlock endpoints."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from propredict.dependencies import (
    SessionContext,
    get_content_service,
    get_session_context,
    require_session,
)
from propredict.services.ad_unlock import (
    AdUnlockNotAllowed,
    InvalidAdUnlockTransition,
    canonical_content_id,
)
from propredict.services.content import ContentService
from propredict.services.entitlements import ContentTier, ContentType

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Unlocks"])


class UnlockMethodResponse(BaseModel):
    """Response model for the unlock decision."""

    type: str
    message: Optional[str] = None
    secondary_message: Optional[str] = None
    is_unlocked: bool
    offers_ad: bool


class AdWatchRequest(BaseModel):
    """Request model for the ad-watch transitions."""

    content_type: ContentType
    content_id: str

    @field_validator("content_id")
    @classmethod
    def canonical_id(cls, value: str) -> str:
        # Stored unlocks use the canonical UUID form
        return canonical_content_id(value)


class AdWatchResponse(BaseModel):
    """Response model for the ad-watch transitions."""

    content_type: ContentType
    content_id: str
    state: str


class UnlockedItem(BaseModel):
    content_type: ContentType
    content_id: str


class UnlocksResponse(BaseModel):
    """Items unlocked by a rewarded ad today."""

    unlocked: List[UnlockedItem]


@router.get("/unlock-method", response_model=UnlockMethodResponse)
async def get_unlock_method(
    tier: ContentTier = Query(...),
    content_type: ContentType = Query(ContentType.TIP),
    content_id: str = Query(""),
    context: SessionContext = Depends(get_session_context),
) -> Dict[str, Any]:
    """
    Tell the client how the caller can reach an item.

    No authentication required; anonymous callers get ``login_required``
    for anything above the free tier.
    """
    method = context.entitlements.get_unlock_method(tier, content_type, canonical_content_id(content_id))
    return {
        **method.to_dict(),
        "is_unlocked": method.is_unlocked,
        "offers_ad": method.offers_ad,
    }


@router.get("/unlocks", response_model=UnlocksResponse)
async def list_unlocks(
    context: SessionContext = Depends(require_session),
) -> Dict[str, Any]:
    """List the caller's ad-unlocked items for the current UTC day."""
    keys = await context.unlock_tracker.unlocked_ids(context.user_id)
    return {
        "unlocked": [
            {"content_type": content_type, "content_id": content_id}
            for content_type, content_id in sorted(keys)
        ]
    }


async def _published_tier(content: ContentService, request: AdWatchRequest) -> ContentTier:
    tier = await content.get_tier(request.content_type, request.content_id)
    if tier is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{request.content_type.value} not found: {request.content_id}",
        )
    return ContentTier(tier)


@router.post("/unlocks/ad-watch", response_model=AdWatchResponse)
async def begin_ad_watch(
    request: AdWatchRequest,
    context: SessionContext = Depends(require_session),
    content: ContentService = Depends(get_content_service),
) -> Dict[str, Any]:
    """
    Start a rewarded-ad watch for an item.

    The item's tier is looked up server-side.

    Raises:
        HTTPException(404): If the item does not exist.
        HTTPException(400): If the item's tier has no ad fallback.
    """
    tier = await _published_tier(content, request)
    try:
        state = await context.unlock_tracker.begin(
            context.user_id, request.content_type, request.content_id, tier
        )
    except AdUnlockNotAllowed as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"content_type": request.content_type, "content_id": request.content_id, "state": state.value}


@router.post("/unlocks/ad-watch/complete", response_model=AdWatchResponse)
async def complete_ad_watch(
    request: AdWatchRequest,
    context: SessionContext = Depends(require_session),
) -> Dict[str, Any]:
    """
    Record that the rewarded ad finished.

    Raises:
        HTTPException(409): If no ad watch is pending for the item.
    """
    try:
        state = await context.unlock_tracker.complete(
            context.user_id, request.content_type, request.content_id
        )
    except InvalidAdUnlockTransition as e:
        logger.warning(f"Rejected ad completion for {context.user_id}: {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return {"content_type": request.content_type, "content_id": request.content_id, "state": state.value}


@router.post("/unlocks/ad-watch/cancel", response_model=AdWatchResponse)
async def cancel_ad_watch(
    request: AdWatchRequest,
    context: SessionContext = Depends(require_session),
) -> Dict[str, Any]:
    """Abandon a pending ad watch. Already unlocked items stay unlocked."""
    state = await context.unlock_tracker.cancel(
        context.user_id, request.content_type, request.content_id
    )
    return {"content_type": request.content_type, "content_id": request.content_id, "state": state.value}
