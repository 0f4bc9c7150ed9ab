"""
FastAPI dependencies for authentication, platform detection and the
per-request session context.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.config import get_settings
from propredict.db.database import get_db
from propredict.services.ad_unlock import AdUnlockTracker, PendingAdWatches, SqlUnlockStore
from propredict.services.ai_predictions import AIPredictionGenerator
from propredict.services.arena import SqlArenaStore
from propredict.services.auth import auth_service
from propredict.services.content import ContentService
from propredict.services.entitlements import EntitlementContext, UserPlan
from propredict.services.fixtures import FixturesService
from propredict.services.head_to_head import HeadToHeadService
from propredict.services.league_stats import LeagueStatsService
from propredict.services.match_details import MatchDetailsService
from propredict.services.platform import ClientPlatform, detect_platform
from propredict.services.preferences import PreferenceStore, SqlPreferenceStore
from propredict.services.subscriptions import get_effective_plan

logger = logging.getLogger(__name__)


def _bearer_token(authorization: str) -> str:
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = authorization[7:]
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def _user_from_token(token: str) -> Dict[str, str]:
    try:
        return auth_service.get_user_info(token)
    except ValueError as e:
        logger.warning(f"Token validation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    authorization: str = Header(..., description="Bearer token"),
) -> Dict[str, str]:
    """
    Validate JWT token and return user info.

    Returns:
        Dict with 'sub' (user ID) and 'email' keys.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired.
    """
    return _user_from_token(_bearer_token(authorization))


async def get_optional_user(
    authorization: Optional[str] = Header(None, description="Bearer token"),
) -> Optional[Dict[str, str]]:
    """
    Like get_current_user, but anonymous calls get None.

    A token that is present but invalid is still rejected.
    """
    if not authorization:
        return None
    return _user_from_token(_bearer_token(authorization))


async def require_service_role(
    authorization: Optional[str] = Header(None, description="Bearer service-role key"),
) -> None:
    """
    Guard for cron jobs and database triggers.

    Raises:
        HTTPException(401): If the service-role key is missing or wrong.
    """
    if not authorization or not auth_service.is_service_role(_bearer_token(authorization)):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Service role required",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_platform(
    platform: Optional[str] = Query(None, description="'android' inside the native wrapper"),
    x_client_platform: Optional[str] = Header(None),
    x_bridge_capabilities: Optional[str] = Header(None),
) -> ClientPlatform:
    return detect_platform(platform, x_client_platform, x_bridge_capabilities)


@lru_cache()
def get_pending_ad_watches() -> PendingAdWatches:
    """
    Process-wide registry of in-flight ad watches.

    One instance per process; the service runs as a single uvicorn worker
    so that every begin and complete for a user see the same registry.
    """
    return PendingAdWatches(timeout=get_settings().ad_unlock_timeout_seconds)


async def get_unlock_tracker(
    db: AsyncSession = Depends(get_db),
    pending: PendingAdWatches = Depends(get_pending_ad_watches),
) -> AdUnlockTracker:
    return AdUnlockTracker(SqlUnlockStore(db), pending)


async def get_preference_store(db: AsyncSession = Depends(get_db)) -> PreferenceStore:
    return SqlPreferenceStore(db)


async def get_content_service(db: AsyncSession = Depends(get_db)) -> ContentService:
    return ContentService(db)


async def get_arena_store(db: AsyncSession = Depends(get_db)) -> SqlArenaStore:
    return SqlArenaStore(db)


def get_match_details_service() -> MatchDetailsService:
    return MatchDetailsService()


def get_league_stats_service() -> LeagueStatsService:
    return LeagueStatsService()


def get_fixtures_service() -> FixturesService:
    return FixturesService()


def get_head_to_head_service() -> HeadToHeadService:
    return HeadToHeadService()


async def get_ai_prediction_generator(db: AsyncSession = Depends(get_db)) -> AIPredictionGenerator:
    return AIPredictionGenerator(db)


@dataclass
class SessionContext:
    """
    Everything a route needs to know about the caller.

    Built once per request; routes read the caller's plan, platform,
    ad unlocks and preferences from here and nowhere else.
    """

    user: Optional[Dict[str, str]]
    plan: UserPlan
    platform: ClientPlatform
    unlock_tracker: AdUnlockTracker
    preferences: PreferenceStore
    entitlements: EntitlementContext

    @property
    def user_id(self) -> Optional[str]:
        return self.user["sub"] if self.user else None


async def get_session_context(
    user: Optional[Dict[str, str]] = Depends(get_optional_user),
    platform: ClientPlatform = Depends(get_platform),
    tracker: AdUnlockTracker = Depends(get_unlock_tracker),
    preferences: PreferenceStore = Depends(get_preference_store),
    db: AsyncSession = Depends(get_db),
) -> SessionContext:
    user_id = user["sub"] if user else None
    plan = await get_effective_plan(db, user_id)
    unlocked = frozenset(await tracker.unlocked_ids(user_id)) if user_id else frozenset()

    return SessionContext(
        user=user,
        plan=plan,
        platform=platform,
        unlock_tracker=tracker,
        preferences=preferences,
        entitlements=EntitlementContext(
            user_id=user_id,
            plan=plan,
            platform=platform,
            unlocked=unlocked,
        ),
    )


async def require_session(
    context: SessionContext = Depends(get_session_context),
) -> SessionContext:
    """Session context for routes that need a signed-in caller."""
    if context.user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign in required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return context
