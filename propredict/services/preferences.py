"""Per-user notification preferences."""

import logging
from dataclasses import asdict, dataclass, replace
from typing import Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.models.profile import Profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Preferences:
    push_enabled: bool = True
    goal_alerts_enabled: bool = True

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


class PreferenceStore(Protocol):
    async def get(self, user_id: str) -> Preferences:
        ...

    async def update(
        self,
        user_id: str,
        *,
        push_enabled: Optional[bool] = None,
        goal_alerts_enabled: Optional[bool] = None,
    ) -> Preferences:
        ...


class InMemoryPreferenceStore:
    def __init__(self) -> None:
        self._prefs: Dict[str, Preferences] = {}

    async def get(self, user_id: str) -> Preferences:
        return self._prefs.get(user_id, Preferences())

    async def update(
        self,
        user_id: str,
        *,
        push_enabled: Optional[bool] = None,
        goal_alerts_enabled: Optional[bool] = None,
    ) -> Preferences:
        current = await self.get(user_id)
        changes = {}
        if push_enabled is not None:
            changes["push_enabled"] = push_enabled
        if goal_alerts_enabled is not None:
            changes["goal_alerts_enabled"] = goal_alerts_enabled
        updated = replace(current, **changes)
        self._prefs[user_id] = updated
        return updated


class SqlPreferenceStore:
    """Preferences stored on the user's profile row."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _profile(self, user_id: str) -> Optional[Profile]:
        result = await self.db.execute(select(Profile).where(Profile.user_id == user_id))
        return result.scalar_one_or_none()

    async def get(self, user_id: str) -> Preferences:
        profile = await self._profile(user_id)
        if profile is None:
            return Preferences()
        return Preferences(
            push_enabled=profile.push_enabled,
            goal_alerts_enabled=profile.goal_alerts_enabled,
        )

    async def update(
        self,
        user_id: str,
        *,
        push_enabled: Optional[bool] = None,
        goal_alerts_enabled: Optional[bool] = None,
    ) -> Preferences:
        profile = await self._profile(user_id)
        if profile is None:
            profile = Profile(user_id=user_id, push_enabled=True, goal_alerts_enabled=True)
            self.db.add(profile)
        if push_enabled is not None:
            profile.push_enabled = push_enabled
        if goal_alerts_enabled is not None:
            profile.goal_alerts_enabled = goal_alerts_enabled
        await self.db.commit()
        logger.info(f"Updated preferences for {user_id}")
        return Preferences(
            push_enabled=profile.push_enabled,
            goal_alerts_enabled=profile.goal_alerts_enabled,
        )
