"""
Per-item rewarded-ad unlocks.

Each (subject, content_type, content_id) moves through

    locked -> pending -> unlocked

``begin`` starts an ad watch, ``complete`` records the reward and
``cancel`` rolls a pending watch back to locked. A pending watch that
never completes expires after the configured timeout and the item is
locked again. Unlocks are scoped to the UTC day.
"""

import logging
import time
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Dict, Protocol, Set, Tuple

from cachetools import TTLCache
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.models.unlock import UserUnlock
from propredict.services.entitlements import (
    AD_UNLOCKABLE_TIERS,
    ContentTier,
    ContentType,
    UnlockKey,
)

logger = logging.getLogger(__name__)


class AdUnlockState(str, Enum):
    LOCKED = "locked"
    PENDING = "pending"
    UNLOCKED = "unlocked"


class AdUnlockNotAllowed(ValueError):
    """Raised when an ad unlock is requested for a tier without ad fallback."""


class InvalidAdUnlockTransition(RuntimeError):
    """Raised when a transition is not allowed from the item's current state."""

    def __init__(self, current: AdUnlockState, target: AdUnlockState):
        super().__init__(f"Cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def canonical_content_id(content_id: str) -> str:
    """Lowercase hyphenated form of a UUID content ID; other IDs are returned unchanged."""
    try:
        return str(uuid.UUID(content_id))
    except ValueError:
        return content_id


class UnlockStore(Protocol):
    """Persistence for completed ad unlocks."""

    async def unlocked_ids(self, subject: str, day: date) -> Set[UnlockKey]:
        ...

    async def add(self, subject: str, key: UnlockKey, day: date) -> None:
        ...


class InMemoryUnlockStore:
    """Unlock store kept in process memory."""

    def __init__(self) -> None:
        self._unlocks: Dict[Tuple[str, date], Set[UnlockKey]] = {}

    async def unlocked_ids(self, subject: str, day: date) -> Set[UnlockKey]:
        return set(self._unlocks.get((subject, day), set()))

    async def add(self, subject: str, key: UnlockKey, day: date) -> None:
        self._unlocks.setdefault((subject, day), set()).add(key)


class SqlUnlockStore:
    """Unlock store backed by the ``user_unlocks`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def unlocked_ids(self, subject: str, day: date) -> Set[UnlockKey]:
        result = await self.db.execute(
            select(UserUnlock.content_type, UserUnlock.content_id).where(
                UserUnlock.user_id == subject,
                UserUnlock.unlocked_date == day,
            )
        )
        keys: Set[UnlockKey] = set()
        for content_type, content_id in result.all():
            try:
                keys.add((ContentType(content_type), content_id))
            except ValueError:
                logger.warning(f"Ignoring unlock with unknown content type: {content_type}")
        return keys

    async def add(self, subject: str, key: UnlockKey, day: date) -> None:
        content_type, content_id = key
        self.db.add(
            UserUnlock(
                user_id=subject,
                content_type=content_type.value,
                content_id=content_id,
                unlocked_date=day,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError:
            # Same item already unlocked today
            await self.db.rollback()
            logger.debug(f"Unlock already recorded: {content_type.value}:{content_id}")


class PendingAdWatches:
    """
    Ad watches waiting for a completion message.

    Entries expire ``timeout`` seconds after they start; an expired entry
    is indistinguishable from one that never existed.

    State lives in process memory. With several uvicorn workers a
    ``complete`` routed to a different worker than its ``begin`` finds
    nothing pending and is rejected, so the API is run with one worker.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        timer: Callable[[], float] = time.monotonic,
        maxsize: int = 10_000,
    ):
        self.timeout = timeout
        self._pending: TTLCache = TTLCache(maxsize=maxsize, ttl=timeout, timer=timer)

    def start(self, subject: str, key: UnlockKey) -> None:
        self._pending[(subject, key)] = True

    def is_pending(self, subject: str, key: UnlockKey) -> bool:
        return (subject, key) in self._pending

    def finish(self, subject: str, key: UnlockKey) -> bool:
        return self._pending.pop((subject, key), None) is not None


class AdUnlockTracker:
    """
    State machine for rewarded-ad unlocks of a single subject's items.

    Args:
        store: Where completed unlocks are persisted.
        pending: Shared registry of in-flight ad watches.
        today: Returns the current daily scope.
    """

    def __init__(
        self,
        store: UnlockStore,
        pending: PendingAdWatches,
        today: Callable[[], date] = utc_today,
    ):
        self.store = store
        self.pending = pending
        self.today = today

    async def unlocked_ids(self, subject: str) -> Set[UnlockKey]:
        return await self.store.unlocked_ids(subject, self.today())

    async def state(
        self,
        subject: str,
        content_type: ContentType,
        content_id: str,
    ) -> AdUnlockState:
        key = _key(content_type, content_id)
        if key in await self.unlocked_ids(subject):
            return AdUnlockState.UNLOCKED
        if self.pending.is_pending(subject, key):
            return AdUnlockState.PENDING
        return AdUnlockState.LOCKED

    async def begin(
        self,
        subject: str,
        content_type: ContentType,
        content_id: str,
        tier: ContentTier,
    ) -> AdUnlockState:
        """Start an ad watch. Unlocked and pending items are left as they are."""
        if ContentTier(tier) not in AD_UNLOCKABLE_TIERS:
            raise AdUnlockNotAllowed(f"{ContentTier(tier).value} content cannot be unlocked with an ad")

        current = await self.state(subject, content_type, content_id)
        if current is not AdUnlockState.LOCKED:
            return current

        self.pending.start(subject, _key(content_type, content_id))
        logger.info(f"Ad watch started: subject={subject} item={content_type}:{content_id}")
        return AdUnlockState.PENDING

    async def complete(
        self,
        subject: str,
        content_type: ContentType,
        content_id: str,
    ) -> AdUnlockState:
        """Record a finished ad watch."""
        current = await self.state(subject, content_type, content_id)
        if current is AdUnlockState.UNLOCKED:
            return current
        if current is not AdUnlockState.PENDING:
            raise InvalidAdUnlockTransition(current, AdUnlockState.UNLOCKED)

        key = _key(content_type, content_id)
        await self.store.add(subject, key, self.today())
        self.pending.finish(subject, key)
        logger.info(f"Ad unlock granted: subject={subject} item={content_type}:{content_id}")
        return AdUnlockState.UNLOCKED

    async def cancel(
        self,
        subject: str,
        content_type: ContentType,
        content_id: str,
    ) -> AdUnlockState:
        """Roll a pending ad watch back to locked. Unlocked items stay unlocked."""
        current = await self.state(subject, content_type, content_id)
        if current is AdUnlockState.PENDING:
            self.pending.finish(subject, _key(content_type, content_id))
            logger.info(f"Ad watch cancelled: subject={subject} item={content_type}:{content_id}")
            return AdUnlockState.LOCKED
        return current


def _key(content_type: ContentType, content_id: str) -> UnlockKey:
    return (ContentType(content_type), str(content_id))
