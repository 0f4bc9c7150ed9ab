"""
Arena ("predict against the AI") picks.

A user gets exactly one pick per (match, season). Each submit call walks

    no_pick -> pending -> confirmed | rolled_back

The pick is optimistically marked pending, inserted against the unique
constraint and then read back. A duplicate-key insert means another call
already owns the row; the call is rolled back and then confirmed against
the stored row.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.models.ai_prediction import AIPrediction
from propredict.models.arena import ArenaPrediction, ArenaSeason

logger = logging.getLogger(__name__)


class PickState(str, Enum):
    NO_PICK = "no_pick"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


class ArenaClosedError(Exception):
    """Raised when a pick arrives after kickoff or outside an active season."""


class InvalidPickError(ValueError):
    """Raised for a selection that is not an arena market."""


class DuplicatePickError(Exception):
    """Raised by a store when the (user, match, season) row already exists."""


# Selection -> won(home_goals, away_goals)
_PICK_RULES: Dict[str, Callable[[int, int], bool]] = {
    "1": lambda h, a: h > a,
    "Home": lambda h, a: h > a,
    "X": lambda h, a: h == a,
    "Draw": lambda h, a: h == a,
    "2": lambda h, a: h < a,
    "Away": lambda h, a: h < a,
    "GG (Yes)": lambda h, a: h > 0 and a > 0,
    "NG (No)": lambda h, a: h == 0 or a == 0,
    "Over 1.5": lambda h, a: h + a > 1,
    "Over 2.5": lambda h, a: h + a > 2,
    "Under 2.5": lambda h, a: h + a < 3,
    "Under 3.5": lambda h, a: h + a < 4,
}

ARENA_PICKS = frozenset(_PICK_RULES)


def resolve_pick(pick: str, home_goals: int, away_goals: int) -> bool:
    """Check whether an arena selection won. Unknown selections lose."""
    rule = _PICK_RULES.get(pick)
    return rule is not None and rule(home_goals, away_goals)


@dataclass(frozen=True)
class StoredPick:
    user_id: str
    match_id: str
    season_id: str
    prediction: str
    status: str = "pending"

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "season_id": self.season_id,
            "prediction": self.prediction,
            "status": self.status,
        }


@dataclass
class PickResult:
    """Outcome of one submit call together with every state it passed."""

    state: PickState
    trace: List[PickState] = field(default_factory=list)
    pick: Optional[StoredPick] = None
    error: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.state is PickState.CONFIRMED

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "trace": [s.value for s in self.trace],
            "pick": self.pick.to_dict() if self.pick else None,
            "error": self.error,
        }


class ArenaStore(Protocol):
    async def insert(self, pick: StoredPick) -> None:
        ...

    async def fetch(self, user_id: str, match_id: str, season_id: str) -> Optional[StoredPick]:
        ...


class SqlArenaStore:
    """Arena store backed by the ``arena_predictions`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(self, pick: StoredPick) -> None:
        self.db.add(
            ArenaPrediction(
                user_id=pick.user_id,
                match_id=pick.match_id,
                season_id=pick.season_id,
                prediction=pick.prediction,
                status=pick.status,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicatePickError(str(e)) from e

    async def fetch(self, user_id: str, match_id: str, season_id: str) -> Optional[StoredPick]:
        result = await self.db.execute(
            select(ArenaPrediction).where(
                ArenaPrediction.user_id == user_id,
                ArenaPrediction.match_id == match_id,
                ArenaPrediction.season_id == season_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return StoredPick(
            user_id=row.user_id,
            match_id=row.match_id,
            season_id=row.season_id,
            prediction=row.prediction,
            status=row.status,
        )

    async def active_season(self, now: datetime) -> Optional[ArenaSeason]:
        result = await self.db.execute(
            select(ArenaSeason)
            .where(ArenaSeason.starts_at <= now, ArenaSeason.ends_at > now)
            .order_by(ArenaSeason.starts_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def kickoff(self, match_id: str) -> Optional[datetime]:
        """Kickoff time of a match, taken from its AI prediction row."""
        result = await self.db.execute(
            select(AIPrediction.match_timestamp)
            .where(AIPrediction.match_id == match_id)
            .limit(1)
        )
        return result.scalar_one_or_none()


class ArenaPredictionService:
    """Submits and reads arena picks through an ArenaStore."""

    def __init__(self, store: ArenaStore):
        self.store = store

    async def get_pick(self, user_id: str, match_id: str, season_id: str) -> Optional[StoredPick]:
        return await self.store.fetch(user_id, match_id, season_id)

    async def submit(
        self,
        user_id: str,
        match_id: str,
        prediction: str,
        *,
        season_id: Optional[str],
        kickoff: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> PickResult:
        """
        Lock in a user's pick for a match.

        Args:
            user_id: Picking user.
            match_id: API-Football fixture ID.
            prediction: One of ARENA_PICKS.
            season_id: Active season, None when no season is running.
            kickoff: Match kickoff; picks at or after it are refused.
            now: Current time, defaults to UTC now.

        Returns:
            PickResult ending in confirmed (with the stored pick, which may
            differ from ``prediction`` if another call won the race) or
            rolled_back.

        Raises:
            InvalidPickError: If the selection is not an arena market.
            ArenaClosedError: After kickoff or without an active season.
        """
        if prediction not in ARENA_PICKS:
            raise InvalidPickError(f"Unknown arena pick: {prediction}")
        if season_id is None:
            raise ArenaClosedError("No active arena season")
        now = now or datetime.now(timezone.utc)
        if kickoff is not None and now >= kickoff:
            raise ArenaClosedError(f"Match {match_id} has already kicked off")

        trace = [PickState.NO_PICK, PickState.PENDING]
        candidate = StoredPick(user_id, match_id, season_id, prediction)

        try:
            await self.store.insert(candidate)
        except DuplicatePickError:
            logger.info(f"Arena pick already exists: user={user_id} match={match_id}")
            trace.append(PickState.ROLLED_BACK)
        except Exception as e:
            logger.error(f"Arena pick insert failed: user={user_id} match={match_id}: {e}")
            trace.append(PickState.ROLLED_BACK)
            return PickResult(PickState.ROLLED_BACK, trace, error=str(e))

        try:
            stored = await self.store.fetch(user_id, match_id, season_id)
        except Exception as e:
            logger.error(f"Arena pick read-back failed: user={user_id} match={match_id}: {e}")
            stored = None

        if stored is None:
            if trace[-1] is not PickState.ROLLED_BACK:
                trace.append(PickState.ROLLED_BACK)
            logger.error(f"Arena pick not found after write: user={user_id} match={match_id}")
            return PickResult(PickState.ROLLED_BACK, trace, error="Pick could not be verified")

        trace.append(PickState.CONFIRMED)
        logger.info(f"Arena pick confirmed: user={user_id} match={match_id} pick={stored.prediction}")
        return PickResult(PickState.CONFIRMED, trace, stored)
