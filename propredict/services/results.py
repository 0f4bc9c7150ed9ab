"""
Prediction result resolution.

Marks pending AI predictions won/lost once their fixture has finished and
settles the arena picks on the same match.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.models.ai_prediction import AIPrediction
from propredict.models.arena import ArenaNotification, ArenaPrediction, ArenaUserStats
from propredict.services.arena import resolve_pick
from propredict.services.football_api import FootballApiClient, FootballApiError, football_api

logger = logging.getLogger(__name__)

FINISHED_STATUSES = frozenset({"FT", "AET", "PEN", "AWD", "WO"})

BATCH_LIMIT = 50


def outcome_code(home_goals: int, away_goals: int) -> str:
    """Encode a final score as "1" (home win), "X" (draw) or "2" (away win)."""
    if home_goals > away_goals:
        return "1"
    if home_goals == away_goals:
        return "X"
    return "2"


def resolve_prediction(predicted: str, home_goals: int, away_goals: int) -> str:
    """Return ``won`` iff the predicted encoding matches the final score."""
    return "won" if predicted == outcome_code(home_goals, away_goals) else "lost"


def arena_pick_notification(pick: str, won: bool) -> Tuple[str, str, str]:
    """(type, title, message) of the notification sent when a pick settles."""
    if won:
        return (
            "win",
            "You won! 🎉",
            f"Your prediction {pick} was correct. +1 point added to your Arena score.",
        )
    return (
        "loss",
        "Prediction lost ❌",
        f"Your prediction {pick} was not correct. Better luck next match!",
    )


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(frozen=True)
class PendingPrediction:
    id: uuid.UUID
    match_id: str
    prediction: str
    home_team: str
    away_team: str


@dataclass
class ResultSummary:
    total_checked: int = 0
    updated: int = 0
    skipped: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": "Prediction results updated",
            "total_checked": self.total_checked,
            "updated": self.updated,
            "skipped": self.skipped,
            "results": self.results,
        }


class PredictionResultUpdater:
    """
    Settles pending AI predictions against final scores.

    Args:
        db: Database session.
        api: API-Football client.
        lookback_days: How many days before today are still checked.
        today: Returns the current UTC date.
        delay: Seconds to pause between upstream calls.
    """

    def __init__(
        self,
        db: AsyncSession,
        api: Optional[FootballApiClient] = None,
        lookback_days: int = 1,
        today: Callable[[], date] = utc_today,
        delay: float = 0.1,
    ):
        self.db = db
        self.api = api or football_api
        self.lookback_days = lookback_days
        self.today = today
        self.delay = delay

    async def _pending_predictions(self) -> List[PendingPrediction]:
        today = self.today()
        result = await self.db.execute(
            select(
                AIPrediction.id,
                AIPrediction.match_id,
                AIPrediction.prediction,
                AIPrediction.home_team,
                AIPrediction.away_team,
            )
            .where(
                AIPrediction.result_status == "pending",
                AIPrediction.match_date.is_not(None),
                AIPrediction.match_date >= today - timedelta(days=self.lookback_days),
                AIPrediction.match_date <= today,
            )
            .limit(BATCH_LIMIT)
        )
        return [PendingPrediction(*row) for row in result.all()]

    async def run(self) -> ResultSummary:
        """Check every pending prediction in the window once."""
        summary = ResultSummary()
        predictions = await self._pending_predictions()
        summary.total_checked = len(predictions)
        if not predictions:
            logger.info("No pending predictions to update")
            return summary

        logger.info(f"Found {len(predictions)} pending predictions to check")
        for prediction in predictions:
            try:
                await self._settle(prediction, summary)
            except Exception as e:
                logger.error(f"Error processing prediction {prediction.id}: {e}")
                await self.db.rollback()
                summary.results.append({"id": str(prediction.id), "status": "error", "reason": str(e)})
            if self.delay:
                await asyncio.sleep(self.delay)

        logger.info(f"Completed: {summary.updated} updated, {summary.skipped} skipped")
        return summary

    async def _settle(self, prediction: PendingPrediction, summary: ResultSummary) -> None:
        match_id = prediction.match_id
        if not match_id or not match_id.isdigit():
            logger.info(f"Skipping invalid match_id: {match_id}")
            summary.skipped += 1
            return

        try:
            fixtures = await self.api.get_response("/fixtures", {"id": match_id}, use_cache=False)
        except FootballApiError as e:
            logger.error(f"API error for fixture {match_id}: {e}")
            summary.skipped += 1
            return

        if not fixtures:
            logger.info(f"No fixture data for {match_id}")
            summary.skipped += 1
            return

        fixture = fixtures[0]
        status = ((fixture.get("fixture") or {}).get("status") or {}).get("short")
        if status not in FINISHED_STATUSES:
            logger.info(f"Match {match_id} not finished yet ({status})")
            summary.skipped += 1
            return

        goals = fixture.get("goals") or {}
        home, away = goals.get("home"), goals.get("away")
        if home is None or away is None:
            logger.info(f"No goals data for fixture {match_id}")
            summary.skipped += 1
            return

        actual = outcome_code(home, away)
        new_status = resolve_prediction(prediction.prediction, home, away)
        await self.db.execute(
            update(AIPrediction)
            .where(AIPrediction.id == prediction.id)
            .values(result_status=new_status)
        )
        await self.db.commit()

        summary.updated += 1
        summary.results.append({
            "id": str(prediction.id),
            "status": new_status,
            "reason": f"Predicted: {prediction.prediction}, Actual: {actual} ({home}-{away})",
        })
        logger.info(
            f"{prediction.home_team} vs {prediction.away_team}: {new_status} "
            f"(predicted {prediction.prediction}, actual {actual})"
        )

        match_label = f"{prediction.home_team} vs {prediction.away_team}"
        try:
            await self.resolve_arena(match_id, match_label, home, away)
        except Exception as e:
            logger.error(f"Arena resolve/notify error for {match_id}: {e}")
            await self.db.rollback()

    async def resolve_arena(self, match_id: str, match_label: str, home: int, away: int) -> int:
        """
        Settle the pending arena picks on a finished match.

        Sends everyone a full-time notification, then a win or loss
        notification, and updates their season stats.

        Returns:
            Number of picks settled.
        """
        result = await self.db.execute(
            select(ArenaPrediction).where(
                ArenaPrediction.match_id == match_id,
                ArenaPrediction.status == "pending",
            )
        )
        picks = list(result.scalars().all())
        if not picks:
            return 0

        for pick in picks:
            self.db.add(
                ArenaNotification(
                    user_id=pick.user_id,
                    type="ft",
                    title="Match finished",
                    message=f"Match finished: {match_label}. Your prediction is being evaluated.",
                    match_id=match_id,
                )
            )

        for pick in picks:
            won = resolve_pick(pick.prediction, home, away)
            pick.status = "won" if won else "lost"

            kind, title, message = arena_pick_notification(pick.prediction, won)
            self.db.add(
                ArenaNotification(
                    user_id=pick.user_id,
                    type=kind,
                    title=title,
                    message=message,
                    match_id=match_id,
                )
            )

            stats = await self._season_stats(pick.user_id, pick.season_id)
            if won:
                stats.points += 1
                stats.wins += 1
            else:
                stats.losses += 1
            logger.info(f"Arena {pick.user_id}: {pick.prediction} -> {pick.status}")

        await self.db.commit()
        return len(picks)

    async def _season_stats(self, user_id: str, season_id: str) -> ArenaUserStats:
        result = await self.db.execute(
            select(ArenaUserStats).where(
                ArenaUserStats.user_id == user_id,
                ArenaUserStats.season_id == season_id,
            )
        )
        stats = result.scalar_one_or_none()
        if stats is None:
            stats = ArenaUserStats(user_id=user_id, season_id=season_id, points=0, wins=0, losses=0)
            self.db.add(stats)
        return stats
