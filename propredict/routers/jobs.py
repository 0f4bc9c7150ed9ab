"""
Cron and database-trigger endpoints.

All routes require the service-role key. Failures answer
``500 {"error": ...}`` so the scheduler logs the reason.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.config import get_settings
from propredict.db.database import get_db
from propredict.dependencies import get_ai_prediction_generator, require_service_role
from propredict.services.ai_predictions import AIPredictionGenerator, InvalidTeamData
from propredict.services.football_api import FootballApiError
from propredict.services.match_details import FixtureNotFound
from propredict.services.push_service import PushNotificationService
from propredict.services.results import PredictionResultUpdater

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Jobs"], dependencies=[Depends(require_service_role)])


class TriggerPayload(BaseModel):
    """Body sent by the tips/tickets database triggers."""

    type: Optional[str] = None
    record: Optional[Dict[str, Any]] = None


class GeneratePayload(BaseModel):
    fixture_id: Optional[int] = Field(None, alias="fixtureId")
    regenerate: bool = False


def _push_service(db: AsyncSession) -> PushNotificationService:
    minutes = get_settings().marketing_push_cooldown_minutes
    return PushNotificationService(db, cooldown=timedelta(minutes=minutes))


def _error(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/check-goals")
async def check_goals(db: AsyncSession = Depends(get_db)):
    """Poll live fixtures and send goal alerts to users who favorited them."""
    try:
        return await _push_service(db).check_goals()
    except Exception as e:
        logger.error(f"[check-goals] Error: {e}")
        return _error(str(e))


@router.post("/update-prediction-results")
async def update_prediction_results(db: AsyncSession = Depends(get_db)):
    """Settle pending AI predictions and the arena picks on their matches."""
    updater = PredictionResultUpdater(db, lookback_days=get_settings().result_lookback_days)
    try:
        summary = await updater.run()
    except Exception as e:
        logger.error(f"Error in update-prediction-results: {e}")
        return _error(str(e))
    return summary.to_dict()


@router.post("/send-push-notification")
async def send_push_notification(
    payload: TriggerPayload,
    db: AsyncSession = Depends(get_db),
):
    """Announce a newly published tip or ticket, one push per plan group."""
    if not payload.type or payload.record is None:
        return _error("Invalid payload", 400)

    logger.info(f"[send-push-notification] {payload.type} {payload.record.get('id')}")
    try:
        return await _push_service(db).send_publish_push(payload.type, payload.record)
    except Exception as e:
        logger.error(f"[send-push-notification] Error: {e}")
        return _error(str(e))


@router.post("/send-win-push")
async def send_win_push(
    payload: TriggerPayload,
    db: AsyncSession = Depends(get_db),
):
    """Announce that a tip or ticket won."""
    if not payload.type or payload.record is None:
        return _error("Invalid payload", 400)

    logger.info(f"[send-win-push] {payload.type} {payload.record.get('id')}")
    try:
        return await _push_service(db).send_win_push(payload.type, payload.record)
    except Exception as e:
        logger.error(f"[send-win-push] Error: {e}")
        return _error(str(e))


@router.post("/cleanup-push-tokens")
async def cleanup_push_tokens(db: AsyncSession = Depends(get_db)):
    """Delete push tokens the push vendor no longer recognises."""
    try:
        return await _push_service(db).cleanup_tokens()
    except Exception as e:
        logger.error(f"[cleanup] Error: {e}")
        return _error(str(e))


@router.post("/generate-ai-predictions")
async def generate_ai_predictions(
    payload: Optional[GeneratePayload] = None,
    generator: AIPredictionGenerator = Depends(get_ai_prediction_generator),
):
    """
    Predict one fixture, or refresh today's and tomorrow's pending predictions.

    With ``regenerate`` set every pending prediction is recomputed from fresh
    API-Football data and the premium picks are reassigned. Otherwise the
    prediction for ``fixtureId`` is returned without being stored.
    """
    payload = payload or GeneratePayload()

    if payload.regenerate:
        try:
            return await generator.regenerate()
        except Exception as e:
            logger.error(f"[generate-ai-predictions] Regeneration failed: {e}")
            return _error(str(e))

    if payload.fixture_id is None:
        return _error("Missing fixtureId parameter", 400)

    try:
        return await generator.generate(str(payload.fixture_id))
    except FixtureNotFound:
        return _error("Fixture not found", 404)
    except InvalidTeamData as e:
        return _error(str(e), 400)
    except FootballApiError as e:
        logger.error(f"[generate-ai-predictions] Fixture {payload.fixture_id}: {e}")
        return _error("Failed to fetch fixture")
    except Exception as e:
        logger.error(f"[generate-ai-predictions] Error: {e}")
        return _error(str(e))
