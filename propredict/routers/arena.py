"""Arena pick endpoints."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from propredict.dependencies import SessionContext, get_arena_store, require_session
from propredict.services.arena import (
    ArenaClosedError,
    ArenaPredictionService,
    InvalidPickError,
    SqlArenaStore,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/arena", tags=["Arena"])


class PickRequest(BaseModel):
    """Request model for submitting an arena pick."""

    prediction: str


async def _season_id(store: SqlArenaStore, now: datetime):
    season = await store.active_season(now)
    return str(season.id) if season else None


@router.get("/matches/{match_id}/pick")
async def get_pick(
    match_id: str,
    context: SessionContext = Depends(require_session),
    store: SqlArenaStore = Depends(get_arena_store),
) -> Dict[str, Any]:
    """
    Get the caller's pick for a match in the active season.

    Returns:
        Dict with ``pick`` (None when the caller has not picked yet).
    """
    season_id = await _season_id(store, datetime.now(timezone.utc))
    if season_id is None:
        return {"season_id": None, "pick": None}

    pick = await ArenaPredictionService(store).get_pick(context.user_id, match_id, season_id)
    return {"season_id": season_id, "pick": pick.to_dict() if pick else None}


@router.post("/matches/{match_id}/pick")
async def submit_pick(
    match_id: str,
    request: PickRequest,
    context: SessionContext = Depends(require_session),
    store: SqlArenaStore = Depends(get_arena_store),
) -> Dict[str, Any]:
    """
    Lock in the caller's pick for a match.

    Submitting again is accepted and answers with the pick already stored.

    Returns:
        PickResult with the final state and the transition trace.

    Raises:
        HTTPException(400): If the selection is not an arena market.
        HTTPException(409): After kickoff or without an active season.
        HTTPException(503): If the pick could not be stored.
    """
    now = datetime.now(timezone.utc)
    season_id = await _season_id(store, now)
    kickoff = await store.kickoff(match_id)

    try:
        result = await ArenaPredictionService(store).submit(
            context.user_id,
            match_id,
            request.prediction,
            season_id=season_id,
            kickoff=kickoff,
            now=now,
        )
    except InvalidPickError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ArenaClosedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if not result.confirmed:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=result.error or "Pick could not be saved",
        )
    return result.to_dict()
