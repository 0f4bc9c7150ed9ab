"""
Football data proxy endpoints.

These keep the ``{"error": ...}`` body the web client already parses
instead of FastAPI's ``{"detail": ...}``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from propredict.dependencies import (
    get_fixtures_service,
    get_head_to_head_service,
    get_league_stats_service,
    get_match_details_service,
)
from propredict.services.fixtures import FixturesService
from propredict.services.football_api import FootballApiError
from propredict.services.head_to_head import HeadToHeadService
from propredict.services.league_stats import LeagueStatsService
from propredict.services.match_details import FixtureNotFound, MatchDetailsService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Football"])


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.get("/get-match-details")
async def get_match_details(
    fixture_id: Optional[str] = Query(None, alias="fixtureId"),
    service: MatchDetailsService = Depends(get_match_details_service),
):
    """
    Full match page payload for one fixture.

    Returns:
        Fixture, league, teams, goals and score together with statistics,
        lineups, events, odds and the last 10 head-to-head meetings.
    """
    if not fixture_id:
        return _error("Missing fixtureId parameter", 400)

    try:
        return await service.get_match_details(fixture_id)
    except FixtureNotFound:
        return _error("Fixture not found", 404)
    except FootballApiError as e:
        logger.error(f"Error fetching match details for {fixture_id}: {e}")
        return _error(str(e), 500)


@router.get("/league-stats")
async def get_league_stats(
    league: Optional[str] = Query(None),
    season: Optional[str] = Query(None),
    stats_type: Optional[str] = Query(None, alias="type"),
    service: LeagueStatsService = Depends(get_league_stats_service),
):
    """
    Standings, top scorers, top assists, fixtures or rounds of a league.

    The previous season is tried once when the requested one is empty or
    fails upstream.
    """
    if not league:
        return _error("Missing league parameter", 400)

    try:
        return await service.get_stats(league, stats_type or "", season)
    except ValueError as e:
        return _error(str(e), 400)
    except FootballApiError as e:
        logger.error(f"Error fetching {stats_type} for league {league}: {e}")
        return _error(str(e), 500)


@router.get("/fixtures")
async def list_fixtures(
    mode: str = Query("today", description="live, today, yesterday or tomorrow"),
    day: Optional[str] = Query(None, alias="date", description="YYYY-MM-DD"),
    service: FixturesService = Depends(get_fixtures_service),
):
    """Flat fixture list with a coarse live/halftime/finished/upcoming status."""
    try:
        fixtures = await service.list_fixtures(mode, day)
    except ValueError as e:
        return _error(str(e), 400)
    except FootballApiError as e:
        logger.error(f"Error fetching fixtures ({mode}): {e}")
        return _error(str(e), 500)
    return {"fixtures": fixtures}


@router.get("/league-h2h")
async def get_league_h2h(
    team1: Optional[str] = Query(None),
    team2: Optional[str] = Query(None),
    last: str = Query("20", description="How many past meetings to fetch"),
    service: HeadToHeadService = Depends(get_head_to_head_service),
):
    """Past meetings of two teams, grouped by season, with a W/D/L summary for team1."""
    if not team1 or not team2:
        return _error("team1 and team2 parameters are required", 400)

    try:
        return await service.get_h2h(team1, team2, last)
    except ValueError as e:
        return _error(str(e), 400)
    except FootballApiError as e:
        logger.error(f"Error fetching H2H {team1}-{team2}: {e}")
        return _error("Failed to fetch H2H data", e.status_code)
