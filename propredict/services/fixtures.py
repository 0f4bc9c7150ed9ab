"""Flat fixture listings for live scores."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from propredict.services.football_api import FootballApiClient, football_api

logger = logging.getLogger(__name__)

LIVE_STATUSES = frozenset({"1H", "2H", "ET", "P", "LIVE"})
HALFTIME_STATUSES = frozenset({"HT", "BT"})
ENDED_STATUSES = frozenset({"FT", "AET", "PEN", "PST", "CANC", "ABD", "AWD", "WO"})

FIXTURE_MODES = ("live", "today", "yesterday", "tomorrow")

_MODE_OFFSETS = {"yesterday": -1, "today": 0, "tomorrow": 1}


def map_status(short_status: Optional[str]) -> str:
    """Collapse an API-Football short status into live/halftime/finished/upcoming."""
    if short_status in LIVE_STATUSES:
        return "live"
    if short_status in HALFTIME_STATUSES:
        return "halftime"
    if short_status in ENDED_STATUSES:
        return "finished"
    return "upcoming"


def fixture_query(mode: str, day: Optional[str] = None, today: Optional[date] = None) -> Dict[str, str]:
    """
    Build the ``/fixtures`` query for a listing mode.

    An explicit ``day`` (YYYY-MM-DD) wins over the mode's relative date;
    ``live`` ignores both.
    """
    if mode == "live":
        return {"live": "all"}
    if mode not in _MODE_OFFSETS:
        raise ValueError(f"Invalid mode: {mode}")
    if day:
        return {"date": day}
    today = today or datetime.now(timezone.utc).date()
    return {"date": (today + timedelta(days=_MODE_OFFSETS[mode])).isoformat()}


def flatten_fixture(item: Dict[str, Any]) -> Dict[str, Any]:
    fixture = item.get("fixture") or {}
    status = fixture.get("status") or {}
    teams = item.get("teams") or {}
    home = teams.get("home") or {}
    away = teams.get("away") or {}
    goals = item.get("goals") or {}
    league = item.get("league") or {}

    start_time = None
    if fixture.get("date"):
        start_time = datetime.fromisoformat(fixture["date"]).strftime("%H:%M")

    return {
        "id": str(fixture.get("id")),
        "homeTeam": home.get("name"),
        "awayTeam": away.get("name"),
        "homeScore": goals.get("home"),
        "awayScore": goals.get("away"),
        "status": map_status(status.get("short")),
        "minute": status.get("elapsed"),
        "startTime": start_time,
        "league": league.get("name"),
        "leagueCountry": league.get("country"),
        "leagueLogo": league.get("logo"),
        "homeLogo": home.get("logo"),
        "awayLogo": away.get("logo"),
    }


class FixturesService:
    def __init__(self, api: Optional[FootballApiClient] = None):
        self.api = api or football_api

    async def list_fixtures(self, mode: str = "today", day: Optional[str] = None) -> List[Dict[str, Any]]:
        params = fixture_query(mode, day)
        # Live scores must not be served from cache
        response = await self.api.get_response("/fixtures", params, use_cache=mode != "live")
        fixtures = [flatten_fixture(item) for item in response]
        logger.info(f"Returning {len(fixtures)} fixtures for mode: {mode}")
        return fixtures
