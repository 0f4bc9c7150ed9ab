"""Match detail aggregation for a single fixture."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from propredict.services.football_api import FootballApiClient, FootballApiError, football_api

logger = logging.getLogger(__name__)

H2H_LAST = 10


class FixtureNotFound(LookupError):
    """Raised when API-Football has no fixture with the requested id."""


def normalize_h2h_match(match: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten one head-to-head fixture, filling gaps with empty values."""
    fixture = match.get("fixture") or {}
    league = match.get("league") or {}
    teams = match.get("teams") or {}
    goals = match.get("goals") or {}

    def team(side: str) -> Dict[str, Any]:
        data = teams.get(side) or {}
        return {
            "id": data.get("id") or 0,
            "name": data.get("name") or "",
            "logo": data.get("logo") or "",
            "winner": data.get("winner"),
        }

    return {
        "fixture": {
            "id": fixture.get("id") or 0,
            "date": fixture.get("date") or "",
            "venue": fixture.get("venue") or None,
        },
        "league": {
            "name": league.get("name") or "",
            "country": league.get("country") or "",
            "logo": league.get("logo") or "",
        },
        "teams": {"home": team("home"), "away": team("away")},
        "goals": {"home": goals.get("home"), "away": goals.get("away")},
    }


class MatchDetailsService:
    """Builds the match detail payload from several API-Football endpoints."""

    def __init__(self, api: Optional[FootballApiClient] = None):
        self.api = api or football_api

    async def _section(self, fixture_id: str, path: str, params: Dict[str, Any]) -> List[Any]:
        """Fetch one secondary section; an upstream failure leaves it empty."""
        try:
            return await self.api.get_response(path, params)
        except FootballApiError as e:
            logger.warning(f"{path} unavailable for fixture {fixture_id}: {e}")
            return []

    async def get_match_details(self, fixture_id: str) -> Dict[str, Any]:
        """
        Fetch a fixture with its statistics, lineups, events, odds and H2H.

        Args:
            fixture_id: API-Football fixture ID.

        Returns:
            Normalized match detail payload.

        Raises:
            FixtureNotFound: If the fixture does not exist.
            FootballApiError: If the fixture itself cannot be fetched. Failed
                secondary sections come back empty.
        """
        fixtures = await self.api.get_response("/fixtures", {"id": fixture_id})
        if not fixtures:
            raise FixtureNotFound(f"Fixture {fixture_id} not found")

        fixture = fixtures[0]
        teams = fixture.get("teams") or {}
        home_id = (teams.get("home") or {}).get("id")
        away_id = (teams.get("away") or {}).get("id")

        calls = [
            self._section(fixture_id, "/fixtures/statistics", {"fixture": fixture_id}),
            self._section(fixture_id, "/fixtures/lineups", {"fixture": fixture_id}),
            self._section(fixture_id, "/fixtures/events", {"fixture": fixture_id}),
            self._section(fixture_id, "/odds", {"fixture": fixture_id}),
        ]
        if home_id and away_id:
            calls.append(
                self._section(
                    fixture_id,
                    "/fixtures/headtohead",
                    {"h2h": f"{home_id}-{away_id}", "last": H2H_LAST},
                )
            )

        results = await asyncio.gather(*calls)
        statistics, lineups, events, odds = results[:4]
        h2h: List[Dict[str, Any]] = []
        if len(results) > 4:
            h2h = [normalize_h2h_match(m) for m in results[4]]

        info = fixture.get("fixture") or {}
        logger.debug(f"Built match details for fixture {fixture_id} ({len(h2h)} h2h)")
        return {
            "fixture": {
                "id": info.get("id"),
                "date": info.get("date"),
                "timestamp": info.get("timestamp"),
                "venue": info.get("venue"),
                "status": info.get("status"),
            },
            "league": fixture.get("league"),
            "teams": fixture.get("teams"),
            "goals": fixture.get("goals"),
            "score": fixture.get("score"),
            "statistics": statistics,
            "lineups": lineups,
            "events": events,
            "odds": odds,
            "h2h": h2h,
        }
