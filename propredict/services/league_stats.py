"""League statistics (standings, top scorers/assists, fixtures, rounds)."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from propredict.services.football_api import FootballApiClient, FootballApiError, football_api

logger = logging.getLogger(__name__)

STATS_ENDPOINTS = {
    "standings": "/standings",
    "scorers": "/players/topscorers",
    "assists": "/players/topassists",
    "fixtures": "/fixtures",
    "rounds": "/fixtures/rounds",
}

STATS_TYPES = tuple(STATS_ENDPOINTS)


class InvalidStatsType(ValueError):
    """Raised for a stats type outside STATS_TYPES."""


def current_season() -> str:
    """API-Football names a season by its starting year."""
    return str(datetime.now(timezone.utc).year)


def _first_statistics(item: Dict[str, Any]) -> Dict[str, Any]:
    stats = item.get("statistics") or []
    return stats[0] if stats else {}


def _player(item: Dict[str, Any]) -> Dict[str, Any]:
    player = item.get("player") or {}
    stats = _first_statistics(item)
    team = stats.get("team") or {}
    games = stats.get("games") or {}
    goals = stats.get("goals") or {}
    return {
        "player": {
            "id": player.get("id"),
            "name": player.get("name"),
            "firstname": player.get("firstname"),
            "lastname": player.get("lastname"),
            "photo": player.get("photo"),
            "nationality": player.get("nationality"),
        },
        "team": {
            "id": team.get("id"),
            "name": team.get("name"),
            "logo": team.get("logo"),
        },
        "games": {
            # Upstream spells it "appearences"
            "appearances": games.get("appearences") or 0,
            "minutes": games.get("minutes") or 0,
        },
        "goals": goals.get("total") or 0,
        "assists": goals.get("assists") or 0,
    }


def normalize_standings(response: List[Any]) -> Dict[str, Any]:
    league = (response[0].get("league") if response else None) or {}
    groups = league.get("standings") or [[]]
    table = groups[0] if groups else []

    rows = []
    for team in table:
        overall = team.get("all") or {}
        goals = overall.get("goals") or {}
        rows.append({
            "rank": team.get("rank"),
            "team": {
                "id": (team.get("team") or {}).get("id"),
                "name": (team.get("team") or {}).get("name"),
                "logo": (team.get("team") or {}).get("logo"),
            },
            "points": team.get("points"),
            "goalsDiff": team.get("goalsDiff"),
            "form": list(team.get("form") or ""),
            "all": {
                "played": overall.get("played") or 0,
                "win": overall.get("win") or 0,
                "draw": overall.get("draw") or 0,
                "lose": overall.get("lose") or 0,
                "goals": {
                    "for": goals.get("for") or 0,
                    "against": goals.get("against") or 0,
                },
            },
            "home": team.get("home"),
            "away": team.get("away"),
            "description": team.get("description"),
        })
    return {"type": "standings", "league": league, "standings": rows}


def normalize_scorers(response: List[Any]) -> Dict[str, Any]:
    players = []
    for item in response:
        row = _player(item)
        row["penalties"] = (_first_statistics(item).get("penalty") or {}).get("scored") or 0
        players.append(row)
    return {"type": "scorers", "players": players}


def normalize_assists(response: List[Any]) -> Dict[str, Any]:
    return {"type": "assists", "players": [_player(item) for item in response]}


def normalize_fixtures(response: List[Any]) -> Dict[str, Any]:
    fixtures = []
    for item in response:
        fixture = item.get("fixture") or {}
        status = fixture.get("status") or {}
        teams = item.get("teams") or {}
        goals = item.get("goals") or {}

        def side(name: str) -> Dict[str, Any]:
            team = teams.get(name) or {}
            return {
                "id": team.get("id"),
                "name": team.get("name"),
                "logo": team.get("logo"),
                "goals": goals.get(name),
            }

        fixtures.append({
            "id": fixture.get("id"),
            "date": fixture.get("date"),
            "timestamp": fixture.get("timestamp"),
            "status": {
                "short": status.get("short"),
                "long": status.get("long"),
                "elapsed": status.get("elapsed"),
            },
            "round": (item.get("league") or {}).get("round"),
            "home": side("home"),
            "away": side("away"),
        })
    return {"type": "fixtures", "fixtures": fixtures}


def normalize_rounds(response: List[Any]) -> Dict[str, Any]:
    return {"type": "rounds", "rounds": list(response)}


NORMALIZERS: Dict[str, Callable[[List[Any]], Dict[str, Any]]] = {
    "standings": normalize_standings,
    "scorers": normalize_scorers,
    "assists": normalize_assists,
    "fixtures": normalize_fixtures,
    "rounds": normalize_rounds,
}


class LeagueStatsService:
    """Fetches league statistics, falling back to the previous season."""

    def __init__(self, api: Optional[FootballApiClient] = None):
        self.api = api or football_api

    async def _fetch_with_fallback(self, path: str, league: str, season: str) -> List[Any]:
        """
        Fetch ``path`` for a season, retrying the previous season once.

        The previous season is tried when the requested one fails or comes
        back empty. If the retry fails after an empty answer, the empty
        answer is kept.
        """
        fallback = str(int(season) - 1)
        try:
            response = await self.api.get_response(path, {"league": league, "season": season})
        except FootballApiError as e:
            logger.info(f"Season {season} failed for {path} ({e}), trying {fallback}")
            return await self.api.get_response(path, {"league": league, "season": fallback})

        if response:
            return response

        logger.info(f"Season {season} empty for {path}, trying {fallback}")
        try:
            return await self.api.get_response(path, {"league": league, "season": fallback})
        except FootballApiError as e:
            logger.warning(f"Fallback season {fallback} failed for {path}: {e}")
            return response

    async def get_stats(
        self,
        league: str,
        stats_type: str,
        season: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Get one kind of league statistics.

        Args:
            league: API-Football league ID.
            stats_type: One of STATS_TYPES.
            season: Season starting year, defaults to the current year.

        Raises:
            InvalidStatsType: If ``stats_type`` is unknown.
            ValueError: If ``season`` is not a year.
            FootballApiError: If both seasons fail upstream.
        """
        if stats_type not in NORMALIZERS:
            raise InvalidStatsType(
                "Invalid type parameter. Use: standings, scorers, assists, fixtures, or rounds"
            )
        season = season or current_season()
        if not season.isdigit():
            raise ValueError(f"Invalid season parameter: {season}")

        response = await self._fetch_with_fallback(STATS_ENDPOINTS[stats_type], league, season)
        return NORMALIZERS[stats_type](response)
