"""Head-to-head history between two teams, grouped by season."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from propredict.services.football_api import FootballApiClient, football_api

logger = logging.getLogger(__name__)

FINISHED_STATUSES = ("FT", "AET", "PEN")
DEFAULT_LAST = "20"


def _as_int(value: str, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {name} parameter")


def _sides(match: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    teams = match.get("teams") or {}
    return teams.get("home") or {}, teams.get("away") or {}


def h2h_summary(matches: List[Dict[str, Any]], team1_id: int) -> Dict[str, int]:
    """Wins and draws seen from ``team1_id``; only finished matches count."""
    team1_wins = draws = team2_wins = 0
    for match in matches:
        if ((match.get("fixture") or {}).get("status") or {}).get("short") not in FINISHED_STATUSES:
            continue
        home, _ = _sides(match)
        goals = match.get("goals") or {}
        home_goals = goals.get("home") or 0
        away_goals = goals.get("away") or 0

        if home_goals == away_goals:
            draws += 1
        elif (home_goals > away_goals) == (home.get("id") == team1_id):
            team1_wins += 1
        else:
            team2_wins += 1

    return {
        "team1Wins": team1_wins,
        "draws": draws,
        "team2Wins": team2_wins,
        "totalMatches": team1_wins + draws + team2_wins,
    }


def team_names(matches: List[Dict[str, Any]], team1_id: int) -> Tuple[str, str]:
    """Names of team1 and team2, read from the first meeting."""
    if not matches:
        return "", ""
    home, away = _sides(matches[0])
    if home.get("id") == team1_id:
        return home.get("name") or "", away.get("name") or ""
    return away.get("name") or "", home.get("name") or ""


def group_by_season(matches: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Newest season first, newest match first inside each season."""
    seasons: Dict[int, List[Dict[str, Any]]] = {}
    for match in matches:
        season = (match.get("league") or {}).get("season") or 0
        seasons.setdefault(season, []).append(match)

    return [
        {
            "season": season,
            # API-Football dates are ISO-8601 in UTC, so they sort as strings
            "matches": sorted(
                seasons[season],
                key=lambda m: (m.get("fixture") or {}).get("date") or "",
                reverse=True,
            ),
        }
        for season in sorted(seasons, reverse=True)
    ]


class HeadToHeadService:
    def __init__(self, api: Optional[FootballApiClient] = None):
        self.api = api or football_api

    async def get_h2h(self, team1: str, team2: str, last: str = DEFAULT_LAST) -> Dict[str, Any]:
        """
        Meetings between two teams with a win/draw/loss summary.

        Raises:
            ValueError: If a team ID or ``last`` is not a number.
            FootballApiError: If the upstream call fails.
        """
        team1_id = _as_int(team1, "team1")
        team2_id = _as_int(team2, "team2")
        count = _as_int(last, "last")

        matches = await self.api.get_response(
            "/fixtures/headtohead",
            {"h2h": f"{team1_id}-{team2_id}", "last": count},
        )
        logger.info(f"H2H {team1_id}-{team2_id}: {len(matches)} matches")
        team1_name, team2_name = team_names(matches, team1_id)

        return {
            "team1": {"id": team1_id, "name": team1_name},
            "team2": {"id": team2_id, "name": team2_name},
            "summary": h2h_summary(matches, team1_id),
            "seasons": group_by_season(matches),
        }
