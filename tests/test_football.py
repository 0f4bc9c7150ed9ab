"""Tests for the API-Football client and the data proxy services."""

import asyncio
from datetime import date

import httpx
import pytest

from propredict.services.fixtures import FixturesService, fixture_query, flatten_fixture, map_status
from propredict.services.football_api import FootballApiClient, FootballApiError
from propredict.services.head_to_head import HeadToHeadService, group_by_season, h2h_summary
from propredict.services.league_stats import InvalidStatsType, LeagueStatsService
from propredict.services.match_details import FixtureNotFound, MatchDetailsService, normalize_h2h_match


def mock_client(handler, api_key="key-123"):
    client = FootballApiClient(api_key=api_key, base_url="https://football.test")
    client._http_client = httpx.AsyncClient(
        base_url="https://football.test",
        transport=httpx.MockTransport(handler),
    )
    return client


class TestFootballApiClient:
    def test_sends_key_and_caches(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"errors": [], "response": [{"id": 1}]})

        client = mock_client(handler)

        async def scenario():
            first = await client.get_response("/fixtures", {"id": 1})
            second = await client.get_response("/fixtures", {"id": "1"})
            return first, second

        first, second = asyncio.run(scenario())
        assert first == second == [{"id": 1}]
        assert len(seen) == 1
        assert seen[0].headers["x-apisports-key"] == "key-123"
        assert seen[0].url.params["id"] == "1"

    def test_uncached_calls_always_hit_upstream(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"response": []})

        client = mock_client(handler)

        async def scenario():
            await client.get("/fixtures", {"live": "all"}, use_cache=False)
            await client.get("/fixtures", {"live": "all"}, use_cache=False)

        asyncio.run(scenario())
        assert len(calls) == 2

    def test_upstream_errors_payload(self):
        client = mock_client(lambda request: httpx.Response(200, json={"errors": {"token": "bad"}}))
        with pytest.raises(FootballApiError):
            asyncio.run(client.get("/fixtures"))

    def test_non_200(self):
        client = mock_client(lambda request: httpx.Response(429, json={}))
        with pytest.raises(FootballApiError) as exc:
            asyncio.run(client.get("/fixtures"))
        assert exc.value.status_code == 429

    def test_missing_key(self):
        client = mock_client(lambda request: httpx.Response(200, json={}), api_key="")
        with pytest.raises(FootballApiError) as exc:
            asyncio.run(client.get("/fixtures"))
        assert exc.value.status_code == 500


class FakeApi:
    """Answers get_response from a {(path, frozen params): response} table."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def get_response(self, path, params=None, *, use_cache=True):
        params = params or {}
        self.calls.append((path, params, use_cache))
        key = (path, tuple(sorted((k, str(v)) for k, v in params.items())))
        answer = self.responses.get(key, [])
        if isinstance(answer, Exception):
            raise answer
        return answer


def key(path, **params):
    return (path, tuple(sorted((k, str(v)) for k, v in params.items())))


STANDING = {
    "league": {
        "id": 39,
        "standings": [[{
            "rank": 1,
            "team": {"id": 42, "name": "Arsenal", "logo": "a.png"},
            "points": 70,
            "goalsDiff": 40,
            "form": "WWDLW",
            "all": {"played": 30, "win": 21, "draw": 7, "lose": 2, "goals": {"for": 65, "against": 25}},
        }]],
    }
}


class TestLeagueStats:
    def test_standings(self):
        api = FakeApi({key("/standings", league="39", season="2024"): [STANDING]})

        data = asyncio.run(LeagueStatsService(api).get_stats("39", "standings", "2024"))

        row = data["standings"][0]
        assert data["type"] == "standings"
        assert row["team"]["name"] == "Arsenal"
        assert row["form"] == ["W", "W", "D", "L", "W"]
        assert row["all"]["goals"] == {"for": 65, "against": 25}

    def test_empty_season_falls_back_to_previous(self):
        api = FakeApi({key("/standings", league="39", season="2023"): [STANDING]})

        data = asyncio.run(LeagueStatsService(api).get_stats("39", "standings", "2024"))

        assert [c[1]["season"] for c in api.calls] == ["2024", "2023"]
        assert len(data["standings"]) == 1

    def test_failed_season_falls_back_to_previous(self):
        api = FakeApi({
            key("/players/topscorers", league="39", season="2024"): FootballApiError("down"),
            key("/players/topscorers", league="39", season="2023"): [{
                "player": {"id": 9, "name": "Haaland"},
                "statistics": [{
                    "team": {"id": 50, "name": "Man City"},
                    "games": {"appearences": 28, "minutes": 2400},
                    "goals": {"total": 27, "assists": 5},
                    "penalty": {"scored": 6},
                }],
            }],
        })

        data = asyncio.run(LeagueStatsService(api).get_stats("39", "scorers", "2024"))

        player = data["players"][0]
        assert player["goals"] == 27
        assert player["games"]["appearances"] == 28
        assert player["penalties"] == 6

    def test_failed_fallback_after_empty_keeps_empty(self):
        api = FakeApi({key("/fixtures/rounds", league="39", season="2023"): FootballApiError("down")})

        data = asyncio.run(LeagueStatsService(api).get_stats("39", "rounds", "2024"))

        assert data == {"type": "rounds", "rounds": []}

    def test_invalid_type(self):
        with pytest.raises(InvalidStatsType):
            asyncio.run(LeagueStatsService(FakeApi({})).get_stats("39", "cards"))

    def test_invalid_season(self):
        with pytest.raises(ValueError):
            asyncio.run(LeagueStatsService(FakeApi({})).get_stats("39", "standings", "last"))


FIXTURE = {
    "fixture": {"id": 1001, "date": "2025-03-01T20:00:00+00:00", "status": {"short": "FT", "elapsed": 90}},
    "league": {"name": "Premier League", "country": "England"},
    "teams": {"home": {"id": 42, "name": "Arsenal"}, "away": {"id": 49, "name": "Chelsea"}},
    "goals": {"home": 2, "away": 1},
    "score": {"fulltime": {"home": 2, "away": 1}},
}


class TestMatchDetails:
    def test_collects_every_section(self):
        api = FakeApi({
            key("/fixtures", id="1001"): [FIXTURE],
            key("/fixtures/statistics", fixture="1001"): [{"team": {"id": 42}}],
            key("/fixtures/lineups", fixture="1001"): [{"formation": "4-3-3"}],
            key("/fixtures/events", fixture="1001"): [{"type": "Goal"}],
            key("/odds", fixture="1001"): [{"bookmakers": []}],
            key("/fixtures/headtohead", h2h="42-49", last=10): [FIXTURE, {}],
        })

        data = asyncio.run(MatchDetailsService(api).get_match_details("1001"))

        assert data["fixture"]["id"] == 1001
        assert data["lineups"] == [{"formation": "4-3-3"}]
        assert data["events"] == [{"type": "Goal"}]
        assert len(data["h2h"]) == 2
        assert data["h2h"][1]["teams"]["home"] == {"id": 0, "name": "", "logo": "", "winner": None}

    def test_unknown_fixture(self):
        with pytest.raises(FixtureNotFound):
            asyncio.run(MatchDetailsService(FakeApi({})).get_match_details("999"))

    def test_failed_section_is_left_empty(self):
        api = FakeApi({
            key("/fixtures", id="1001"): [FIXTURE],
            key("/fixtures/events", fixture="1001"): [{"type": "Goal"}],
            key("/odds", fixture="1001"): FootballApiError("odds down"),
            key("/fixtures/headtohead", h2h="42-49", last=10): FootballApiError("h2h down"),
        })

        data = asyncio.run(MatchDetailsService(api).get_match_details("1001"))

        assert data["odds"] == []
        assert data["h2h"] == []
        assert data["events"] == [{"type": "Goal"}]

    def test_odds_not_on_plan(self):
        def handler(request):
            if request.url.path == "/odds":
                return httpx.Response(
                    200, json={"errors": {"plan": "Odds not available on your plan"}, "response": []}
                )
            if request.url.path == "/fixtures":
                return httpx.Response(200, json={"errors": [], "response": [FIXTURE]})
            return httpx.Response(200, json={"errors": [], "response": [{"ok": True}]})

        data = asyncio.run(MatchDetailsService(mock_client(handler)).get_match_details("1001"))

        assert data["fixture"]["id"] == 1001
        assert data["odds"] == []
        assert data["lineups"] == [{"ok": True}]

    def test_fixture_failure_propagates(self):
        api = FakeApi({key("/fixtures", id="1001"): FootballApiError("down")})
        with pytest.raises(FootballApiError):
            asyncio.run(MatchDetailsService(api).get_match_details("1001"))

    def test_normalize_h2h(self):
        match = normalize_h2h_match(FIXTURE)
        assert match["league"] == {"name": "Premier League", "country": "England", "logo": ""}
        assert match["goals"] == {"home": 2, "away": 1}


def meeting(fixture_id, day, season, home_id, away_id, home_goals, away_goals, status="FT"):
    return {
        "fixture": {"id": fixture_id, "date": f"{day}T20:00:00+00:00", "status": {"short": status}},
        "league": {"season": season},
        "teams": {
            "home": {"id": home_id, "name": "Arsenal" if home_id == 42 else "Chelsea"},
            "away": {"id": away_id, "name": "Arsenal" if away_id == 42 else "Chelsea"},
        },
        "goals": {"home": home_goals, "away": away_goals},
    }


MEETINGS = [
    meeting(1, "2023-09-01", 2023, 49, 42, 0, 2),
    meeting(2, "2024-03-01", 2023, 42, 49, 1, 1),
    meeting(3, "2024-10-05", 2024, 42, 49, 0, 1),
    meeting(4, "2025-04-01", 2024, 49, 42, None, None, status="NS"),
]


class TestHeadToHead:
    def test_summary_counts_finished_only(self):
        assert h2h_summary(MEETINGS, 42) == {"team1Wins": 1, "draws": 1, "team2Wins": 1, "totalMatches": 3}
        assert h2h_summary(MEETINGS, 49)["team1Wins"] == 1

    def test_grouped_newest_first(self):
        seasons = group_by_season(MEETINGS)

        assert [s["season"] for s in seasons] == [2024, 2023]
        assert [m["fixture"]["id"] for m in seasons[0]["matches"]] == [4, 3]
        assert [m["fixture"]["id"] for m in seasons[1]["matches"]] == [2, 1]

    def test_get_h2h(self):
        api = FakeApi({key("/fixtures/headtohead", h2h="42-49", last=20): MEETINGS})

        data = asyncio.run(HeadToHeadService(api).get_h2h("42", "49"))

        assert data["team1"] == {"id": 42, "name": "Arsenal"}
        assert data["team2"] == {"id": 49, "name": "Chelsea"}
        assert data["summary"]["totalMatches"] == 3
        assert len(data["seasons"]) == 2

    def test_upstream_failure_propagates(self):
        api = FakeApi({key("/fixtures/headtohead", h2h="42-49", last=5): FootballApiError("down")})
        with pytest.raises(FootballApiError):
            asyncio.run(HeadToHeadService(api).get_h2h("42", "49", "5"))


class TestFixtures:
    @pytest.mark.parametrize(
        "short,expected",
        [("1H", "live"), ("HT", "halftime"), ("FT", "finished"), ("PST", "finished"), ("NS", "upcoming"), (None, "upcoming")],
    )
    def test_map_status(self, short, expected):
        assert map_status(short) == expected

    def test_query_for_each_mode(self):
        today = date(2025, 3, 1)
        assert fixture_query("live") == {"live": "all"}
        assert fixture_query("today", today=today) == {"date": "2025-03-01"}
        assert fixture_query("yesterday", today=today) == {"date": "2025-02-28"}
        assert fixture_query("tomorrow", today=today) == {"date": "2025-03-02"}
        assert fixture_query("today", "2025-01-05", today=today) == {"date": "2025-01-05"}

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            fixture_query("last-week")

    def test_flatten(self):
        flat = flatten_fixture(FIXTURE)
        assert flat["id"] == "1001"
        assert flat["homeTeam"] == "Arsenal"
        assert flat["status"] == "finished"
        assert flat["startTime"] == "20:00"

    def test_live_fixtures_bypass_cache(self):
        api = FakeApi({key("/fixtures", live="all"): [FIXTURE]})

        fixtures = asyncio.run(FixturesService(api).list_fixtures("live"))

        assert len(fixtures) == 1
        assert api.calls[0][2] is False
