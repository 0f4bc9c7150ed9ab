"""
AI 1X2 prediction generator.

Scores both teams on recent form, season quality, a goal-rate squad proxy,
home advantage and head-to-head history, turns the weighted difference
into win/draw/loss probabilities and picks the day's premium predictions.
"""

import asyncio
import logging
import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.models.ai_prediction import AIPrediction
from propredict.services.football_api import FootballApiClient, FootballApiError, football_api
from propredict.services.match_details import FixtureNotFound

logger = logging.getLogger(__name__)

# Premium selection
PREMIUM_MIN_CONFIDENCE = 85
PREMIUM_MAX_COUNT = 5
PREMIUM_MIN_COUNT = 3
PREMIUM_ALLOWED_RISK = ("low", "medium")

# Factor weights, summing to 1
WEIGHT_FORM = 0.40
WEIGHT_QUALITY = 0.25
WEIGHT_SQUAD = 0.15
WEIGHT_HOME = 0.10
WEIGHT_H2H = 0.10

HOME_ADVANTAGE_SCORE = 60
AWAY_ADVANTAGE_SCORE = 40

FORM_MATCHES = 3
FINISHED = "FT-AET-PEN"


class InvalidTeamData(ValueError):
    """Raised when a fixture has no usable team IDs."""


@dataclass(frozen=True)
class FormMatch:
    result: str
    goals_for: int
    goals_against: int
    is_home: bool


@dataclass(frozen=True)
class H2HMatch:
    home_team_id: int
    away_team_id: int
    home_goals: int
    away_goals: int


@dataclass(frozen=True)
class TeamStats:
    played: int
    wins: int
    draws: int
    losses: int
    goals_for: int
    goals_against: int
    form: str = ""


@dataclass(frozen=True)
class PredictionResult:
    prediction: str
    predicted_score: str
    confidence: int
    home_win: int
    draw: int
    away_win: int
    risk_level: str
    analysis: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _round(value: float) -> int:
    # Halves round up, so 88.5 -> 89 and 2.5 -> 3
    return math.floor(value + 0.5)


def parse_form_match(match: Dict[str, Any], team_id: int) -> FormMatch:
    teams = match.get("teams") or {}
    goals = match.get("goals") or {}
    home = teams.get("home") or {}
    away = teams.get("away") or {}
    is_home = home.get("id") == team_id
    side, other = (home, away) if is_home else (away, home)

    winner = side.get("winner")
    result = "W" if winner is True else "L" if winner is False else "D"
    goals_for = goals.get("home" if is_home else "away") or 0
    goals_against = goals.get("away" if is_home else "home") or 0
    return FormMatch(result, goals_for, goals_against, is_home)


def parse_h2h_match(match: Dict[str, Any]) -> H2HMatch:
    teams = match.get("teams") or {}
    goals = match.get("goals") or {}
    return H2HMatch(
        home_team_id=(teams.get("home") or {}).get("id"),
        away_team_id=(teams.get("away") or {}).get("id"),
        home_goals=goals.get("home") or 0,
        away_goals=goals.get("away") or 0,
    )


def parse_team_stats(stats: Dict[str, Any]) -> TeamStats:
    fixtures = stats.get("fixtures") or {}
    goals = stats.get("goals") or {}

    def total(section: Dict[str, Any], key: str) -> int:
        return ((section.get(key) or {}).get("total")) or 0

    def goal_total(key: str) -> int:
        return (((goals.get(key) or {}).get("total") or {}).get("total")) or 0

    return TeamStats(
        played=total(fixtures, "played"),
        wins=total(fixtures, "wins"),
        draws=total(fixtures, "draws"),
        losses=total(fixtures, "loses"),
        goals_for=goal_total("for"),
        goals_against=goal_total("against"),
        form=stats.get("form") or "",
    )


def form_score(form: Sequence[FormMatch]) -> float:
    """0-100 from the last three results: a win is a third, a draw a sixth."""
    if not form:
        return 50.0
    per_match = 100 / 3
    score = 0.0
    for match in form[:3]:
        if match.result == "W":
            score += per_match
        elif match.result == "D":
            score += per_match / 2
    return min(100.0, score)


def goal_rate(form: Sequence[FormMatch]) -> Dict[str, float]:
    if not form:
        return {"scored": 1.0, "conceded": 1.0}
    recent = form[:3]
    return {
        "scored": sum(m.goals_for for m in recent) / len(form),
        "conceded": sum(m.goals_against for m in recent) / len(form),
    }


def quality_score(stats: Optional[TeamStats]) -> float:
    """0-100 from season win rate (60%) and goal difference per game (40%)."""
    if stats is None or stats.played == 0:
        return 50.0
    win_score = stats.wins / stats.played * 100
    goal_diff = (stats.goals_for - stats.goals_against) / stats.played
    gd_score = min(100.0, max(0.0, 50 + goal_diff * 10))
    return win_score * 0.6 + gd_score * 0.4


def h2h_score(h2h: Sequence[H2HMatch], team_a: int, team_b: int) -> float:
    """0-100 for ``team_a`` over the last three meetings, 50 without history."""
    if not h2h:
        return 50.0
    wins = draws = 0
    for match in h2h[:3]:
        a_home = match.home_team_id == team_a
        a_goals = match.home_goals if a_home else match.away_goals
        b_goals = match.away_goals if a_home else match.home_goals
        if a_goals > b_goals:
            wins += 1
        elif a_goals == b_goals:
            draws += 1
    per_match = 100 / 3
    return wins * per_match + draws * (per_match / 2)


def _squad_score(rate: Dict[str, float]) -> float:
    return min(100.0, rate["scored"] * 30 + (100 - rate["conceded"] * 20))


def outcome_probabilities(diff: float) -> Dict[str, int]:
    """Home/draw/away percentages for a weighted strength difference."""
    gap = abs(diff)
    if gap < 5:
        home, away, draw = 32 + diff * 0.5, 32 - diff * 0.5, 36.0
    elif gap < 15:
        favourite, underdog, draw = 40 + gap * 0.8, 30 - gap * 0.6, 30 - gap * 0.2
        home, away = (favourite, underdog) if diff > 0 else (underdog, favourite)
    else:
        favourite = min(75, 45 + gap)
        underdog = max(10, 25 - gap * 0.5)
        draw = 100 - favourite - underdog
        home, away = (favourite, underdog) if diff > 0 else (underdog, favourite)

    home = max(5, min(80, home))
    away = max(5, min(80, away))
    draw = max(10, min(40, draw))

    total = home + draw + away
    home_pct = _round(home / total * 100)
    draw_pct = _round(draw / total * 100)
    return {"home_win": home_pct, "draw": draw_pct, "away_win": 100 - home_pct - draw_pct}


def pick_outcome(home_win: int, draw: int, away_win: int) -> str:
    if home_win > away_win and home_win > draw:
        return "1"
    if away_win > home_win and away_win > draw:
        return "2"
    return "X"


def predict_score(
    home_scoring: float,
    away_scoring: float,
    home_conceding: float,
    away_conceding: float,
    prediction: str,
) -> str:
    """A plausible scoreline consistent with the predicted outcome, capped at 4."""
    home_expected = (home_scoring + away_conceding) / 2
    away_expected = (away_scoring + home_conceding) / 2

    if prediction == "1":
        home_expected = max(home_expected, away_expected + 0.5)
    elif prediction == "2":
        away_expected = max(away_expected, home_expected + 0.5)
    else:
        home_expected = away_expected = (home_expected + away_expected) / 2

    home_goals = _round(home_expected)
    away_goals = _round(away_expected)
    if prediction == "1" and home_goals <= away_goals:
        home_goals = away_goals + 1
    elif prediction == "2" and away_goals <= home_goals:
        away_goals = home_goals + 1
    elif prediction == "X":
        home_goals = away_goals = _round((home_goals + away_goals) / 2)

    home_goals = min(4, max(0, home_goals))
    away_goals = min(4, max(0, away_goals))
    return f"{home_goals}-{away_goals}"


def confidence_for(max_prob: int) -> int:
    """Map the favourite's probability to a 50-92 confidence."""
    if max_prob >= 70:
        confidence = min(92, 85 + (max_prob - 70) * 0.7)
    elif max_prob >= 65:
        confidence = 78 + (max_prob - 65) * 1.4
    elif max_prob >= 50:
        confidence = 60 + (max_prob - 50) * 1.2
    else:
        confidence = max(50, 50 + (max_prob - 33))
    return _round(confidence)


def risk_for(confidence: int, max_prob: int) -> str:
    if confidence >= 70 and max_prob >= 60:
        return "low"
    if confidence >= 60 or max_prob >= 45:
        return "medium"
    return "high"


def build_analysis(
    home_team: str,
    away_team: str,
    prediction: str,
    home_form: float,
    away_form: float,
    home_quality: float,
    away_quality: float,
    confidence: int,
) -> str:
    form_diff = home_form - away_form
    quality_diff = home_quality - away_quality

    if prediction == "1":
        if form_diff > 20:
            text = f"{home_team} enters in strong recent form, winning consistently while {away_team} has struggled. "
        elif quality_diff > 15:
            text = f"{home_team} has the overall quality advantage with better season stats. "
        else:
            text = f"{home_team} holds a slight edge with home advantage and marginally better form. "
    elif prediction == "2":
        if form_diff < -20:
            text = (
                f"{away_team} arrives in excellent form, looking confident despite playing away. "
                f"{home_team} has been inconsistent recently. "
            )
        elif quality_diff < -15:
            text = f"{away_team} is the stronger side overall this season and should overcome the home factor. "
        else:
            text = f"{away_team} has shown better quality and form, making them slight favorites despite playing away. "
    elif abs(form_diff) < 10 and abs(quality_diff) < 10:
        text = "Evenly matched contest with both teams showing similar form and quality. "
    else:
        text = "Balanced matchup where neither side has a clear advantage. Both teams capable of scoring. "

    if confidence >= 70:
        text += "Strong statistical indicators support this outcome."
    elif confidence >= 60:
        text += "Moderate certainty based on available data."
    else:
        text += "Competitive fixture with inherent uncertainty."
    return text


def calculate_prediction(
    home_form: Sequence[FormMatch],
    away_form: Sequence[FormMatch],
    home_stats: Optional[TeamStats],
    away_stats: Optional[TeamStats],
    h2h: Sequence[H2HMatch],
    home_team_id: int,
    away_team_id: int,
    home_team: str,
    away_team: str,
) -> PredictionResult:
    """
    Weighted 1X2 prediction for one fixture.

    Every factor defaults to a neutral 50 when its data is missing, so a
    fixture without history still gets a (low-confidence) prediction.
    """
    home_form_score = form_score(home_form)
    away_form_score = form_score(away_form)
    home_quality = quality_score(home_stats)
    away_quality = quality_score(away_stats)
    home_rate = goal_rate(home_form)
    away_rate = goal_rate(away_form)
    home_h2h = h2h_score(h2h, home_team_id, away_team_id)

    home_total = (
        home_form_score * WEIGHT_FORM
        + home_quality * WEIGHT_QUALITY
        + _squad_score(home_rate) * WEIGHT_SQUAD
        + HOME_ADVANTAGE_SCORE * WEIGHT_HOME
        + home_h2h * WEIGHT_H2H
    )
    away_total = (
        away_form_score * WEIGHT_FORM
        + away_quality * WEIGHT_QUALITY
        + _squad_score(away_rate) * WEIGHT_SQUAD
        + AWAY_ADVANTAGE_SCORE * WEIGHT_HOME
        + (100 - home_h2h) * WEIGHT_H2H
    )

    probabilities = outcome_probabilities(home_total - away_total)
    prediction = pick_outcome(**probabilities)
    max_prob = max(probabilities.values())
    confidence = confidence_for(max_prob)

    return PredictionResult(
        prediction=prediction,
        predicted_score=predict_score(
            home_rate["scored"],
            away_rate["scored"],
            home_rate["conceded"],
            away_rate["conceded"],
            prediction,
        ),
        confidence=confidence,
        risk_level=risk_for(confidence, max_prob),
        analysis=build_analysis(
            home_team,
            away_team,
            prediction,
            home_form_score,
            away_form_score,
            home_quality,
            away_quality,
            confidence,
        ),
        **probabilities,
    )


def select_premium(predictions: Sequence[Any]) -> List[Any]:
    """
    Choose the premium predictions among ``predictions``.

    Candidates need at least 85% confidence and low or medium risk. Non-draws
    come first, at most one draw is added, five at most overall, ordered by
    confidence.
    """
    ranked = sorted(predictions, key=lambda p: p.confidence, reverse=True)
    candidates = [
        p for p in ranked
        if p.confidence >= PREMIUM_MIN_CONFIDENCE and p.risk_level in PREMIUM_ALLOWED_RISK
    ]
    non_draws = [p for p in candidates if p.prediction != "X"]
    draws = [p for p in candidates if p.prediction == "X"]

    chosen = non_draws[:PREMIUM_MAX_COUNT]
    if len(chosen) < PREMIUM_MAX_COUNT and draws:
        chosen.append(draws[0])
    chosen.sort(key=lambda p: p.confidence, reverse=True)

    if 0 < len(chosen) < PREMIUM_MIN_COUNT:
        logger.info(f"Only {len(chosen)} premium predictions qualify (target {PREMIUM_MIN_COUNT})")
    return chosen


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class AIPredictionGenerator:
    """
    Builds predictions from API-Football data and keeps the stored ones fresh.

    Args:
        db: Database session; only needed for ``regenerate``.
        api: API-Football client.
        today: Returns the current UTC date.
        delay: Seconds to pause between fixtures while regenerating.
    """

    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        api: Optional[FootballApiClient] = None,
        today: Callable[[], date] = utc_today,
        delay: float = 0.2,
    ):
        self.db = db
        self.api = api or football_api
        self.today = today
        self.delay = delay

    async def _optional(self, path: str, params: Dict[str, Any]) -> Any:
        # Input data is best-effort: a failed call counts as missing data
        try:
            return await self.api.get_response(path, params)
        except FootballApiError as e:
            logger.warning(f"Prediction input {path} unavailable: {e}")
            return []

    async def team_form(self, team_id: int, count: int = FORM_MATCHES) -> List[FormMatch]:
        matches = await self._optional("/fixtures", {"team": team_id, "last": count, "status": FINISHED})
        return [parse_form_match(m, team_id) for m in matches]

    async def head_to_head(self, home_id: int, away_id: int, count: int = FORM_MATCHES) -> List[H2HMatch]:
        matches = await self._optional("/fixtures/headtohead", {"h2h": f"{home_id}-{away_id}", "last": count})
        return [parse_h2h_match(m) for m in matches]

    async def team_stats(self, team_id: int, league_id: Optional[int], season: int) -> Optional[TeamStats]:
        if not league_id:
            return None
        stats = await self._optional(
            "/teams/statistics",
            {"team": team_id, "league": league_id, "season": season},
        )
        return parse_team_stats(stats) if isinstance(stats, dict) and stats else None

    async def predict_fixture(self, fixture: Dict[str, Any]) -> PredictionResult:
        """
        Predict one API-Football fixture.

        Raises:
            InvalidTeamData: If either team ID is missing.
        """
        teams = fixture.get("teams") or {}
        league = fixture.get("league") or {}
        home = teams.get("home") or {}
        away = teams.get("away") or {}
        home_id, away_id = home.get("id"), away.get("id")
        if not home_id or not away_id:
            raise InvalidTeamData("Invalid team data")

        league_id = league.get("id")
        season = league.get("season") or self.today().year
        home_form, away_form, h2h, home_stats, away_stats = await asyncio.gather(
            self.team_form(home_id),
            self.team_form(away_id),
            self.head_to_head(home_id, away_id),
            self.team_stats(home_id, league_id, season),
            self.team_stats(away_id, league_id, season),
        )
        return calculate_prediction(
            home_form,
            away_form,
            home_stats,
            away_stats,
            h2h,
            home_id,
            away_id,
            home.get("name") or "Home Team",
            away.get("name") or "Away Team",
        )

    async def _fixture(self, fixture_id: str) -> Dict[str, Any]:
        fixtures = await self.api.get_response("/fixtures", {"id": fixture_id}, use_cache=False)
        if not fixtures:
            raise FixtureNotFound(f"Fixture {fixture_id} not found")
        return fixtures[0]

    async def generate(self, fixture_id: str) -> Dict[str, Any]:
        """
        Predict a single fixture without storing it.

        Raises:
            FixtureNotFound: If API-Football has no such fixture.
            InvalidTeamData: If the fixture has no usable team IDs.
            FootballApiError: If the fixture itself cannot be fetched.
        """
        fixture = await self._fixture(fixture_id)
        result = await self.predict_fixture(fixture)
        teams = fixture.get("teams") or {}
        home_team = (teams.get("home") or {}).get("name") or "Home Team"
        away_team = (teams.get("away") or {}).get("name") or "Away Team"
        logger.info(
            f"Prediction for {home_team} vs {away_team}: {result.prediction} "
            f"({result.home_win}/{result.draw}/{result.away_win})"
        )
        return {"fixtureId": fixture_id, "home_team": home_team, "away_team": away_team, **result.to_dict()}

    def _window(self) -> List[date]:
        today = self.today()
        return [today, today + timedelta(days=1)]

    async def _pending_predictions(self, days: List[date]) -> List[AIPrediction]:
        result = await self.db.execute(
            select(AIPrediction).where(
                AIPrediction.match_date.in_(days),
                AIPrediction.result_status == "pending",
            )
        )
        return list(result.scalars().all())

    async def _store(self, prediction_id: Any, result: PredictionResult) -> None:
        await self.db.execute(
            update(AIPrediction)
            .where(AIPrediction.id == prediction_id)
            .values(**result.to_dict(), updated_at=datetime.now(timezone.utc))
        )
        await self.db.commit()

    async def regenerate(self) -> Dict[str, Any]:
        """Recompute every pending prediction for today and tomorrow, then pick premium."""
        days = self._window()
        predictions = await self._pending_predictions(days)
        if not predictions:
            return {"message": "No pending predictions found to regenerate", "updated": 0}

        logger.info(f"Found {len(predictions)} predictions to regenerate")
        updated = 0
        errors: List[str] = []
        for prediction in predictions:
            try:
                fixture = await self._fixture(prediction.match_id)
                result = await self.predict_fixture(fixture)
                await self._store(prediction.id, result)
                updated += 1
                logger.info(
                    f"Updated {prediction.home_team} vs {prediction.away_team}: {result.prediction} "
                    f"({result.home_win}/{result.draw}/{result.away_win})"
                )
            except (FixtureNotFound, InvalidTeamData, FootballApiError) as e:
                errors.append(f"Fixture {prediction.match_id}: {e}")
            except Exception as e:
                logger.error(f"Error regenerating prediction {prediction.id}: {e}")
                await self.db.rollback()
                errors.append(f"Fixture {prediction.match_id}: {e}")
            if self.delay:
                await asyncio.sleep(self.delay)

        assigned = await self.assign_premium(days)
        summary: Dict[str, Any] = {
            "message": "Regeneration complete",
            "total": len(predictions),
            "updated": updated,
            "premium_assigned": assigned,
        }
        if errors:
            summary["errors"] = errors
        return summary

    async def assign_premium(self, days: List[date]) -> int:
        """Reset and reassign ``is_premium`` for the pending predictions on ``days``."""
        await self.db.execute(
            update(AIPrediction).where(AIPrediction.match_date.in_(days)).values(is_premium=False)
        )
        chosen = select_premium(await self._pending_predictions(days))
        if chosen:
            await self.db.execute(
                update(AIPrediction)
                .where(AIPrediction.id.in_([p.id for p in chosen]))
                .values(is_premium=True)
            )
        await self.db.commit()

        for p in chosen:
            logger.info(f"Premium: {p.home_team} vs {p.away_team}: {p.prediction} ({p.confidence}%, {p.risk_level})")
        return len(chosen)
