"""
Push notification jobs.

Covers goal alerts for favorited matches, marketing pushes when a tip or
ticket is published or wins, and pruning of dead OneSignal player IDs.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.models.profile import Profile
from propredict.models.push import Favorite, MatchAlertEvent, MatchScoreCache, PushToken
from propredict.models.subscription import UserSubscription
from propredict.services.entitlements import ContentTier, UserPlan
from propredict.services.football_api import FootballApiClient, football_api
from propredict.services.onesignal import OneSignalClient, PushResult, onesignal

logger = logging.getLogger(__name__)

MARKETING_COOLDOWN = timedelta(minutes=40)
CLEANUP_BATCH_SIZE = 50

GOAL_CHANNEL_ID = "64568561-d234-453b-b3da-8de49688731d"
MARKETING_CHANNEL_ID = "d6331715-138b-4ef2-b281-543bf423c381"
GOAL_IMAGE = "https://propredict.me/push-goal.jpg"
WIN_IMAGE = "https://propredict.me/push-win.jpg"

# Plan groups are sent in this order
PLAN_ORDER = (UserPlan.FREE, UserPlan.BASIC, UserPlan.PREMIUM)

_TIER_ROUTES = {
    ContentTier.PREMIUM: ("premium-analysis", "premium-predictions"),
    ContentTier.EXCLUSIVE: ("pro-analysis", "pro-predictions"),
    ContentTier.DAILY: ("daily-analysis", "daily-predictions"),
    ContentTier.FREE: ("daily-analysis", "daily-predictions"),
}


@dataclass(frozen=True)
class TokenTarget:
    player_id: str
    platform: str
    user_id: Optional[str] = None


@dataclass(frozen=True)
class GoalEvent:
    event_type: str
    team: str


def dedupe_tokens(tokens: Iterable[Tuple[str, Optional[str], Optional[str]]]) -> List[TokenTarget]:
    """
    Keep one token per user, preferring an Android token.

    Args:
        tokens: (player_id, user_id, platform) rows. Anonymous tokens are
            keyed by their own player ID.
    """
    by_user: Dict[str, TokenTarget] = {}
    for player_id, user_id, platform in tokens:
        if not player_id:
            continue
        key = user_id or player_id
        candidate = TokenTarget(player_id, platform or "android", user_id)
        existing = by_user.get(key)
        if existing is None or (candidate.platform == "android" and existing.platform != "android"):
            by_user[key] = candidate
    return list(by_user.values())


def is_in_cooldown(
    last_push_at: Optional[datetime],
    now: datetime,
    cooldown: timedelta = MARKETING_COOLDOWN,
) -> bool:
    """True while less than ``cooldown`` has passed since the last marketing push."""
    if last_push_at is None:
        return False
    return now - last_push_at < cooldown


def content_route(content_type: str, tier: Optional[str]) -> str:
    try:
        routes = _TIER_ROUTES[ContentTier(tier)]
    except ValueError:
        routes = _TIER_ROUTES[ContentTier.DAILY]
    return routes[0] if content_type == "tip" else routes[1]


def content_nav_path(content_type: str, record: Dict[str, Any], won: bool = False) -> str:
    path = f"/{content_route(content_type, record.get('tier'))}?highlight={record.get('id')}"
    return f"{path}&result=won" if won else path


def goal_nav_path(match_id: str, platform: str) -> str:
    page = "favorites" if platform == "android" else "live-scores"
    return f"/{page}?match={match_id}&from=goal_push"


def win_headline(tier: Optional[str], plan: UserPlan) -> str:
    if tier in ("free", "daily"):
        return "⚽ Free Pick WON!"
    if tier == "exclusive":
        if plan in (UserPlan.BASIC, UserPlan.PREMIUM):
            return "🔥 Pro Pick WON!"
        return "🔥 Pro Pick WON — You're Missing Out"
    if tier == "premium":
        if plan is UserPlan.PREMIUM:
            return "👑 Premium Pick WON!"
        if plan is UserPlan.BASIC:
            return "👑 Premium Pick WON — Upgrade to See It"
        return "👑 Premium Pick WON — You're Missing Out"
    return "⚽ Pick WON!"


def win_body(content_type: str, record: Dict[str, Any]) -> str:
    if content_type == "tip":
        home, away = record.get("home_team"), record.get("away_team")
        label = f"{home} vs {away}" if home and away else "Today's pick"
        return f"{label} cashed in. Don't miss the next one."
    tier = record.get("tier") or "daily"
    tier_label = {"premium": "Premium", "exclusive": "Pro"}.get(tier, "Daily")
    return f"Today's {tier_label} ticket hit. Ready for the next one?"


def publish_headline(content_type: str, tier: Optional[str], plan: UserPlan) -> str:
    noun = "Tip" if content_type == "tip" else "Ticket"
    if tier == "exclusive":
        if plan in (UserPlan.BASIC, UserPlan.PREMIUM):
            return f"🔥 New Pro {noun} Available!"
        return f"🔥 New Pro {noun} — Unlock It Now"
    if tier == "premium":
        if plan is UserPlan.PREMIUM:
            return f"👑 New Premium {noun} Available!"
        if plan is UserPlan.BASIC:
            return f"👑 New Premium {noun} — Upgrade to See It"
        return f"👑 New Premium {noun} — Go Premium to Unlock"
    icon = "⚽" if content_type == "tip" else "🎫"
    return f"{icon} New {noun} Available!"


def publish_body(content_type: str, record: Dict[str, Any]) -> str:
    if content_type == "tip":
        home, away = record.get("home_team"), record.get("away_team")
        if home and away:
            return f"{home} vs {away} – Check out our latest prediction!"
        return "A new betting tip is ready — open the app now!"
    title = record.get("title")
    if title:
        return f"{title} – Open the app to view the full analysis!"
    return "A new betting ticket is ready — open the app now!"


def detect_goal_events(
    home_team: str,
    away_team: str,
    home_score: int,
    away_score: int,
    prev_home: int,
    prev_away: int,
) -> List[GoalEvent]:
    """Goal events implied by a score change since the last poll."""
    events = []
    if home_score - prev_home > 0:
        events.append(GoalEvent("goal_home", home_team))
    if away_score - prev_away > 0:
        events.append(GoalEvent("goal_away", away_team))
    return events


def group_by_plan(
    targets: Sequence[TokenTarget],
    plans: Dict[str, UserPlan],
    last_push: Dict[str, Optional[datetime]],
    now: datetime,
    excluded: Set[str] = frozenset(),
    cooldown: timedelta = MARKETING_COOLDOWN,
) -> Tuple[Dict[UserPlan, List[str]], List[str]]:
    """
    Split marketing targets into plan groups.

    Users in cooldown or in ``excluded`` are dropped. Anonymous tokens
    land in the free group.

    Returns:
        (player IDs per plan, user IDs that will be notified)
    """
    groups: Dict[UserPlan, List[str]] = {plan: [] for plan in PLAN_ORDER}
    notified: List[str] = []
    for target in targets:
        plan = UserPlan.FREE
        if target.user_id:
            if target.user_id in excluded:
                continue
            if is_in_cooldown(last_push.get(target.user_id), now, cooldown):
                continue
            plan = plans.get(target.user_id, UserPlan.FREE)
            notified.append(target.user_id)
        groups[plan].append(target.player_id)
    return groups, notified


class PushNotificationService:
    """
    Database-backed push jobs.

    Args:
        db: Database session.
        client: OneSignal client.
        api: API-Football client for live scores.
        cooldown: Minimum gap between marketing pushes to one user.
    """

    def __init__(
        self,
        db: AsyncSession,
        client: Optional[OneSignalClient] = None,
        api: Optional[FootballApiClient] = None,
        cooldown: timedelta = MARKETING_COOLDOWN,
    ):
        self.db = db
        self.client = client or onesignal
        self.api = api or football_api
        self.cooldown = cooldown

    async def _purge_invalid(self, player_ids: Sequence[str]) -> int:
        if not player_ids:
            return 0
        await self.db.execute(
            delete(PushToken).where(PushToken.onesignal_player_id.in_(list(player_ids)))
        )
        await self.db.commit()
        logger.info(f"Purged {len(player_ids)} invalid player IDs")
        return len(player_ids)

    async def _marketing_groups(self, now: datetime) -> Tuple[Dict[UserPlan, List[str]], List[str]]:
        rows = await self.db.execute(
            select(PushToken.onesignal_player_id, PushToken.user_id, PushToken.platform)
        )
        targets = dedupe_tokens(rows.all())
        user_ids = [t.user_id for t in targets if t.user_id]

        last_push: Dict[str, Optional[datetime]] = {}
        excluded: Set[str] = set()
        plans: Dict[str, UserPlan] = {}
        if user_ids:
            profiles = await self.db.execute(
                select(Profile.user_id, Profile.last_marketing_push_at, Profile.push_enabled)
                .where(Profile.user_id.in_(user_ids))
            )
            for user_id, last_at, push_enabled in profiles.all():
                last_push[user_id] = last_at
                if not push_enabled:
                    excluded.add(user_id)

            subscriptions = await self.db.execute(
                select(UserSubscription).where(UserSubscription.user_id.in_(user_ids))
            )
            for subscription in subscriptions.scalars().all():
                plans[subscription.user_id] = UserPlan.parse(subscription.effective_plan(now))

        return group_by_plan(targets, plans, last_push, now, excluded, self.cooldown)

    async def _send_marketing(
        self,
        headline: Callable[[UserPlan], str],
        payload: Dict[str, Any],
        log_prefix: str,
    ) -> Dict[str, Any]:
        """Send one notification per plan group and start everyone's cooldown."""
        now = datetime.now(timezone.utc)
        groups, notified = await self._marketing_groups(now)
        total = sum(len(ids) for ids in groups.values())
        if total == 0:
            logger.info(f"[{log_prefix}] All users in cooldown, skipping")
            return {"skipped": True, "reason": "all users in cooldown"}

        logger.info(
            f"[{log_prefix}] eligible={total}, "
            + ", ".join(f"{plan.value}={len(groups[plan])}" for plan in PLAN_ORDER)
        )

        results = []
        for plan in PLAN_ORDER:
            ids = groups[plan]
            if not ids:
                continue
            result = await self.client.send({
                **payload,
                "include_player_ids": ids,
                "headings": {"en": headline(plan)},
            })
            results.append({
                "plan": plan.value,
                "count": len(ids),
                "ok": result.ok,
                "onesignal": result.body,
            })
            await self._purge_invalid(result.invalid_player_ids)

        if notified:
            await self.db.execute(
                update(Profile)
                .where(Profile.user_id.in_(notified))
                .values(last_marketing_push_at=now)
            )
            await self.db.commit()

        return {"success": True, "results": results, "targets": total}

    async def send_publish_push(self, content_type: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Announce a newly published tip or ticket.

        Args:
            content_type: ``tip`` or ``ticket``.
            record: The published row as sent by the database trigger.
        """
        if content_type not in ("tip", "ticket"):
            return {"skipped": True, "reason": f"unknown type: {content_type}"}
        if record.get("status") != "published":
            logger.info("Skipping notification, content not published")
            return {"skipped": True, "reason": "not published"}

        tier = record.get("tier") or "free"
        payload = {
            "contents": {"en": publish_body(content_type, record)},
            "android_channel_id": MARKETING_CHANNEL_ID,
            "android_sound": "default",
            "priority": 10,
            "collapse_id": f"new_{content_type}_{record.get('id')}",
            "data": {
                "type": f"{content_type}_published",
                "id": record.get("id"),
                "tier": tier,
                "nav_path": content_nav_path(content_type, record),
            },
        }
        return await self._send_marketing(
            lambda plan: publish_headline(content_type, tier, plan),
            payload,
            "send-push-notification",
        )

    async def send_win_push(self, content_type: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Announce that a tip or ticket won."""
        if content_type not in ("tip", "ticket"):
            return {"skipped": True, "reason": f"unknown type: {content_type}"}
        if record.get("result") != "won":
            return {"skipped": True, "reason": "not won"}

        tier = record.get("tier") or "free"
        payload = {
            "contents": {"en": win_body(content_type, record)},
            "big_picture": WIN_IMAGE,
            "android_channel_id": MARKETING_CHANNEL_ID,
            "android_sound": "default",
            "priority": 10,
            "ttl": 300,
            "collapse_id": f"win_{content_type}_{record.get('id')}",
            "data": {
                "type": f"{content_type}_won",
                "id": record.get("id"),
                "tier": tier,
                "result": record.get("result"),
                "nav_path": content_nav_path(content_type, record, won=True),
            },
        }
        return await self._send_marketing(
            lambda plan: win_headline(tier, plan),
            payload,
            "send-win-push",
        )

    async def check_goals(self) -> Dict[str, Any]:
        """Poll live fixtures and alert users who favorited a match that scored."""
        fixtures = await self.api.get_response("/fixtures", {"live": "all"}, use_cache=False)
        logger.info(f"[check-goals] {len(fixtures)} live fixtures found")
        if not fixtures:
            return {"success": True, "goals_detected": 0, "notifications_sent": 0, "message": "No live fixtures"}

        total_goals = 0
        total_sent = 0
        for item in fixtures:
            goals, sent = await self._check_fixture(item)
            total_goals += goals
            total_sent += sent

        logger.info(f"[check-goals] Done. Goals: {total_goals}, Notifications: {total_sent}")
        return {"success": True, "goals_detected": total_goals, "notifications_sent": total_sent}

    async def _check_fixture(self, item: Dict[str, Any]) -> Tuple[int, int]:
        fixture = item.get("fixture") or {}
        teams = item.get("teams") or {}
        goals = item.get("goals") or {}
        match_id = str(fixture.get("id"))
        home_team = (teams.get("home") or {}).get("name") or "Home"
        away_team = (teams.get("away") or {}).get("name") or "Away"
        home_score = goals.get("home") or 0
        away_score = goals.get("away") or 0
        elapsed = (fixture.get("status") or {}).get("elapsed") or 0

        cached = await self.db.get(MatchScoreCache, match_id)
        prev_home = cached.home_score if cached else 0
        prev_away = cached.away_score if cached else 0

        new_events = []
        for event in detect_goal_events(home_team, away_team, home_score, away_score, prev_home, prev_away):
            existing = await self.db.execute(
                select(MatchAlertEvent.id).where(
                    MatchAlertEvent.match_id == match_id,
                    MatchAlertEvent.event_type == event.event_type,
                    MatchAlertEvent.minute == elapsed,
                )
            )
            if existing.first() is not None:
                continue
            self.db.add(
                MatchAlertEvent(
                    match_id=match_id,
                    event_type=event.event_type,
                    minute=elapsed,
                    home_score=home_score,
                    away_score=away_score,
                )
            )
            new_events.append(event)

        sent = 0
        if new_events:
            sent = await self._send_goal_alert(
                match_id,
                new_events,
                f"{home_team} {home_score} - {away_score} {away_team}",
                elapsed,
            )

        if cached is None:
            self.db.add(MatchScoreCache(match_id=match_id, home_score=home_score, away_score=away_score))
        else:
            cached.home_score = home_score
            cached.away_score = away_score
        await self.db.commit()
        return len(new_events), sent

    async def _send_goal_alert(
        self,
        match_id: str,
        events: List[GoalEvent],
        score_text: str,
        elapsed: int,
    ) -> int:
        favorites = await self.db.execute(select(Favorite.user_id).where(Favorite.match_id == match_id))
        user_ids = set(favorites.scalars().all())
        if user_ids:
            muted = await self.db.execute(
                select(Profile.user_id).where(
                    Profile.user_id.in_(user_ids),
                    Profile.goal_alerts_enabled.is_(False),
                )
            )
            user_ids -= set(muted.scalars().all())
        if not user_ids:
            logger.info(f"[check-goals] No users favorited match {match_id}, skipping notification")
            return 0

        rows = await self.db.execute(
            select(PushToken.onesignal_player_id, PushToken.user_id, PushToken.platform)
            .where(PushToken.user_id.in_(user_ids))
        )
        targets = dedupe_tokens(rows.all())
        android_ids = [t.player_id for t in targets if t.platform == "android"]
        web_ids = [t.player_id for t in targets if t.platform != "android"]
        if not android_ids and not web_ids:
            logger.info(f"[check-goals] No push tokens for match {match_id} users")
            return 0

        scorers = ", ".join(event.team for event in events)
        base = {
            "headings": {"en": f"⚽ GOAL! {scorers}"},
            "contents": {"en": f"{score_text} ({elapsed}')"},
            "android_channel_id": GOAL_CHANNEL_ID,
            "android_sound": "default",
            "priority": 10,
            "ttl": 120,
            "collapse_id": f"goal_{match_id}",
            "big_picture": GOAL_IMAGE,
        }

        def batch(player_ids: List[str], platform: str):
            return self.client.send({
                **base,
                "include_player_ids": player_ids,
                "data": {
                    "match_id": match_id,
                    "type": "goal",
                    "nav_path": goal_nav_path(match_id, platform),
                },
            })

        sends = []
        if android_ids:
            sends.append(batch(android_ids, "android"))
        if web_ids:
            sends.append(batch(web_ids, "web"))
        logger.info(
            f"[check-goals] Sending to {len(android_ids)} Android + {len(web_ids)} Web users for match {match_id}"
        )
        results: List[PushResult] = await asyncio.gather(*sends)

        delivered = 0
        for result in results:
            await self._purge_invalid(result.invalid_player_ids)
            if result.ok:
                delivered += result.recipients
        return delivered

    async def cleanup_tokens(self) -> Dict[str, Any]:
        """Validate every token with a silent push and delete the invalid ones."""
        rows = await self.db.execute(select(PushToken.onesignal_player_id))
        player_ids = list(rows.scalars().all())
        logger.info(f"[cleanup] Found {len(player_ids)} tokens to validate")

        invalid: List[str] = []
        valid = 0
        for start in range(0, len(player_ids), CLEANUP_BATCH_SIZE):
            batch = player_ids[start:start + CLEANUP_BATCH_SIZE]
            result = await self.client.send({
                "include_player_ids": batch,
                "content_available": True,
                "contents": {"en": ""},
                "ttl": 0,
            })
            if result.status_code == 0:
                logger.error(f"[cleanup] Batch {start // CLEANUP_BATCH_SIZE + 1} failed")
                continue
            batch_invalid = result.invalid_player_ids
            invalid.extend(batch_invalid)
            valid += len(batch) - len(batch_invalid)

        deleted = await self._purge_invalid(invalid)
        return {
            "total_tokens": len(player_ids),
            "valid": valid,
            "invalid": len(invalid),
            "deleted": deleted,
            "invalid_ids": invalid,
        }
