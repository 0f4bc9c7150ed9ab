"""HTTP surface tests using FastAPI's TestClient with dependency overrides."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from propredict.db.database import get_db
from propredict.dependencies import (
    SessionContext,
    get_ai_prediction_generator,
    get_arena_store,
    get_content_service,
    get_head_to_head_service,
    get_match_details_service,
    get_pending_ad_watches,
    get_session_context,
    require_session,
)
from propredict.main import app
from propredict.services.ad_unlock import AdUnlockTracker, InMemoryUnlockStore, PendingAdWatches
from propredict.services.ai_predictions import AIPredictionGenerator
from propredict.services.arena import DuplicatePickError
from propredict.services.entitlements import EntitlementContext, UserPlan
from propredict.services.head_to_head import HeadToHeadService
from propredict.services.match_details import MatchDetailsService
from propredict.services.platform import WEB, ClientPlatform
from propredict.services.preferences import InMemoryPreferenceStore

SERVICE_HEADERS = {"Authorization": "Bearer test-service-role"}


def make_context(user_id=None, plan=UserPlan.FREE, platform=WEB, tracker=None, preferences=None):
    tracker = tracker or AdUnlockTracker(InMemoryUnlockStore(), PendingAdWatches())
    return SessionContext(
        user={"sub": user_id, "email": ""} if user_id else None,
        plan=plan,
        platform=platform,
        unlock_tracker=tracker,
        preferences=preferences or InMemoryPreferenceStore(),
        entitlements=EntitlementContext(user_id=user_id, plan=plan, platform=platform),
    )


async def no_db():
    yield None


@pytest.fixture
def client():
    app.dependency_overrides[get_db] = no_db
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["name"] == "ProPredict API"


class TestUnlockMethod:
    def test_anonymous_needs_login(self, client):
        app.dependency_overrides[get_session_context] = lambda: make_context()

        response = client.get("/unlock-method", params={"tier": "exclusive", "content_id": "t1"})

        assert response.status_code == 200
        assert response.json()["type"] == "login_required"

    def test_native_free_user_gets_ad_or_pro(self, client):
        native = ClientPlatform(is_native=True)
        app.dependency_overrides[get_session_context] = lambda: make_context("u1", platform=native)

        data = client.get("/unlock-method", params={"tier": "exclusive"}).json()

        assert data["type"] == "android_watch_ad_or_pro"
        assert data["offers_ad"] is True

    def test_invalid_tier(self, client):
        app.dependency_overrides[get_session_context] = lambda: make_context()
        assert client.get("/unlock-method", params={"tier": "gold"}).status_code == 422


TIP_ID = "6f1c2a9e-3b4d-4e5f-8a7b-9c0d1e2f3a4b"


class FakeContent:
    tiers = {"tip-daily": "daily", "tip-premium": "premium", TIP_ID: "daily"}

    async def get_tier(self, content_type, content_id):
        return self.tiers.get(content_id)


class TestAdWatch:
    @pytest.fixture
    def session(self, client):
        context = make_context("u1", platform=ClientPlatform(is_native=True))
        app.dependency_overrides[require_session] = lambda: context
        app.dependency_overrides[get_content_service] = FakeContent
        return context

    def test_begin_complete_list(self, client, session):
        body = {"content_type": "tip", "content_id": "tip-daily"}

        begun = client.post("/unlocks/ad-watch", json=body)
        completed = client.post("/unlocks/ad-watch/complete", json=body)
        listed = client.get("/unlocks")

        assert begun.json()["state"] == "pending"
        assert completed.json()["state"] == "unlocked"
        assert listed.json() == {"unlocked": [{"content_type": "tip", "content_id": "tip-daily"}]}

    def test_uuid_spellings_share_one_unlock(self, client, session):
        begun = client.post("/unlocks/ad-watch", json={"content_type": "tip", "content_id": TIP_ID.upper()})
        completed = client.post(
            "/unlocks/ad-watch/complete",
            json={"content_type": "tip", "content_id": TIP_ID.replace("-", "")},
        )

        assert begun.json()["content_id"] == TIP_ID
        assert completed.json()["state"] == "unlocked"
        assert client.get("/unlocks").json() == {"unlocked": [{"content_type": "tip", "content_id": TIP_ID}]}

    def test_cancel(self, client, session):
        body = {"content_type": "tip", "content_id": "tip-daily"}
        client.post("/unlocks/ad-watch", json=body)

        assert client.post("/unlocks/ad-watch/cancel", json=body).json()["state"] == "locked"

    def test_complete_without_begin_conflicts(self, client, session):
        body = {"content_type": "tip", "content_id": "tip-daily"}
        assert client.post("/unlocks/ad-watch/complete", json=body).status_code == 409

    def test_premium_is_refused(self, client, session):
        body = {"content_type": "tip", "content_id": "tip-premium"}
        assert client.post("/unlocks/ad-watch", json=body).status_code == 400

    def test_unknown_content(self, client, session):
        body = {"content_type": "ticket", "content_id": "nope"}
        assert client.post("/unlocks/ad-watch", json=body).status_code == 404

    def test_pending_watches_are_shared_across_requests(self):
        assert get_pending_ad_watches() is get_pending_ad_watches()

    def test_session_required(self, client):
        app.dependency_overrides[get_session_context] = lambda: make_context()
        response = client.post("/unlocks/ad-watch", json={"content_type": "tip", "content_id": "x"})
        assert response.status_code == 401


class FakeArenaStore:
    def __init__(self, kickoff):
        self.rows = {}
        self._kickoff = kickoff

    async def insert(self, pick):
        key = (pick.user_id, pick.match_id, pick.season_id)
        if key in self.rows:
            raise DuplicatePickError(str(key))
        self.rows[key] = pick

    async def fetch(self, user_id, match_id, season_id):
        return self.rows.get((user_id, match_id, season_id))

    async def active_season(self, now):
        return SimpleNamespace(id="season-1")

    async def kickoff(self, match_id):
        return self._kickoff


class TestArena:
    def setup_store(self, kickoff):
        store = FakeArenaStore(kickoff)
        app.dependency_overrides[require_session] = lambda: make_context("u1")
        app.dependency_overrides[get_arena_store] = lambda: store
        return store

    def test_submit_and_read(self, client):
        self.setup_store(datetime.now(timezone.utc) + timedelta(hours=1))

        submitted = client.post("/arena/matches/1001/pick", json={"prediction": "X"})
        again = client.post("/arena/matches/1001/pick", json={"prediction": "1"})
        read = client.get("/arena/matches/1001/pick")

        assert submitted.status_code == 200
        assert submitted.json()["state"] == "confirmed"
        assert again.json()["trace"] == ["no_pick", "pending", "rolled_back", "confirmed"]
        assert again.json()["pick"]["prediction"] == "X"
        assert read.json()["pick"]["prediction"] == "X"

    def test_after_kickoff(self, client):
        self.setup_store(datetime.now(timezone.utc) - timedelta(minutes=1))
        assert client.post("/arena/matches/1001/pick", json={"prediction": "X"}).status_code == 409

    def test_unknown_market(self, client):
        self.setup_store(None)
        assert client.post("/arena/matches/1001/pick", json={"prediction": "Corners"}).status_code == 400


class EmptyApi:
    async def get_response(self, path, params=None, *, use_cache=True):
        return []


class TestFootballProxy:
    def test_match_details_requires_fixture_id(self, client):
        response = client.get("/get-match-details")
        assert response.status_code == 400
        assert response.json() == {"error": "Missing fixtureId parameter"}

    def test_match_details_not_found(self, client):
        app.dependency_overrides[get_match_details_service] = lambda: MatchDetailsService(EmptyApi())
        response = client.get("/get-match-details", params={"fixtureId": "42"})
        assert response.status_code == 404
        assert response.json() == {"error": "Fixture not found"}

    def test_league_stats_requires_league(self, client):
        assert client.get("/league-stats", params={"type": "standings"}).status_code == 400

    def test_league_stats_invalid_type(self, client):
        response = client.get("/league-stats", params={"league": "39", "type": "cards"})
        assert response.status_code == 400
        assert "Invalid type" in response.json()["error"]

    def test_fixtures_invalid_mode(self, client):
        assert client.get("/fixtures", params={"mode": "someday"}).status_code == 400

    def test_h2h_requires_both_teams(self, client):
        response = client.get("/league-h2h", params={"team1": "42"})
        assert response.status_code == 400
        assert response.json() == {"error": "team1 and team2 parameters are required"}

    def test_h2h_rejects_non_numeric_team(self, client):
        app.dependency_overrides[get_head_to_head_service] = lambda: HeadToHeadService(EmptyApi())
        assert client.get("/league-h2h", params={"team1": "arsenal", "team2": "49"}).status_code == 400

    def test_h2h_without_meetings(self, client):
        app.dependency_overrides[get_head_to_head_service] = lambda: HeadToHeadService(EmptyApi())

        data = client.get("/league-h2h", params={"team1": "42", "team2": "49"}).json()

        assert data["team1"] == {"id": 42, "name": ""}
        assert data["summary"] == {"team1Wins": 0, "draws": 0, "team2Wins": 0, "totalMatches": 0}
        assert data["seasons"] == []


class TestPreferences:
    def test_read_and_update(self, client):
        context = make_context("u1")
        app.dependency_overrides[require_session] = lambda: context

        before = client.get("/me/preferences").json()
        updated = client.patch("/me/preferences", json={"goal_alerts_enabled": False}).json()

        assert before == {"push_enabled": True, "goal_alerts_enabled": True}
        assert updated == {"push_enabled": True, "goal_alerts_enabled": False}


class TestJobs:
    @pytest.mark.parametrize(
        "path",
        [
            "/check-goals",
            "/update-prediction-results",
            "/send-push-notification",
            "/send-win-push",
            "/cleanup-push-tokens",
            "/generate-ai-predictions",
        ],
    )
    def test_service_role_required(self, client, path):
        assert client.post(path, json={}).status_code == 401
        assert client.post(path, json={}, headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_trigger_payload_is_validated(self, client):
        response = client.post("/send-win-push", json={"record": {"id": "x"}}, headers=SERVICE_HEADERS)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid payload"}

    def test_generate_requires_fixture_id(self, client):
        response = client.post("/generate-ai-predictions", json={}, headers=SERVICE_HEADERS)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing fixtureId parameter"}

    def test_generate_unknown_fixture(self, client):
        app.dependency_overrides[get_ai_prediction_generator] = lambda: AIPredictionGenerator(api=EmptyApi())

        response = client.post("/generate-ai-predictions", json={"fixtureId": 999}, headers=SERVICE_HEADERS)

        assert response.status_code == 404
        assert response.json() == {"error": "Fixture not found"}


class TestWebhooks:
    def test_stripe_requires_signature(self, client):
        assert client.post("/stripe-webhook", content=b"{}").status_code == 400

    def test_stripe_rejects_bad_signature(self, client):
        response = client.post("/stripe-webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=abc"})
        assert response.status_code == 400

    def test_revenuecat_requires_secret(self, client):
        response = client.post("/revenuecat-webhook", json={"event": {}}, headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401

    def test_revenuecat_requires_event(self, client):
        response = client.post("/revenuecat-webhook", json={}, headers={"Authorization": "Bearer rc-secret"})
        assert response.status_code == 400
