"""Shared test configuration.

Settings are read once and cached, so the environment is prepared before
any ``propredict`` module is imported.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("SERVICE_ROLE_KEY", "test-service-role")
os.environ.setdefault("API_FOOTBALL_KEY", "test-football-key")
os.environ.setdefault("ONESIGNAL_APP_ID", "test-app")
os.environ.setdefault("ONESIGNAL_API_KEY", "test-onesignal-key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STRIPE_BASIC_PRICE_IDS", "price_basic_m,price_basic_y")
os.environ.setdefault("STRIPE_PREMIUM_PRICE_IDS", "price_premium_m")
os.environ.setdefault("REVENUECAT_WEBHOOK_SECRET", "rc-secret")
os.environ.setdefault("APP_ENV", "test")

import pytest  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class ScriptedResult:
    """Query result over a fixed list of rows."""

    def __init__(self, rows=()):
        self.rows = list(rows)

    def all(self):
        return list(self.rows)

    def first(self):
        return self.rows[0] if self.rows else None

    def scalars(self):
        return self

    def scalar_one_or_none(self):
        return self.first()


class ScriptedSession:
    """
    AsyncSession stand-in that answers ``execute`` calls in order.

    Each entry of ``script`` is the row list for one statement; statements
    past the end of the script get an empty result. ``get`` looks objects up
    in ``objects`` by primary key.
    """

    def __init__(self, script=(), objects=None):
        self.script = list(script)
        self.objects = objects or {}
        self.statements = []
        self.added = []
        self.commits = 0
        self.rollbacks = 0

    async def execute(self, statement):
        self.statements.append(statement)
        return ScriptedResult(self.script.pop(0) if self.script else ())

    async def get(self, model, key):
        return self.objects.get(key)

    def add(self, obj):
        self.added.append(obj)

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1


@pytest.fixture
def scripted_session():
    return ScriptedSession
