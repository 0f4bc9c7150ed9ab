"""Tests for the tier x plan x platform unlock decision."""

import itertools

import pytest

from propredict.services.entitlements import (
    ContentTier,
    ContentType,
    EntitlementContext,
    UnlockMethodType,
    UserPlan,
    can_access,
    decide_unlock_method,
)
from propredict.services.platform import WEB, BridgeCapability, ClientPlatform

U = UnlockMethodType.UNLOCKED
LOGIN = UnlockMethodType.LOGIN_REQUIRED
AD_OR_PRO = UnlockMethodType.ANDROID_WATCH_AD_OR_PRO
PREMIUM_ONLY = UnlockMethodType.ANDROID_PREMIUM_ONLY
UP_BASIC = UnlockMethodType.UPGRADE_BASIC
UP_PREMIUM = UnlockMethodType.UPGRADE_PREMIUM

# (tier, plan) -> (signed-in web, signed-in native, anonymous)
EXPECTED = {
    ("free", "free"): (U, U, U),
    ("free", "basic"): (U, U, U),
    ("free", "premium"): (U, U, U),
    ("daily", "free"): (U, U, LOGIN),
    ("daily", "basic"): (U, U, LOGIN),
    ("daily", "premium"): (U, U, LOGIN),
    ("exclusive", "free"): (UP_BASIC, AD_OR_PRO, LOGIN),
    ("exclusive", "basic"): (U, U, U),
    ("exclusive", "premium"): (U, U, U),
    ("premium", "free"): (UP_PREMIUM, PREMIUM_ONLY, LOGIN),
    ("premium", "basic"): (UP_PREMIUM, PREMIUM_ONLY, LOGIN),
    ("premium", "premium"): (U, U, U),
}


def _cases():
    for (tier, plan), (web, native, anonymous) in EXPECTED.items():
        for logged_in, is_native in itertools.product((True, False), (False, True)):
            if logged_in:
                expected = native if is_native else web
            else:
                expected = anonymous
            yield tier, plan, logged_in, is_native, expected


class TestDecideUnlockMethod:
    """Every tier x plan x platform x session combination."""

    @pytest.mark.parametrize("tier,plan,logged_in,is_native,expected", list(_cases()))
    def test_precedence(self, tier, plan, logged_in, is_native, expected):
        method = decide_unlock_method(
            ContentTier(tier),
            UserPlan(plan),
            logged_in=logged_in,
            is_native=is_native,
        )
        assert method.type is expected

    def test_grid_has_48_cases(self):
        assert len(list(_cases())) == 48

    def test_watch_ad_is_never_produced(self):
        produced = {case[-1] for case in _cases()}
        assert UnlockMethodType.WATCH_AD not in produced

    @pytest.mark.parametrize("is_native", [False, True])
    @pytest.mark.parametrize("plan", list(UserPlan))
    def test_ad_unlocked_exclusive_is_unlocked_for_any_plan(self, plan, is_native):
        method = decide_unlock_method(
            ContentTier.EXCLUSIVE,
            plan,
            logged_in=True,
            is_native=is_native,
            ad_unlocked=True,
        )
        assert method.is_unlocked

    def test_ad_unlock_does_not_open_premium(self):
        method = decide_unlock_method(
            ContentTier.PREMIUM,
            UserPlan.BASIC,
            logged_in=True,
            is_native=True,
            ad_unlocked=True,
        )
        assert method.type is PREMIUM_ONLY

    def test_native_exclusive_offers_ad_and_purchase(self):
        method = decide_unlock_method(
            ContentTier.EXCLUSIVE, UserPlan.FREE, logged_in=True, is_native=True
        )
        assert method.offers_ad
        assert method.message == "Watch Ad"
        assert method.secondary_message == "Get Pro"


class TestCanAccess:
    def test_free_content_is_public(self):
        assert can_access(ContentTier.FREE, UserPlan.FREE, logged_in=False)

    def test_daily_needs_session_or_ad(self):
        assert not can_access(ContentTier.DAILY, UserPlan.FREE, logged_in=False)
        assert can_access(ContentTier.DAILY, UserPlan.FREE, logged_in=False, ad_unlocked=True)

    def test_premium_needs_premium_plan(self):
        assert not can_access(ContentTier.PREMIUM, UserPlan.BASIC, logged_in=True)
        assert can_access(ContentTier.PREMIUM, UserPlan.PREMIUM, logged_in=True)


class TestEntitlementContext:
    def test_ad_unlocked_item_only(self):
        context = EntitlementContext(
            user_id="user-1",
            plan=UserPlan.FREE,
            platform=ClientPlatform(is_native=True, capabilities=frozenset({BridgeCapability.REWARDED_AD})),
            unlocked=frozenset({(ContentType.TIP, "tip-1")}),
        )

        unlocked = context.get_unlock_method(ContentTier.EXCLUSIVE, ContentType.TIP, "tip-1")
        other = context.get_unlock_method(ContentTier.EXCLUSIVE, ContentType.TIP, "tip-2")
        same_id_ticket = context.get_unlock_method(ContentTier.EXCLUSIVE, ContentType.TICKET, "tip-1")

        assert unlocked.is_unlocked
        assert other.type is AD_OR_PRO
        assert same_id_ticket.type is AD_OR_PRO

    def test_anonymous_defaults(self):
        context = EntitlementContext()
        assert not context.logged_in
        assert context.platform is WEB
        assert context.get_unlock_method(ContentTier.DAILY, ContentType.TIP, "x").type is LOGIN

    def test_plan_parse_falls_back_to_free(self):
        assert UserPlan.parse(None) is UserPlan.FREE
        assert UserPlan.parse("premium") is UserPlan.PREMIUM
        assert UserPlan.parse("gold") is UserPlan.FREE
