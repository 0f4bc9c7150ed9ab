"""
Content entitlement and unlock decisions.

Decides, for a piece of content and the caller's session, whether the
content is visible and, if not, which unlock action to offer.

Decision precedence:
1. Tier accessible under the current plan (or ad-unlocked) -> unlocked
2. No session -> login_required
3. Native wrapper -> android_watch_ad_or_pro / android_premium_only
4. Web -> upgrade_basic / upgrade_premium
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Optional, Tuple

from propredict.services.platform import WEB, ClientPlatform


class ContentTier(str, Enum):
    FREE = "free"
    DAILY = "daily"
    EXCLUSIVE = "exclusive"
    PREMIUM = "premium"


class ContentType(str, Enum):
    TIP = "tip"
    TICKET = "ticket"


class UserPlan(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"

    @classmethod
    def parse(cls, value: Optional[str]) -> "UserPlan":
        """Map a stored plan name to a plan, defaulting to free."""
        try:
            return cls(value)
        except ValueError:
            return cls.FREE


PLAN_RANK = {
    UserPlan.FREE: 0,
    UserPlan.BASIC: 1,
    UserPlan.PREMIUM: 2,
}

# Tiers that offer a rewarded-ad fallback
AD_UNLOCKABLE_TIERS = frozenset({ContentTier.DAILY, ContentTier.EXCLUSIVE})


class UnlockMethodType(str, Enum):
    UNLOCKED = "unlocked"
    LOGIN_REQUIRED = "login_required"
    WATCH_AD = "watch_ad"
    ANDROID_WATCH_AD_OR_PRO = "android_watch_ad_or_pro"
    ANDROID_PREMIUM_ONLY = "android_premium_only"
    UPGRADE_BASIC = "upgrade_basic"
    UPGRADE_PREMIUM = "upgrade_premium"


# Methods whose primary action is watching a rewarded ad
AD_METHODS = frozenset({
    UnlockMethodType.WATCH_AD,
    UnlockMethodType.ANDROID_WATCH_AD_OR_PRO,
})


@dataclass(frozen=True)
class UnlockMethod:
    """Action offered to reveal a piece of content."""

    type: UnlockMethodType
    message: Optional[str] = None
    secondary_message: Optional[str] = None

    @property
    def is_unlocked(self) -> bool:
        return self.type is UnlockMethodType.UNLOCKED

    @property
    def offers_ad(self) -> bool:
        return self.type in AD_METHODS

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "secondary_message": self.secondary_message,
        }


UNLOCKED = UnlockMethod(UnlockMethodType.UNLOCKED)
LOGIN_REQUIRED = UnlockMethod(UnlockMethodType.LOGIN_REQUIRED, "Sign in to unlock")
WATCH_AD = UnlockMethod(UnlockMethodType.WATCH_AD, "Watch an ad to unlock")
ANDROID_WATCH_AD_OR_PRO = UnlockMethod(
    UnlockMethodType.ANDROID_WATCH_AD_OR_PRO,
    "Watch Ad",
    "Get Pro",
)
ANDROID_PREMIUM_ONLY = UnlockMethod(UnlockMethodType.ANDROID_PREMIUM_ONLY, "Get Premium")
UPGRADE_BASIC = UnlockMethod(UnlockMethodType.UPGRADE_BASIC, "Upgrade to Basic")
UPGRADE_PREMIUM = UnlockMethod(UnlockMethodType.UPGRADE_PREMIUM, "Upgrade to Premium")


UnlockKey = Tuple[ContentType, str]


def can_access(
    tier: ContentTier,
    plan: UserPlan,
    *,
    logged_in: bool,
    ad_unlocked: bool = False,
) -> bool:
    """
    Check whether a tier is visible without any further action.

    Args:
        tier: Content tier.
        plan: Caller's effective plan.
        logged_in: Whether the caller has a session.
        ad_unlocked: Whether the item was unlocked by a rewarded ad today.
    """
    tier = ContentTier(tier)
    plan = UserPlan(plan)
    if tier is ContentTier.FREE:
        return True
    if tier is ContentTier.DAILY:
        return logged_in or ad_unlocked
    if tier is ContentTier.EXCLUSIVE:
        return PLAN_RANK[plan] >= PLAN_RANK[UserPlan.BASIC] or ad_unlocked
    if tier is ContentTier.PREMIUM:
        return plan is UserPlan.PREMIUM
    return False


def decide_unlock_method(
    tier: ContentTier,
    plan: UserPlan,
    *,
    logged_in: bool,
    is_native: bool,
    ad_unlocked: bool = False,
) -> UnlockMethod:
    """Apply the unlock precedence to a single item."""
    tier = ContentTier(tier)
    if can_access(tier, plan, logged_in=logged_in, ad_unlocked=ad_unlocked):
        return UNLOCKED

    if not logged_in:
        return LOGIN_REQUIRED

    if is_native:
        if tier is ContentTier.PREMIUM:
            return ANDROID_PREMIUM_ONLY
        return ANDROID_WATCH_AD_OR_PRO

    if tier is ContentTier.PREMIUM:
        return UPGRADE_PREMIUM
    return UPGRADE_BASIC


@dataclass
class EntitlementContext:
    """
    Everything the unlock decision needs about the caller.

    ``unlocked`` holds the (content_type, content_id) pairs unlocked by a
    rewarded ad in the current daily scope.
    """

    user_id: Optional[str] = None
    plan: UserPlan = UserPlan.FREE
    platform: ClientPlatform = WEB
    unlocked: AbstractSet[UnlockKey] = field(default_factory=frozenset)

    @property
    def logged_in(self) -> bool:
        return self.user_id is not None

    def is_ad_unlocked(self, content_type: ContentType, content_id: str) -> bool:
        return (ContentType(content_type), str(content_id)) in self.unlocked

    def can_access(self, tier: ContentTier) -> bool:
        return can_access(tier, self.plan, logged_in=self.logged_in)

    def get_unlock_method(
        self,
        tier: ContentTier,
        content_type: ContentType,
        content_id: str,
    ) -> UnlockMethod:
        return decide_unlock_method(
            tier,
            self.plan,
            logged_in=self.logged_in,
            is_native=self.platform.is_native,
            ad_unlocked=self.is_ad_unlocked(content_type, content_id),
        )
