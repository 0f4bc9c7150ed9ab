"""
RevenueCat webhook handling for Android purchases.

RevenueCat's ``app_user_id`` is the auth provider's user ID (the app
calls ``Purchases.logIn`` after sign-in). Entitlement ``premium`` maps to
the premium plan; any other entitlement maps to basic.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from propredict.services.subscriptions import (
    set_subscription_status,
    upsert_subscription,
    user_exists,
)

logger = logging.getLogger(__name__)

ACTIVATE_EVENTS = frozenset({
    "INITIAL_PURCHASE",
    "RENEWAL",
    "UNCANCELLATION",
    "NON_RENEWING_PURCHASE",
    "PRODUCT_CHANGE",
})

DEACTIVATE_EVENTS = {
    "EXPIRATION": "expired",
    "CANCELLATION": "canceled",
}

ANONYMOUS_PREFIX = "$RCAnonymousID:"


class RevenueCatError(Exception):
    """A webhook call that is rejected, with the HTTP status to answer."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def plan_from_entitlements(entitlement_ids: Iterable[str]) -> str:
    """Premium if any entitlement is premium, otherwise basic."""
    if any(str(e).lower() == "premium" for e in entitlement_ids):
        return "premium"
    return "basic"


def check_authorization(secret: str, authorization: Optional[str]) -> None:
    """
    Check the webhook's Bearer secret.

    Raises:
        RevenueCatError: 401 if a secret is configured and does not match.
    """
    if secret and authorization != f"Bearer {secret}":
        logger.error("RevenueCat webhook: Invalid authorization header")
        raise RevenueCatError("Unauthorized", status_code=401)


async def handle_event(db: AsyncSession, body: Dict[str, Any]) -> str:
    """
    Apply one RevenueCat webhook event to the user's subscription.

    Args:
        db: Database session.
        body: Webhook JSON body (``{"event": {...}}``).

    Returns:
        What happened: ``activated``, ``deactivated``, ``past_due`` or
        ``ignored``.

    Raises:
        RevenueCatError: Missing event or user (400), anonymous user (400),
            unknown user (404).
    """
    event = body.get("event")
    if not event:
        raise RevenueCatError("No event")

    event_type = event.get("type")
    app_user_id = event.get("app_user_id")
    entitlement_ids = event.get("entitlement_ids") or []
    logger.info(
        f"RevenueCat webhook: type={event_type}, app_user_id={app_user_id}, "
        f"entitlements={entitlement_ids}"
    )

    if not app_user_id:
        raise RevenueCatError("Missing app_user_id")
    if app_user_id.startswith(ANONYMOUS_PREFIX):
        logger.error("RevenueCat webhook: Anonymous user ID, cannot sync")
        raise RevenueCatError("Anonymous user - cannot sync")
    if not await user_exists(db, app_user_id):
        logger.error(f"RevenueCat webhook: User not found: {app_user_id}")
        raise RevenueCatError("User not found", status_code=404)

    if event_type in ACTIVATE_EVENTS:
        plan = plan_from_entitlements(entitlement_ids)
        expiration_ms = event.get("expiration_at_ms")
        expires_at = None
        if expiration_ms:
            expires_at = datetime.fromtimestamp(expiration_ms / 1000, tz=timezone.utc)
        await upsert_subscription(db, app_user_id, plan=plan, status="active", expires_at=expires_at)
        return "activated"

    if event_type in DEACTIVATE_EVENTS:
        await upsert_subscription(
            db,
            app_user_id,
            plan="free",
            status=DEACTIVATE_EVENTS[event_type],
            expires_at=None,
        )
        return "deactivated"

    if event_type == "BILLING_ISSUE":
        # The stored plan is kept for the renewal; access is free while past_due
        await set_subscription_status(db, app_user_id, "past_due")
        return "past_due"

    logger.info(f"RevenueCat webhook: Unhandled event type: {event_type}")
    return "ignored"
