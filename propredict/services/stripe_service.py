"""
Stripe service for web subscriptions.

Handles:
- Verifying webhook signatures
- Mapping Stripe prices to plans
- Syncing checkout, renewal and cancellation events into user_subscriptions
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.config import get_settings
from propredict.models.subscription import UserSubscription
from propredict.services.subscriptions import find_user_id_by_email, upsert_subscription

logger = logging.getLogger(__name__)


class StripeWebhookError(Exception):
    """A webhook event that cannot be applied, with the HTTP status to answer."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class StripeService:
    """
    Service for Stripe payment integration.

    Verifies webhook payloads and applies subscription lifecycle events.
    """

    def __init__(self):
        self.settings = get_settings()
        stripe.api_key = self.settings.stripe_secret_key

    @property
    def configured(self) -> bool:
        return bool(self.settings.stripe_secret_key and self.settings.stripe_webhook_secret)

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> Dict[str, Any]:
        """
        Verify Stripe webhook signature and return the event.

        Args:
            payload: Raw webhook payload bytes.
            signature: Stripe-Signature header value.

        Returns:
            Verified Stripe event object.

        Raises:
            ValueError: If signature verification fails.
        """
        try:
            return stripe.Webhook.construct_event(
                payload,
                signature,
                self.settings.stripe_webhook_secret,
            )
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise ValueError("Invalid signature")

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return stripe.Subscription.retrieve(subscription_id)

    def price_to_plan(self, price_id: Optional[str]) -> str:
        """Map a Stripe price ID to a plan; unknown prices are basic."""
        return self.settings.stripe_price_plans.get(price_id or "", "basic")

    def _first_item(self, stripe_sub: Dict[str, Any]) -> Dict[str, Any]:
        items = (stripe_sub.get("items") or {}).get("data") or []
        return items[0] if items else {}

    def _plan_and_expiry(self, stripe_sub: Dict[str, Any]):
        item = self._first_item(stripe_sub)
        price_id = (item.get("price") or {}).get("id")
        # Newer API versions carry the period on the item
        period_end = stripe_sub.get("current_period_end") or item.get("current_period_end")
        expires_at = None
        if period_end:
            expires_at = datetime.fromtimestamp(period_end, tz=timezone.utc)
        return self.price_to_plan(price_id), expires_at

    async def handle_checkout_completed(
        self,
        event: Dict[str, Any],
        db: AsyncSession,
    ) -> str:
        """
        Handle checkout.session.completed webhook event.

        Resolves the paying user by email and activates their plan until
        the end of the current billing period.

        Returns:
            The user ID whose subscription was updated.

        Raises:
            StripeWebhookError: Missing email or subscription (400), or no
                user with that email (404).
        """
        session = event["data"]["object"]
        email = session.get("customer_email") or (session.get("customer_details") or {}).get("email")
        if not email:
            raise StripeWebhookError("No customer email")

        subscription_id = session.get("subscription")
        if not subscription_id:
            raise StripeWebhookError("No subscription")

        stripe_sub = self.retrieve_subscription(subscription_id)
        plan, expires_at = self._plan_and_expiry(stripe_sub)
        logger.info(f"Processing subscription for {email}: plan={plan}, expires={expires_at}")

        user_id = await find_user_id_by_email(db, email)
        if user_id is None:
            raise StripeWebhookError("User not found", status_code=404)

        await upsert_subscription(
            db,
            user_id,
            plan=plan,
            status="active",
            expires_at=expires_at,
            stripe_subscription_id=subscription_id,
        )
        return user_id

    async def _by_stripe_id(self, db: AsyncSession, subscription_id: str) -> Optional[UserSubscription]:
        result = await db.execute(
            select(UserSubscription).where(
                UserSubscription.stripe_subscription_id == subscription_id
            )
        )
        return result.scalar_one_or_none()

    async def handle_subscription_updated(
        self,
        event: Dict[str, Any],
        db: AsyncSession,
    ) -> None:
        """Re-sync plan, status and expiry after a renewal or plan change."""
        stripe_sub = event["data"]["object"]
        subscription = await self._by_stripe_id(db, stripe_sub["id"])
        if subscription is None:
            logger.warning(f"No subscription found for Stripe sub: {stripe_sub['id']}")
            return

        plan, expires_at = self._plan_and_expiry(stripe_sub)
        subscription.plan = plan
        subscription.status = self._stripe_status_to_internal(stripe_sub.get("status"))
        if expires_at is not None:
            subscription.expires_at = expires_at
        await db.commit()
        logger.info(f"Updated subscription: {stripe_sub['id']}")

    async def handle_subscription_deleted(
        self,
        event: Dict[str, Any],
        db: AsyncSession,
    ) -> None:
        """Downgrade to free when Stripe ends the subscription."""
        stripe_sub = event["data"]["object"]
        subscription = await self._by_stripe_id(db, stripe_sub["id"])
        if subscription is None:
            logger.warning(f"No subscription found for Stripe sub: {stripe_sub['id']}")
            return

        subscription.status = "canceled"
        subscription.plan = "free"
        await db.commit()
        logger.info(f"Canceled subscription: {stripe_sub['id']}")

    def _stripe_status_to_internal(self, stripe_status: Optional[str]) -> str:
        """Map Stripe subscription status to internal status."""
        status_map = {
            "trialing": "active",
            "active": "active",
            "past_due": "past_due",
            "unpaid": "past_due",
            "canceled": "canceled",
            "incomplete": "past_due",
            "incomplete_expired": "expired",
        }
        return status_map.get(stripe_status or "", "expired")


# Global service instance
stripe_service = StripeService()
