"""Webhook reconciliation: applies Stripe events to the stored subscription and payment records.

Events may arrive out of order or refer to objects this service never
recorded. Handlers that cannot find the local record log and return; any
other failure propagates so the endpoint answers non-2xx and Stripe
redelivers the event later.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from ..domain.errors import WebhookSignatureError
from ..domain.models import (
    PaymentMethod,
    PaymentStatus,
    Subscription,
    SubscriptionStatus,
)
from ..domain.ports.gateways import IdentityNotifier, RemoteStateGateway
from .stripe_service import StripeService
from .subscription_service import Clock, utcnow

logger = logging.getLogger(__name__)


class WebhookEventType(str, Enum):
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    UNHANDLED = "unhandled"

    @classmethod
    def _missing_(cls, value: object) -> "WebhookEventType":
        return cls.UNHANDLED


_STRIPE_STATUS_MAP: Dict[str, SubscriptionStatus] = {
    "trialing": SubscriptionStatus.TRIAL,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "cancelled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.UNPAID,
}


def map_stripe_status(stripe_status: Optional[str]) -> SubscriptionStatus:
    """Map a Stripe subscription status to the internal status.

    Unknown values become ``unpaid`` so they are never treated as healthy.
    """
    status = _STRIPE_STATUS_MAP.get(stripe_status or "")
    if status is None:
        logger.warning("Unknown Stripe status: %s", stripe_status)
        return SubscriptionStatus.UNPAID
    return status


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _object_id(ref: Any) -> Optional[str]:
    """Return the id of a Stripe reference that may be expanded or not."""
    if not ref:
        return None
    if isinstance(ref, str):
        return ref
    return ref.get("id")


def _period_field(sub_data: Mapping[str, Any], key: str) -> Optional[datetime]:
    # Newer API versions moved the period from the subscription to its items.
    value = sub_data.get(key)
    if not value:
        items = sub_data.get("items") or {}
        data = items.get("data") or []
        if data:
            value = data[0].get(key)
    return from_timestamp(value)


def invoice_subscription_id(invoice: Mapping[str, Any]) -> Optional[str]:
    ref = invoice.get("subscription")
    if not ref:
        parent = invoice.get("parent") or {}
        details = parent.get("subscription_details") or {}
        ref = details.get("subscription")
    return _object_id(ref)


def invoice_payment_intent_id(invoice: Mapping[str, Any]) -> Optional[str]:
    ref = invoice.get("payment_intent")
    if not ref:
        payments = (invoice.get("payments") or {}).get("data") or []
        if payments:
            ref = (payments[0].get("payment") or {}).get("payment_intent")
    return _object_id(ref)


_PAYMENT_IDENTITY_FIELDS = frozenset(
    {"user_id", "subscription_id", "stripe_payment_intent_id", "payment_method", "currency"}
)

Handler = Callable[[Mapping[str, Any]], Awaitable[None]]


class WebhookService:
    """Verifies and dispatches Stripe webhook events."""

    def __init__(
        self,
        state: RemoteStateGateway,
        stripe_service: StripeService,
        identity: IdentityNotifier,
        clock: Clock = utcnow,
    ) -> None:
        self._state = state
        self._stripe = stripe_service
        self._identity = identity
        self._clock = clock
        self._handlers: Dict[WebhookEventType, Handler] = {
            WebhookEventType.SUBSCRIPTION_CREATED: self._handle_subscription_created,
            WebhookEventType.SUBSCRIPTION_UPDATED: self._handle_subscription_updated,
            WebhookEventType.SUBSCRIPTION_DELETED: self._handle_subscription_deleted,
            WebhookEventType.INVOICE_PAYMENT_SUCCEEDED: self._handle_payment_succeeded,
            WebhookEventType.INVOICE_PAYMENT_FAILED: self._handle_payment_failed,
            WebhookEventType.PAYMENT_INTENT_SUCCEEDED: self._handle_payment_intent_succeeded,
            WebhookEventType.PAYMENT_INTENT_FAILED: self._handle_payment_intent_failed,
        }

    async def process_event(self, payload: bytes, signature: Optional[str]) -> WebhookEventType:
        """
        Verify a raw webhook delivery and apply it.

        Returns:
            The parsed event type

        Raises:
            WebhookSignatureError: If the signature is missing or invalid
            BadRequestError: If the payload cannot be parsed
        """
        if not signature:
            raise WebhookSignatureError("Missing stripe-signature header")

        event = self._stripe.construct_webhook_event(payload, signature)
        raw_type = event["type"]
        event_type = WebhookEventType(raw_type)
        logger.info("Processing webhook event %s (%s)", event.get("id"), raw_type)

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled webhook event type: %s", raw_type)
            return event_type

        try:
            await handler(event["data"]["object"])
        except Exception as exc:
            logger.error("Failed to process webhook event %s: %s", raw_type, exc)
            raise

        logger.info("Successfully processed webhook event: %s", raw_type)
        return event_type

    # ============ SUBSCRIPTION EVENTS ============

    async def _find_subscription(self, stripe_subscription_id: str) -> Optional[Subscription]:
        subscription = await self._state.find_subscription_by_stripe_subscription_id(
            stripe_subscription_id
        )
        if not subscription:
            logger.warning(
                "Subscription not found for Stripe subscription: %s", stripe_subscription_id
            )
        return subscription

    async def _sync_subscription(self, sub_data: Mapping[str, Any], *, created: bool) -> None:
        stripe_subscription_id = sub_data["id"]
        if not await self._find_subscription(stripe_subscription_id):
            return

        status = map_stripe_status(sub_data.get("status"))
        changes: Dict[str, Any] = {
            "status": status,
            "cancel_at_period_end": bool(sub_data.get("cancel_at_period_end", False)),
        }
        if status not in (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE):
            changes["is_trial_active"] = False
        if created:
            changes["stripe_subscription_id"] = stripe_subscription_id
        period_start = _period_field(sub_data, "current_period_start")
        period_end = _period_field(sub_data, "current_period_end")
        if period_start:
            changes["current_period_start"] = period_start
        if period_end:
            changes["current_period_end"] = period_end
        canceled_at = from_timestamp(sub_data.get("canceled_at"))
        if canceled_at:
            changes["canceled_at"] = canceled_at

        updated = await self._state.update_subscription_by_stripe_subscription_id(
            stripe_subscription_id, changes
        )
        logger.info("Updated subscription for Stripe subscription: %s", stripe_subscription_id)
        await self._notify_identity(updated)

    async def _handle_subscription_created(self, sub_data: Mapping[str, Any]) -> None:
        await self._sync_subscription(sub_data, created=True)

    async def _handle_subscription_updated(self, sub_data: Mapping[str, Any]) -> None:
        await self._sync_subscription(sub_data, created=False)

    async def _handle_subscription_deleted(self, sub_data: Mapping[str, Any]) -> None:
        stripe_subscription_id = sub_data["id"]
        if not await self._find_subscription(stripe_subscription_id):
            return

        updated = await self._state.update_subscription_by_stripe_subscription_id(
            stripe_subscription_id,
            {
                "status": SubscriptionStatus.CANCELED,
                "is_trial_active": False,
                "canceled_at": self._clock(),
            },
        )
        logger.info("Canceled subscription for Stripe subscription: %s", stripe_subscription_id)
        await self._notify_identity(updated)

    async def _notify_identity(self, subscription: Subscription) -> None:
        try:
            await self._identity.update_user_subscription(
                subscription.user_id, plan=subscription.plan, status=subscription.status
            )
        except Exception as exc:
            logger.error(
                "Identity notification for user %s failed: %s", subscription.user_id, exc
            )

    # ============ INVOICE EVENTS ============

    async def _invoice_subscription(
        self, invoice: Mapping[str, Any]
    ) -> tuple[Optional[Subscription], Optional[str]]:
        stripe_subscription_id = invoice_subscription_id(invoice)
        payment_intent_id = invoice_payment_intent_id(invoice)
        if not stripe_subscription_id or not payment_intent_id:
            logger.info("Invoice %s has no subscription or payment intent", invoice.get("id"))
            return None, None

        subscription = await self._state.find_subscription_by_stripe_subscription_id(
            stripe_subscription_id
        )
        if not subscription:
            logger.warning("Subscription not found for invoice: %s", invoice.get("id"))
            return None, None
        return subscription, payment_intent_id

    def _invoice_payment(
        self, invoice: Mapping[str, Any], subscription: Subscription, payment_intent_id: str
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "user_id": subscription.user_id,
            "subscription_id": subscription.id,
            "stripe_payment_intent_id": payment_intent_id,
            "payment_method": PaymentMethod.CARD,
            "currency": invoice.get("currency") or subscription.currency,
            "invoice_id": invoice.get("id"),
        }
        period_start = from_timestamp(invoice.get("period_start"))
        period_end = from_timestamp(invoice.get("period_end"))
        if period_start:
            data["billing_period_start"] = period_start
        if period_end:
            data["billing_period_end"] = period_end
        return data

    async def _record_payment(self, data: Dict[str, Any]) -> None:
        # Redeliveries and retried invoices reuse the payment intent.
        payment_intent_id = data["stripe_payment_intent_id"]
        existing = await self._state.find_payment_by_stripe_payment_intent_id(payment_intent_id)
        if not existing:
            await self._state.create_payment(data)
            return

        changes = {
            key: value for key, value in data.items() if key not in _PAYMENT_IDENTITY_FIELDS
        }
        if changes.get("status") == PaymentStatus.SUCCEEDED:
            changes["failure_reason"] = None
        await self._state.update_payment_by_stripe_payment_intent_id(payment_intent_id, changes)
        logger.info("Payment already recorded for intent %s, updated it", payment_intent_id)

    async def _handle_payment_succeeded(self, invoice: Mapping[str, Any]) -> None:
        subscription, payment_intent_id = await self._invoice_subscription(invoice)
        if not subscription:
            return

        data = self._invoice_payment(invoice, subscription, payment_intent_id)
        data.update(
            {
                "status": PaymentStatus.SUCCEEDED,
                "amount": int(invoice.get("amount_paid") or 0),
                "description": invoice.get("description") or "Subscription payment",
                "paid_at": self._clock(),
            }
        )
        if invoice.get("hosted_invoice_url"):
            data["receipt_url"] = invoice["hosted_invoice_url"]
        await self._record_payment(data)

        if subscription.status != SubscriptionStatus.ACTIVE:
            await self._state.update_subscription_by_stripe_subscription_id(
                subscription.stripe_subscription_id or invoice_subscription_id(invoice),
                {"status": SubscriptionStatus.ACTIVE, "is_trial_active": False},
            )

        logger.info("Payment succeeded for subscription: %s", subscription.id)

    async def _handle_payment_failed(self, invoice: Mapping[str, Any]) -> None:
        subscription, payment_intent_id = await self._invoice_subscription(invoice)
        if not subscription:
            return

        data = self._invoice_payment(invoice, subscription, payment_intent_id)
        data.update(
            {
                "status": PaymentStatus.FAILED,
                "amount": int(invoice.get("amount_due") or 0),
                "description": invoice.get("description") or "Failed subscription payment",
                "failure_reason": "Payment failed via webhook",
            }
        )
        await self._record_payment(data)

        await self._state.update_subscription_by_stripe_subscription_id(
            subscription.stripe_subscription_id or invoice_subscription_id(invoice),
            {"status": SubscriptionStatus.PAST_DUE},
        )
        logger.info("Payment failed for subscription: %s", subscription.id)

    # ============ PAYMENT INTENT EVENTS ============

    async def _handle_payment_intent_succeeded(self, payment_intent: Mapping[str, Any]) -> None:
        payment_intent_id = payment_intent["id"]
        payment = await self._state.find_payment_by_stripe_payment_intent_id(payment_intent_id)
        if not payment:
            logger.info(
                "Payment intent succeeded but no payment record found: %s", payment_intent_id
            )
            return

        await self._state.update_payment_by_stripe_payment_intent_id(
            payment_intent_id,
            {"status": PaymentStatus.SUCCEEDED, "paid_at": self._clock()},
        )
        logger.info("Updated payment status to succeeded: %s", payment_intent_id)

    async def _handle_payment_intent_failed(self, payment_intent: Mapping[str, Any]) -> None:
        payment_intent_id = payment_intent["id"]
        payment = await self._state.find_payment_by_stripe_payment_intent_id(payment_intent_id)
        if not payment:
            logger.info("Payment intent failed but no payment record found: %s", payment_intent_id)
            return

        last_error = payment_intent.get("last_payment_error") or {}
        await self._state.update_payment_by_stripe_payment_intent_id(
            payment_intent_id,
            {
                "status": PaymentStatus.FAILED,
                "failure_reason": last_error.get("message") or "Payment failed",
            },
        )
        logger.info("Updated payment status to failed: %s", payment_intent_id)
