"""Stripe payment integration service."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

import stripe

from ..domain.errors import (
    BadRequestError,
    ConfigurationError,
    UpstreamUnavailableError,
    WebhookSignatureError,
)
from ..domain.models import SubscriptionPlan

logger = logging.getLogger(__name__)


class StripeService:
    """Thin wrapper around the Stripe API used by the subscription lifecycle.

    The API key is passed explicitly on every call so several services with
    different keys can live in one process. Blocking SDK calls run in a
    worker thread.
    """

    def __init__(
        self,
        secret_key: str,
        webhook_secret: Optional[str] = None,
        price_ids: Optional[Dict[SubscriptionPlan, Optional[str]]] = None,
    ) -> None:
        self._api_key = secret_key
        self._webhook_secret = webhook_secret
        self._price_ids = price_ids or {}

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **params: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args, api_key=self._api_key, **params)
        except stripe.CardError as exc:
            logger.warning("Stripe rejected card during %s: %s", operation, exc.user_message or exc)
            raise BadRequestError(exc.user_message or str(exc)) from exc
        except stripe.InvalidRequestError as exc:
            logger.error("Invalid Stripe request during %s: %s", operation, exc)
            raise BadRequestError(f"Invalid request: {exc.user_message or exc}") from exc
        except stripe.AuthenticationError as exc:
            logger.error("Stripe authentication failed during %s", operation)
            raise ConfigurationError("Invalid Stripe API key") from exc
        except stripe.StripeError as exc:
            logger.error("Failed to %s: %s", operation, exc)
            raise UpstreamUnavailableError(f"Stripe is unavailable: {exc}") from exc

    # ============ CUSTOMERS ============

    async def create_customer(
        self,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        params: Dict[str, Any] = {"email": email, "metadata": metadata or {}}
        if name:
            params["name"] = name
        customer = await self._call("create customer", stripe.Customer.create, **params)
        logger.info("Created Stripe customer: %s", customer.id)
        return customer

    async def get_customer(self, customer_id: str) -> Any:
        return await self._call("retrieve customer", stripe.Customer.retrieve, customer_id)

    async def update_customer(self, customer_id: str, **params: Any) -> Any:
        customer = await self._call("update customer", stripe.Customer.modify, customer_id, **params)
        logger.info("Updated Stripe customer: %s", customer_id)
        return customer

    async def attach_payment_method(self, payment_method_id: str, customer_id: str) -> Any:
        payment_method = await self._call(
            "attach payment method",
            stripe.PaymentMethod.attach,
            payment_method_id,
            customer=customer_id,
        )
        logger.info("Attached payment method %s to customer %s", payment_method_id, customer_id)
        return payment_method

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> Any:
        return await self.update_customer(
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )

    async def create_setup_intent(self, customer_id: str) -> Any:
        setup_intent = await self._call(
            "create setup intent",
            stripe.SetupIntent.create,
            customer=customer_id,
            payment_method_types=["card"],
            usage="off_session",
        )
        logger.info("Created setup intent: %s", setup_intent.id)
        return setup_intent

    # ============ SUBSCRIPTIONS ============

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_period_days: int = 30,
        default_payment_method: Optional[str] = None,
    ) -> Any:
        params: Dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "payment_behavior": "default_incomplete",
            "payment_settings": {"save_default_payment_method": "on_subscription"},
            "expand": ["latest_invoice.payment_intent"],
        }
        if trial_period_days:
            params["trial_period_days"] = trial_period_days
        if default_payment_method:
            params["default_payment_method"] = default_payment_method

        subscription = await self._call("create subscription", stripe.Subscription.create, **params)
        logger.info("Created Stripe subscription: %s", subscription.id)
        return subscription

    async def cancel_subscription(self, subscription_id: str, at_period_end: bool = True) -> Any:
        if at_period_end:
            subscription = await self._call(
                "schedule subscription cancellation",
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
            )
        else:
            subscription = await self._call(
                "cancel subscription", stripe.Subscription.cancel, subscription_id
            )
        logger.info(
            "Canceled Stripe subscription %s (at period end: %s)", subscription_id, at_period_end
        )
        return subscription

    def get_price_id(self, plan: SubscriptionPlan) -> str:
        """Resolve the Stripe price configured for a plan."""
        if not isinstance(plan, SubscriptionPlan):
            raise BadRequestError("Invalid subscription plan")
        price_id = self._price_ids.get(plan)
        if not price_id:
            logger.warning("Price ID not configured for plan: %s, using placeholder", plan.value)
            return f"price_{plan.value}_placeholder"
        return price_id

    # ============ PAYMENT INTENTS & REFUNDS ============

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        payment_intent = await self._call(
            "create payment intent",
            stripe.PaymentIntent.create,
            amount=amount,
            currency=currency,
            customer=customer_id,
            metadata=metadata or {},
        )
        logger.info("Created payment intent: %s", payment_intent.id)
        return payment_intent

    async def get_payment_intent(self, payment_intent_id: str) -> Any:
        return await self._call(
            "retrieve payment intent", stripe.PaymentIntent.retrieve, payment_intent_id
        )

    async def confirm_payment_intent(self, payment_intent_id: str, **params: Any) -> Any:
        payment_intent = await self._call(
            "confirm payment intent", stripe.PaymentIntent.confirm, payment_intent_id, **params
        )
        logger.info("Confirmed payment intent: %s", payment_intent_id)
        return payment_intent

    async def create_refund(self, payment_intent_id: str, amount: Optional[int] = None) -> Any:
        params: Dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount is not None:
            params["amount"] = amount
        refund = await self._call("create refund", stripe.Refund.create, **params)
        logger.info("Created refund: %s", refund.id)
        return refund

    # ============ WEBHOOK ============

    def construct_webhook_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify the signature of a webhook payload and parse it into a plain dict.

        Handlers read the decoded JSON; newer SDKs return an ``Event`` that is not a ``dict``.
        """
        if not self._webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET not configured")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._webhook_secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
            event = json.loads(body)
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            raise WebhookSignatureError("Invalid signature") from exc
        except ValueError as exc:
            logger.warning("Webhook payload could not be parsed: %s", exc)
            raise BadRequestError("Invalid payload") from exc

        if not isinstance(event, dict) or "type" not in event:
            raise BadRequestError("Invalid payload")
        return event
