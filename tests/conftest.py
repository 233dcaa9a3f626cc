"""Shared fixtures for the payment service test suite.

Provides:
- clock: controllable UTC clock
- state: in-memory stand-in for the DB service
- stripe_service: autospec'd StripeService with async methods mocked
- identity: AsyncMock identity notifier
- subscription_service / webhook_service / payment_service wired on the fakes
"""

from __future__ import annotations

import hashlib
import hmac
import itertools
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, create_autospec

import pytest

from payment_service.domain.errors import NotFoundError
from payment_service.domain.models import Payment, SubscriptionPlan, Subscription
from payment_service.services.payment_service import PaymentService
from payment_service.services.stripe_service import StripeService
from payment_service.services.subscription_service import SubscriptionService
from payment_service.services.webhook_service import WebhookService

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def sign_payload(payload: str, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a ``stripe-signature`` header the way Stripe signs webhook deliveries."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={digest}"


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryRemoteState:
    """Keeps subscriptions and payments in dicts, mirroring the DB service contract."""

    def __init__(self) -> None:
        self.subscriptions: Dict[str, Subscription] = {}
        self.payments: Dict[str, Payment] = {}
        self.calls: List[str] = []
        self._ids = itertools.count(1)

    def _record(self, name: str) -> None:
        self.calls.append(name)

    @property
    def mutations(self) -> List[str]:
        return [
            call for call in self.calls
            if call.startswith(("create_", "update_", "change_"))
        ]

    # subscriptions

    async def create_subscription(self, data: Dict[str, Any]) -> Subscription:
        self._record("create_subscription")
        subscription = Subscription(id=f"rec_{next(self._ids)}", **data)
        self.subscriptions[subscription.id] = subscription
        return subscription

    async def find_subscription_by_id(self, subscription_id: str) -> Optional[Subscription]:
        self._record("find_subscription_by_id")
        return self.subscriptions.get(subscription_id)

    async def find_subscription_by_user_id(self, user_id: str) -> Optional[Subscription]:
        self._record("find_subscription_by_user_id")
        return next(
            (item for item in self.subscriptions.values() if item.user_id == user_id), None
        )

    async def find_subscription_by_stripe_subscription_id(
        self, stripe_subscription_id: str
    ) -> Optional[Subscription]:
        self._record("find_subscription_by_stripe_subscription_id")
        return next(
            (
                item
                for item in self.subscriptions.values()
                if item.stripe_subscription_id == stripe_subscription_id
            ),
            None,
        )

    @staticmethod
    def _apply(target: Any, changes: Dict[str, Any]) -> Any:
        if target is None:
            raise NotFoundError("Record not found")
        for key, value in changes.items():
            setattr(target, key, value)
        return target

    async def update_subscription_by_id(self, subscription_id: str, changes: Dict[str, Any]):
        self._record("update_subscription_by_id")
        return self._apply(self.subscriptions.get(subscription_id), changes)

    async def update_subscription_by_user_id(self, user_id: str, changes: Dict[str, Any]):
        self._record("update_subscription_by_user_id")
        target = next(
            (item for item in self.subscriptions.values() if item.user_id == user_id), None
        )
        return self._apply(target, changes)

    async def update_subscription_by_stripe_subscription_id(
        self, stripe_subscription_id: str, changes: Dict[str, Any]
    ):
        self._record("update_subscription_by_stripe_subscription_id")
        target = next(
            (
                item
                for item in self.subscriptions.values()
                if item.stripe_subscription_id == stripe_subscription_id
            ),
            None,
        )
        return self._apply(target, changes)

    async def change_subscription_plan(self, user_id: str, plan: SubscriptionPlan):
        self._record("change_subscription_plan")
        target = next(
            (item for item in self.subscriptions.values() if item.user_id == user_id), None
        )
        return self._apply(target, {"plan": plan})

    # payments

    async def create_payment(self, data: Dict[str, Any]) -> Payment:
        self._record("create_payment")
        payment = Payment(id=f"pay_{next(self._ids)}", **data)
        self.payments[payment.stripe_payment_intent_id] = payment
        return payment

    async def find_payment_by_stripe_payment_intent_id(self, payment_intent_id: str):
        self._record("find_payment_by_stripe_payment_intent_id")
        return self.payments.get(payment_intent_id)

    async def find_payments_by_user_id(self, user_id: str) -> List[Payment]:
        self._record("find_payments_by_user_id")
        return [item for item in self.payments.values() if item.user_id == user_id]

    async def find_payments_by_subscription_id(self, subscription_id: str) -> List[Payment]:
        self._record("find_payments_by_subscription_id")
        return [item for item in self.payments.values() if item.subscription_id == subscription_id]

    async def update_payment_by_stripe_payment_intent_id(
        self, payment_intent_id: str, changes: Dict[str, Any]
    ):
        self._record("update_payment_by_stripe_payment_intent_id")
        return self._apply(self.payments.get(payment_intent_id), changes)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def state() -> InMemoryRemoteState:
    return InMemoryRemoteState()


@pytest.fixture
def stripe_service():
    service = create_autospec(StripeService, instance=True)
    service.create_customer.return_value = SimpleNamespace(id="cus_123")
    service.create_subscription.return_value = SimpleNamespace(id="sub_stripe_1")
    service.get_price_id.side_effect = lambda plan: f"price_{plan.value}"
    service.create_refund.return_value = SimpleNamespace(id="re_1")
    return service


@pytest.fixture
def identity() -> AsyncMock:
    notifier = AsyncMock()
    notifier.update_user_subscription.return_value = None
    return notifier


@pytest.fixture
def subscription_service(state, stripe_service, identity, clock) -> SubscriptionService:
    return SubscriptionService(state, stripe_service, identity, clock=clock)


@pytest.fixture
def webhook_service(state, stripe_service, identity, clock) -> WebhookService:
    return WebhookService(state, stripe_service, identity, clock=clock)


@pytest.fixture
def payment_service(state, stripe_service, clock) -> PaymentService:
    return PaymentService(state, stripe_service, clock=clock)
