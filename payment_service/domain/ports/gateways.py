from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from ..models import Payment, Subscription, SubscriptionPlan, SubscriptionStatus


class SubscriptionStore(Protocol):
    """Durable storage of subscription projections."""

    async def create_subscription(self, data: Dict[str, Any]) -> Subscription:
        ...

    async def find_subscription_by_id(self, subscription_id: str) -> Optional[Subscription]:
        ...

    async def find_subscription_by_user_id(self, user_id: str) -> Optional[Subscription]:
        ...

    async def find_subscription_by_stripe_subscription_id(
        self, stripe_subscription_id: str
    ) -> Optional[Subscription]:
        ...

    async def update_subscription_by_id(
        self, subscription_id: str, changes: Dict[str, Any]
    ) -> Subscription:
        ...

    async def update_subscription_by_user_id(
        self, user_id: str, changes: Dict[str, Any]
    ) -> Subscription:
        ...

    async def update_subscription_by_stripe_subscription_id(
        self, stripe_subscription_id: str, changes: Dict[str, Any]
    ) -> Subscription:
        ...

    async def change_subscription_plan(
        self, user_id: str, plan: SubscriptionPlan
    ) -> Subscription:
        ...


class PaymentStore(Protocol):
    """Durable storage of payment records."""

    async def create_payment(self, data: Dict[str, Any]) -> Payment:
        ...

    async def find_payment_by_stripe_payment_intent_id(
        self, stripe_payment_intent_id: str
    ) -> Optional[Payment]:
        ...

    async def find_payments_by_user_id(self, user_id: str) -> List[Payment]:
        ...

    async def find_payments_by_subscription_id(self, subscription_id: str) -> List[Payment]:
        ...

    async def update_payment_by_stripe_payment_intent_id(
        self, stripe_payment_intent_id: str, changes: Dict[str, Any]
    ) -> Payment:
        ...


class RemoteStateGateway(SubscriptionStore, PaymentStore, Protocol):
    """Aggregate protocol implemented by the DB service client."""


class IdentityNotifier(Protocol):
    """Best-effort propagation of subscription summaries to the auth service."""

    async def update_user_subscription(
        self,
        user_id: str,
        plan: Optional[SubscriptionPlan] = None,
        status: Optional[SubscriptionStatus] = None,
        trial_end: Optional[datetime] = None,
    ) -> None:
        ...
