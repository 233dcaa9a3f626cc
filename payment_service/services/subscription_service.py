"""Service for the subscription lifecycle: trial, activation, plan changes and cancellation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from dateutil.relativedelta import relativedelta

from ..domain.errors import BadRequestError, ConflictError, NotFoundError
from ..domain.models import Subscription, SubscriptionPlan, SubscriptionStatus
from ..domain.ports.gateways import IdentityNotifier, SubscriptionStore
from .stripe_service import StripeService

logger = logging.getLogger(__name__)

TRIAL_PERIOD_DAYS = 30

# Fields a caller may change through the direct-by-id update.
UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "plan",
        "cancel_at_period_end",
        "trial_end",
        "current_period_start",
        "current_period_end",
        "next_billing_date",
    }
)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class SubscriptionStatusSummary:
    has_subscription: bool
    is_active: bool
    plan: Optional[SubscriptionPlan] = None
    status: Optional[SubscriptionStatus] = None
    trial_active: bool = False
    days_remaining: Optional[int] = None
    next_billing_date: Optional[datetime] = None
    cancel_at_period_end: bool = False


def billing_period_end(start: datetime, plan: SubscriptionPlan) -> datetime:
    """Add one calendar month or year to ``start`` depending on the plan."""
    if plan == SubscriptionPlan.YEARLY:
        return start + relativedelta(years=1)
    return start + relativedelta(months=1)


def days_until(boundary: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole days left until ``boundary``, rounded up and never negative."""
    if boundary is None:
        return None
    seconds = (boundary - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


class SubscriptionService:
    """Owns the subscription state machine."""

    def __init__(
        self,
        store: SubscriptionStore,
        stripe_service: StripeService,
        identity: IdentityNotifier,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._stripe = stripe_service
        self._identity = identity
        self._clock = clock

    async def _notify_identity(
        self,
        user_id: str,
        plan: SubscriptionPlan,
        status: SubscriptionStatus,
        trial_end: Optional[datetime] = None,
    ) -> None:
        # Last step of every mutation; must never undo it.
        try:
            await self._identity.update_user_subscription(
                user_id, plan=plan, status=status, trial_end=trial_end
            )
        except Exception as exc:
            logger.error("Identity notification for user %s failed: %s", user_id, exc)

    def _trial_window(self) -> Dict[str, Any]:
        trial_start = self._clock()
        trial_end = trial_start + timedelta(days=TRIAL_PERIOD_DAYS)
        return {
            "status": SubscriptionStatus.TRIAL,
            "trial_start": trial_start,
            "trial_end": trial_end,
            "is_trial_active": True,
            "current_period_start": trial_start,
            "current_period_end": trial_end,
            "next_billing_date": trial_end,
        }

    async def _validate_card(self, customer_id: str, payment_method_id: str) -> None:
        await self._stripe.attach_payment_method(payment_method_id, customer_id)
        await self._stripe.set_default_payment_method(customer_id, payment_method_id)
        logger.info(
            "Payment method %s attached and validated for customer %s",
            payment_method_id,
            customer_id,
        )

    async def create(
        self,
        user_id: str,
        email: str,
        name: Optional[str],
        plan: SubscriptionPlan,
    ) -> Subscription:
        """
        Create a subscription with a 30-day trial.

        Raises:
            ConflictError: If the user already has a subscription
        """
        if await self._store.find_subscription_by_user_id(user_id):
            raise ConflictError("User already has an active subscription")

        customer = await self._stripe.create_customer(email, name, {"userId": user_id})

        data = {"user_id": user_id, "stripe_customer_id": customer.id, "plan": plan}
        data.update(self._trial_window())
        subscription = await self._store.create_subscription(data)
        logger.info("Created subscription for user %s with trial period", user_id)

        await self._notify_identity(user_id, plan, SubscriptionStatus.TRIAL, data["trial_end"])
        return subscription

    async def create_subscription_with_card(
        self,
        user_id: str,
        email: str,
        name: Optional[str],
        plan: SubscriptionPlan,
        payment_method_id: str,
    ) -> Subscription:
        """
        Create a trial subscription and validate a card by attaching it.

        Re-entrant: an existing subscription on the same plan is returned
        unchanged, one on another plan is switched to ``plan`` and gets the
        card attached if none was validated yet. Nothing is charged.
        """
        existing = await self._store.find_subscription_by_user_id(user_id)
        if existing:
            if existing.plan == plan:
                logger.info("User %s already subscribed to %s plan", user_id, plan.value)
                return existing

            logger.info("User %s already has subscription, changing plan to %s", user_id, plan.value)
            updated = await self.change_plan(user_id, plan)
            if not existing.card_validated and existing.stripe_customer_id:
                await self._validate_card(existing.stripe_customer_id, payment_method_id)
                updated = await self._store.update_subscription_by_user_id(
                    user_id, {"card_validated": True}
                )
            return updated

        customer = await self._stripe.create_customer(email, name, {"userId": user_id})
        await self._validate_card(customer.id, payment_method_id)

        data = {
            "user_id": user_id,
            "stripe_customer_id": customer.id,
            "plan": plan,
            "card_validated": True,
        }
        data.update(self._trial_window())
        subscription = await self._store.create_subscription(data)
        logger.info("Created subscription with card validation for user %s", user_id)

        await self._notify_identity(user_id, plan, SubscriptionStatus.TRIAL, data["trial_end"])
        return subscription

    async def start_paid_subscription(self, user_id: str, payment_method_id: str) -> Subscription:
        """
        Convert a trial into a paid Stripe subscription.

        Raises:
            NotFoundError: If the user has no subscription
            BadRequestError: If the subscription is not in trial
        """
        subscription = await self._require(user_id)
        if subscription.status != SubscriptionStatus.TRIAL:
            raise BadRequestError("Subscription is not in trial status")

        price_id = self._stripe.get_price_id(subscription.plan)
        stripe_subscription = await self._stripe.create_subscription(
            subscription.stripe_customer_id,
            price_id,
            trial_period_days=0,
            default_payment_method=payment_method_id,
        )

        now = self._clock()
        period_end = billing_period_end(now, subscription.plan)
        updated = await self._store.update_subscription_by_user_id(
            user_id,
            {
                "stripe_subscription_id": stripe_subscription.id,
                "status": SubscriptionStatus.ACTIVE,
                "is_trial_active": False,
                "current_period_start": now,
                "current_period_end": period_end,
                "next_billing_date": period_end,
            },
        )
        logger.info("Started paid subscription for user %s", user_id)

        await self._notify_identity(user_id, subscription.plan, SubscriptionStatus.ACTIVE)
        return updated

    async def cancel(self, user_id: str, cancel_at_period_end: bool = True) -> Subscription:
        """Cancel immediately or at the end of the current period."""
        subscription = await self._require(user_id)

        if subscription.stripe_subscription_id:
            await self._stripe.cancel_subscription(
                subscription.stripe_subscription_id, at_period_end=cancel_at_period_end
            )

        changes: Dict[str, Any] = {"cancel_at_period_end": cancel_at_period_end}
        if not cancel_at_period_end:
            changes["status"] = SubscriptionStatus.CANCELED
            changes["is_trial_active"] = False
            changes["canceled_at"] = self._clock()

        updated = await self._store.update_subscription_by_user_id(user_id, changes)
        logger.info(
            "Canceled subscription for user %s (at period end: %s)", user_id, cancel_at_period_end
        )

        await self._notify_identity(user_id, subscription.plan, updated.status)
        return updated

    async def change_plan(self, user_id: str, new_plan: SubscriptionPlan) -> Subscription:
        """
        Switch the stored plan; the status is left untouched.

        Raises:
            NotFoundError: If the user has no subscription
            BadRequestError: If the subscription is already on ``new_plan``
        """
        subscription = await self._require(user_id)
        if subscription.plan == new_plan:
            raise BadRequestError("Subscription is already on this plan")

        updated = await self._store.change_subscription_plan(user_id, new_plan)
        logger.info("Changed subscription plan for user %s to %s", user_id, new_plan.value)

        await self._notify_identity(user_id, new_plan, subscription.status)
        return updated

    async def find_by_user_id(self, user_id: str) -> Optional[Subscription]:
        return await self._store.find_subscription_by_user_id(user_id)

    async def find_by_id(self, subscription_id: str) -> Subscription:
        subscription = await self._store.find_subscription_by_id(subscription_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        return subscription

    async def update(self, subscription_id: str, changes: Dict[str, Any]) -> Subscription:
        """Apply a partial update to a subscription addressed by its record id."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise BadRequestError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        subscription = await self.find_by_id(subscription_id)
        if not changes:
            return subscription

        updated = await self._store.update_subscription_by_id(subscription_id, changes)
        logger.info("Updated subscription %s: %s", subscription_id, ", ".join(sorted(changes)))
        return updated

    async def is_active(self, user_id: str) -> bool:
        subscription = await self._store.find_subscription_by_user_id(user_id)
        if not subscription:
            return False
        return subscription.is_active(self._clock())

    async def get_status(self, user_id: str) -> SubscriptionStatusSummary:
        subscription = await self._store.find_subscription_by_user_id(user_id)
        if not subscription:
            return SubscriptionStatusSummary(has_subscription=False, is_active=False)

        now = self._clock()
        return SubscriptionStatusSummary(
            has_subscription=True,
            is_active=subscription.is_active(now),
            plan=subscription.plan,
            status=subscription.status,
            trial_active=subscription.is_trial_active,
            days_remaining=days_until(subscription.current_boundary(), now),
            next_billing_date=subscription.next_billing_date,
            cancel_at_period_end=subscription.cancel_at_period_end,
        )

    async def _require(self, user_id: str) -> Subscription:
        subscription = await self._store.find_subscription_by_user_id(user_id)
        if not subscription:
            raise NotFoundError("Subscription not found")
        return subscription
