"""Subscription domain model: the local projection of a user's Stripe subscription."""

from datetime import datetime
from typing import Any, Dict, Optional

from .enums import SubscriptionPlan, SubscriptionStatus


class Subscription:
    """
    Subscription entity as stored by the remote DB service.

    Attributes:
        id: Remote record identifier
        user_id: Identifier of the user in the auth service
        stripe_customer_id: Stripe customer ID
        stripe_subscription_id: Stripe subscription ID (set on paid activation)
        status: Lifecycle status
        plan: Billing plan
        trial_start: Start of the trial window
        trial_end: End of the trial window
        is_trial_active: Whether the trial window is still running
        current_period_start: Start of the current billing period
        current_period_end: End of the current billing period
        next_billing_date: Date of the next charge
        cancel_at_period_end: Whether the subscription ends with the current period
        canceled_at: When the subscription was canceled
        card_validated: Whether a default payment method is attached
        monthly_price: Monthly price in minor currency units
        yearly_price: Yearly price in minor currency units
        currency: ISO currency code
        metadata: Free-form metadata
        created_at: Record creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        user_id: str,
        stripe_customer_id: str,
        status: SubscriptionStatus = SubscriptionStatus.TRIAL,
        plan: SubscriptionPlan = SubscriptionPlan.MONTHLY,
        id: Optional[str] = None,
        stripe_subscription_id: Optional[str] = None,
        trial_start: Optional[datetime] = None,
        trial_end: Optional[datetime] = None,
        is_trial_active: bool = False,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
        next_billing_date: Optional[datetime] = None,
        cancel_at_period_end: bool = False,
        canceled_at: Optional[datetime] = None,
        card_validated: bool = False,
        monthly_price: int = 0,
        yearly_price: int = 0,
        currency: str = "eur",
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.user_id = user_id
        self.stripe_customer_id = stripe_customer_id
        self.stripe_subscription_id = stripe_subscription_id
        self.status = status
        self.plan = plan
        self.trial_start = trial_start
        self.trial_end = trial_end
        self.is_trial_active = is_trial_active
        self.current_period_start = current_period_start
        self.current_period_end = current_period_end
        self.next_billing_date = next_billing_date
        self.cancel_at_period_end = cancel_at_period_end
        self.canceled_at = canceled_at
        self.card_validated = card_validated
        self.monthly_price = monthly_price
        self.yearly_price = yearly_price
        self.currency = currency
        self.metadata = metadata or {}
        self.created_at = created_at
        self.updated_at = updated_at

    def is_active(self, now: datetime) -> bool:
        """Check whether the subscription grants access at ``now``."""
        if self.is_trial_active and self.trial_end is not None and now < self.trial_end:
            return True
        return (
            self.status == SubscriptionStatus.ACTIVE
            and self.current_period_end is not None
            and now < self.current_period_end
        )

    def current_boundary(self) -> Optional[datetime]:
        """End of the window that currently grants access."""
        if self.is_trial_active:
            return self.trial_end
        return self.current_period_end

    def __repr__(self) -> str:
        return (
            f"<Subscription id={self.id} user_id={self.user_id} "
            f"status={self.status.value} plan={self.plan.value}>"
        )
