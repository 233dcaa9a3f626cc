"""Pydantic schemas for subscription API endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ....domain.models import Subscription, SubscriptionPlan, SubscriptionStatus
from ....services.subscription_service import SubscriptionStatusSummary


class CamelModel(BaseModel):
    """Base schema exchanging camelCase JSON with the sibling services."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSubscriptionRequest(CamelModel):
    user_id: str = Field(..., min_length=1, description="Auth service user id")
    email: str = Field(..., min_length=3, max_length=254)
    name: Optional[str] = Field(default=None, max_length=120)
    plan: SubscriptionPlan = Field(default=SubscriptionPlan.MONTHLY)


class CreateSubscriptionWithCardRequest(CreateSubscriptionRequest):
    payment_method_id: str = Field(..., min_length=1, description="Stripe payment method id")


class ActivateSubscriptionRequest(CamelModel):
    payment_method_id: str = Field(..., min_length=1, description="Stripe payment method id")


class CancelSubscriptionRequest(CamelModel):
    cancel_at_period_end: bool = Field(default=True)


class ChangePlanRequest(CamelModel):
    plan: SubscriptionPlan


class UpdateSubscriptionRequest(CamelModel):
    status: Optional[SubscriptionStatus] = None
    plan: Optional[SubscriptionPlan] = None
    cancel_at_period_end: Optional[bool] = None
    trial_end: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None


class SubscriptionResponse(CamelModel):
    """Response schema for subscription data."""

    id: Optional[str] = None
    user_id: str
    stripe_customer_id: str
    stripe_subscription_id: Optional[str] = None
    status: SubscriptionStatus
    plan: SubscriptionPlan
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    is_trial_active: bool = False
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    card_validated: bool = False
    currency: str = "eur"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            user_id=subscription.user_id,
            stripe_customer_id=subscription.stripe_customer_id,
            stripe_subscription_id=subscription.stripe_subscription_id,
            status=subscription.status,
            plan=subscription.plan,
            trial_start=subscription.trial_start,
            trial_end=subscription.trial_end,
            is_trial_active=subscription.is_trial_active,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            next_billing_date=subscription.next_billing_date,
            cancel_at_period_end=subscription.cancel_at_period_end,
            canceled_at=subscription.canceled_at,
            card_validated=subscription.card_validated,
            currency=subscription.currency,
            created_at=subscription.created_at,
            updated_at=subscription.updated_at,
        )


class SubscriptionStatusResponse(CamelModel):
    has_subscription: bool
    is_active: bool
    plan: Optional[SubscriptionPlan] = None
    status: Optional[SubscriptionStatus] = None
    trial_active: bool = False
    days_remaining: Optional[int] = None
    next_billing_date: Optional[datetime] = None
    cancel_at_period_end: bool = False

    @classmethod
    def from_summary(cls, summary: SubscriptionStatusSummary) -> "SubscriptionStatusResponse":
        return cls(
            has_subscription=summary.has_subscription,
            is_active=summary.is_active,
            plan=summary.plan,
            status=summary.status,
            trial_active=summary.trial_active,
            days_remaining=summary.days_remaining,
            next_billing_date=summary.next_billing_date,
            cancel_at_period_end=summary.cancel_at_period_end,
        )


class ActiveResponse(CamelModel):
    is_active: bool
