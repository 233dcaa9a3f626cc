"""Pydantic schemas for payment API endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from ....domain.models import Payment, PaymentMethod, PaymentStatus
from .subscription_schemas import CamelModel


class RefundRequest(CamelModel):
    amount: Optional[int] = Field(default=None, gt=0, description="Amount in minor currency units")


class PaymentResponse(CamelModel):
    """Response schema for a recorded payment."""

    id: Optional[str] = None
    user_id: str
    subscription_id: str
    stripe_payment_intent_id: str
    status: PaymentStatus
    payment_method: PaymentMethod
    amount: int
    currency: str
    description: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    refunded_amount: int = 0
    refunded_at: Optional[datetime] = None
    receipt_url: Optional[str] = None
    invoice_id: Optional[str] = None
    billing_period_start: Optional[datetime] = None
    billing_period_end: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, payment: Payment) -> "PaymentResponse":
        return cls(
            id=payment.id,
            user_id=payment.user_id,
            subscription_id=payment.subscription_id,
            stripe_payment_intent_id=payment.stripe_payment_intent_id,
            status=payment.status,
            payment_method=payment.payment_method,
            amount=payment.amount,
            currency=payment.currency,
            description=payment.description,
            paid_at=payment.paid_at,
            failure_reason=payment.failure_reason,
            refunded_amount=payment.refunded_amount,
            refunded_at=payment.refunded_at,
            receipt_url=payment.receipt_url,
            invoice_id=payment.invoice_id,
            billing_period_start=payment.billing_period_start,
            billing_period_end=payment.billing_period_end,
            created_at=payment.created_at,
        )
