"""Payment domain model: one billing attempt recorded from Stripe invoices."""

from datetime import datetime
from typing import Any, Dict, Optional

from .enums import PaymentMethod, PaymentStatus


class Payment:
    """
    Payment entity as stored by the remote DB service.

    Attributes:
        id: Remote record identifier
        user_id: Identifier of the paying user
        subscription_id: Remote identifier of the owning subscription
        stripe_payment_intent_id: Stripe payment intent ID
        stripe_charge_id: Stripe charge ID
        status: Payment status
        payment_method: Kind of payment method used
        amount: Amount in minor currency units
        currency: ISO currency code
        description: Human readable description
        paid_at: When the payment succeeded
        failure_reason: Why the payment failed
        refunded_amount: Total refunded so far, in minor currency units
        refunded_at: When the last refund happened
        receipt_url: Hosted receipt or invoice URL
        invoice_id: Stripe invoice ID
        billing_period_start: Start of the billed period
        billing_period_end: End of the billed period
        is_trial: Whether the payment belongs to a trial period
        metadata: Free-form metadata
        created_at: Record creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        user_id: str,
        subscription_id: str,
        stripe_payment_intent_id: str,
        amount: int,
        status: PaymentStatus = PaymentStatus.PENDING,
        payment_method: PaymentMethod = PaymentMethod.CARD,
        id: Optional[str] = None,
        stripe_charge_id: Optional[str] = None,
        currency: str = "eur",
        description: Optional[str] = None,
        paid_at: Optional[datetime] = None,
        failure_reason: Optional[str] = None,
        refunded_amount: int = 0,
        refunded_at: Optional[datetime] = None,
        receipt_url: Optional[str] = None,
        invoice_id: Optional[str] = None,
        billing_period_start: Optional[datetime] = None,
        billing_period_end: Optional[datetime] = None,
        is_trial: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        if amount < 0:
            raise ValueError("Payment amount must be non-negative")
        self.id = id
        self.user_id = user_id
        self.subscription_id = subscription_id
        self.stripe_payment_intent_id = stripe_payment_intent_id
        self.stripe_charge_id = stripe_charge_id
        self.status = status
        self.payment_method = payment_method
        self.amount = amount
        self.currency = currency
        self.description = description
        self.paid_at = paid_at
        self.failure_reason = failure_reason
        self.refunded_amount = refunded_amount
        self.refunded_at = refunded_at
        self.receipt_url = receipt_url
        self.invoice_id = invoice_id
        self.billing_period_start = billing_period_start
        self.billing_period_end = billing_period_end
        self.is_trial = is_trial
        self.metadata = metadata or {}
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def refundable_amount(self) -> int:
        return max(0, self.amount - self.refunded_amount)

    def __repr__(self) -> str:
        return (
            f"<Payment id={self.id} intent={self.stripe_payment_intent_id} "
            f"status={self.status.value} amount={self.amount}>"
        )
