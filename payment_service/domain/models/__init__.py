"""Domain models for the payment service."""

from .enums import PaymentMethod, PaymentStatus, SubscriptionPlan, SubscriptionStatus
from .payment import Payment
from .subscription import Subscription

__all__ = [
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "Subscription",
    "SubscriptionPlan",
    "SubscriptionStatus",
]
