"""Read access to recorded payments and refunds through Stripe."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..domain.errors import BadRequestError, NotFoundError
from ..domain.models import Payment, PaymentStatus
from ..domain.ports.gateways import PaymentStore
from .stripe_service import StripeService
from .subscription_service import Clock, utcnow

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(
        self,
        store: PaymentStore,
        stripe_service: StripeService,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._stripe = stripe_service
        self._clock = clock

    async def list_by_user(self, user_id: str) -> List[Payment]:
        return await self._store.find_payments_by_user_id(user_id)

    async def list_by_subscription(self, subscription_id: str) -> List[Payment]:
        return await self._store.find_payments_by_subscription_id(subscription_id)

    async def get_by_payment_intent(self, payment_intent_id: str) -> Payment:
        payment = await self._store.find_payment_by_stripe_payment_intent_id(payment_intent_id)
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    async def refund(self, payment_intent_id: str, amount: Optional[int] = None) -> Payment:
        """
        Refund a succeeded payment, fully or partially.

        Args:
            payment_intent_id: Stripe payment intent of the recorded payment
            amount: Amount to refund in minor units; everything left when omitted

        Raises:
            NotFoundError: If no payment is recorded for the intent
            BadRequestError: If the payment cannot be refunded for that amount
        """
        payment = await self.get_by_payment_intent(payment_intent_id)
        if payment.status != PaymentStatus.SUCCEEDED:
            raise BadRequestError("Only succeeded payments can be refunded")

        remaining = payment.refundable_amount
        refund_amount = remaining if amount is None else amount
        if refund_amount <= 0:
            raise BadRequestError("Refund amount must be positive")
        if refund_amount > remaining:
            raise BadRequestError("Refund amount exceeds the refundable amount")

        await self._stripe.create_refund(payment_intent_id, amount=refund_amount)

        refunded_total = payment.refunded_amount + refund_amount
        changes = {"refunded_amount": refunded_total, "refunded_at": self._clock()}
        if refunded_total >= payment.amount:
            changes["status"] = PaymentStatus.REFUNDED

        updated = await self._store.update_payment_by_stripe_payment_intent_id(
            payment_intent_id, changes
        )
        logger.info("Refunded %s of payment %s", refund_amount, payment_intent_id)
        return updated
