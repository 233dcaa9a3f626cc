"""HTTP client for the DB service that stores subscription and payment records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx

from ...domain.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    UpstreamUnavailableError,
)
from ...domain.models import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)

logger = logging.getLogger(__name__)

# Domain attribute -> DB service JSON key.
SUBSCRIPTION_FIELDS: Dict[str, str] = {
    "id": "_id",
    "user_id": "userId",
    "stripe_customer_id": "stripeCustomerId",
    "stripe_subscription_id": "stripeSubscriptionId",
    "status": "status",
    "plan": "plan",
    "trial_start": "trialStart",
    "trial_end": "trialEnd",
    "is_trial_active": "isTrialActive",
    "current_period_start": "currentPeriodStart",
    "current_period_end": "currentPeriodEnd",
    "next_billing_date": "nextBillingDate",
    "cancel_at_period_end": "cancelAtPeriodEnd",
    "canceled_at": "canceledAt",
    "card_validated": "cardValidated",
    "monthly_price": "monthlyPrice",
    "yearly_price": "yearlyPrice",
    "currency": "currency",
    "metadata": "metadata",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

PAYMENT_FIELDS: Dict[str, str] = {
    "id": "_id",
    "user_id": "userId",
    "subscription_id": "subscriptionId",
    "stripe_payment_intent_id": "stripePaymentIntentId",
    "stripe_charge_id": "stripeChargeId",
    "status": "status",
    "payment_method": "paymentMethod",
    "amount": "amount",
    "currency": "currency",
    "description": "description",
    "paid_at": "paidAt",
    "failure_reason": "failureReason",
    "refunded_amount": "refundedAmount",
    "refunded_at": "refundedAt",
    "receipt_url": "receiptUrl",
    "invoice_id": "invoiceId",
    "billing_period_start": "billingPeriodStart",
    "billing_period_end": "billingPeriodEnd",
    "is_trial": "isTrial",
    "metadata": "metadata",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

_SUBSCRIPTION_DATES = {
    "trial_start",
    "trial_end",
    "current_period_start",
    "current_period_end",
    "next_billing_date",
    "canceled_at",
    "created_at",
    "updated_at",
}

_PAYMENT_DATES = {
    "paid_at",
    "refunded_at",
    "billing_period_start",
    "billing_period_end",
    "created_at",
    "updated_at",
}


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the DB service into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def encode_fields(changes: Dict[str, Any], fields: Dict[str, str]) -> Dict[str, Any]:
    """Translate domain attribute names into the DB service wire format."""
    payload: Dict[str, Any] = {}
    for key, value in changes.items():
        if key not in fields:
            raise ValueError(f"Unknown field: {key}")
        payload[fields[key]] = _encode_value(value)
    return payload


def _decode_fields(data: Dict[str, Any], fields: Dict[str, str], dates: set) -> Dict[str, Any]:
    decoded: Dict[str, Any] = {}
    for attribute, key in fields.items():
        if key in data:
            value = data[key]
        elif attribute == "id" and "id" in data:
            value = data["id"]
        else:
            continue
        if attribute in dates:
            value = parse_datetime(value)
        if value is None:
            continue
        decoded[attribute] = value
    return decoded


def subscription_from_dict(data: Dict[str, Any]) -> Subscription:
    """Convert a DB service document to a Subscription entity."""
    decoded = _decode_fields(data, SUBSCRIPTION_FIELDS, _SUBSCRIPTION_DATES)
    if "id" in decoded:
        decoded["id"] = str(decoded["id"])
    if "status" in decoded:
        decoded["status"] = SubscriptionStatus(decoded["status"])
    if "plan" in decoded:
        decoded["plan"] = SubscriptionPlan(decoded["plan"])
    return Subscription(**decoded)


def payment_from_dict(data: Dict[str, Any]) -> Payment:
    """Convert a DB service document to a Payment entity."""
    decoded = _decode_fields(data, PAYMENT_FIELDS, _PAYMENT_DATES)
    if "id" in decoded:
        decoded["id"] = str(decoded["id"])
    if "status" in decoded:
        decoded["status"] = PaymentStatus(decoded["status"])
    if "payment_method" in decoded:
        decoded["payment_method"] = PaymentMethod(decoded["payment_method"])
    return Payment(**decoded)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        message = data.get("message")
        if isinstance(message, list):
            return ", ".join(str(item) for item in message)
        if message:
            return str(message)
        if data.get("error"):
            return str(data["error"])
    return response.reason_phrase


class RemoteStateClient:
    """Client for communicating with the DB service over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        service_name: str = "payment-service",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "x-api-key": api_key,
                "x-service-name": service_name,
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            logger.error("DB service %s %s timed out", method, path)
            raise UpstreamUnavailableError("DB service is not responding") from exc
        except httpx.TransportError as exc:
            logger.error("DB service %s %s failed: %s", method, path, exc)
            raise UpstreamUnavailableError("DB service is not responding") from exc

        if response.status_code == 404 and allow_missing:
            logger.debug("DB service %s %s returned no record", method, path)
            return None

        if response.is_error:
            message = _error_message(response)
            logger.error(
                "DB service %s %s failed: %s %s",
                method,
                path,
                response.status_code,
                message,
            )
            self._raise_for_status(response.status_code, message)

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _raise_for_status(status_code: int, message: str) -> None:
        if status_code == 404:
            raise NotFoundError(message)
        if status_code == 409:
            raise ConflictError(message)
        if status_code in (401, 403):
            raise UnauthorizedError(message)
        if status_code >= 500:
            raise UpstreamUnavailableError(message)
        raise BadRequestError(message)

    # ============ SUBSCRIPTIONS ============

    async def create_subscription(self, data: Dict[str, Any]) -> Subscription:
        payload = encode_fields(data, SUBSCRIPTION_FIELDS)
        document = await self._request("POST", "/subscriptions", json=payload)
        return subscription_from_dict(document)

    async def find_subscription_by_id(self, subscription_id: str) -> Optional[Subscription]:
        document = await self._request(
            "GET", f"/subscriptions/{subscription_id}", allow_missing=True
        )
        return subscription_from_dict(document) if document else None

    async def find_subscription_by_user_id(self, user_id: str) -> Optional[Subscription]:
        document = await self._request(
            "GET", f"/subscriptions/user/{user_id}", allow_missing=True
        )
        return subscription_from_dict(document) if document else None

    async def find_subscription_by_stripe_subscription_id(
        self, stripe_subscription_id: str
    ) -> Optional[Subscription]:
        document = await self._request(
            "GET",
            f"/subscriptions/stripe-subscription/{stripe_subscription_id}",
            allow_missing=True,
        )
        return subscription_from_dict(document) if document else None

    async def update_subscription_by_id(
        self, subscription_id: str, changes: Dict[str, Any]
    ) -> Subscription:
        document = await self._request(
            "PUT",
            f"/subscriptions/{subscription_id}",
            json=encode_fields(changes, SUBSCRIPTION_FIELDS),
        )
        return subscription_from_dict(document)

    async def update_subscription_by_user_id(
        self, user_id: str, changes: Dict[str, Any]
    ) -> Subscription:
        document = await self._request(
            "PUT",
            f"/subscriptions/user/{user_id}",
            json=encode_fields(changes, SUBSCRIPTION_FIELDS),
        )
        return subscription_from_dict(document)

    async def update_subscription_by_stripe_subscription_id(
        self, stripe_subscription_id: str, changes: Dict[str, Any]
    ) -> Subscription:
        document = await self._request(
            "PUT",
            f"/subscriptions/stripe-subscription/{stripe_subscription_id}",
            json=encode_fields(changes, SUBSCRIPTION_FIELDS),
        )
        return subscription_from_dict(document)

    async def change_subscription_plan(
        self, user_id: str, plan: SubscriptionPlan
    ) -> Subscription:
        document = await self._request(
            "PUT", f"/subscriptions/user/{user_id}/plan", json={"plan": plan.value}
        )
        return subscription_from_dict(document)

    # ============ PAYMENTS ============

    async def create_payment(self, data: Dict[str, Any]) -> Payment:
        payload = encode_fields(data, PAYMENT_FIELDS)
        document = await self._request("POST", "/payments", json=payload)
        return payment_from_dict(document)

    async def find_payment_by_stripe_payment_intent_id(
        self, stripe_payment_intent_id: str
    ) -> Optional[Payment]:
        document = await self._request(
            "GET",
            f"/payments/stripe-payment-intent/{stripe_payment_intent_id}",
            allow_missing=True,
        )
        return payment_from_dict(document) if document else None

    async def find_payments_by_user_id(self, user_id: str) -> List[Payment]:
        documents = await self._request("GET", f"/payments/user/{user_id}")
        return [payment_from_dict(item) for item in documents or []]

    async def find_payments_by_subscription_id(self, subscription_id: str) -> List[Payment]:
        documents = await self._request("GET", f"/payments/subscription/{subscription_id}")
        return [payment_from_dict(item) for item in documents or []]

    async def update_payment_by_stripe_payment_intent_id(
        self, stripe_payment_intent_id: str, changes: Dict[str, Any]
    ) -> Payment:
        document = await self._request(
            "PUT",
            f"/payments/stripe-payment-intent/{stripe_payment_intent_id}",
            json=encode_fields(changes, PAYMENT_FIELDS),
        )
        return payment_from_dict(document)
