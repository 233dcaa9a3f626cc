import json
from datetime import datetime, timezone

import httpx
import pytest

from payment_service.domain.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    UpstreamUnavailableError,
)
from payment_service.domain.models import (
    PaymentStatus,
    SubscriptionPlan,
    SubscriptionStatus,
)
from payment_service.infrastructure.clients.remote_state import (
    RemoteStateClient,
    encode_fields,
    parse_datetime,
    SUBSCRIPTION_FIELDS,
)

SUBSCRIPTION_DOC = {
    "_id": "65a1",
    "userId": "u1",
    "stripeCustomerId": "cus_123",
    "stripeSubscriptionId": None,
    "status": "trial",
    "plan": "monthly",
    "trialStart": "2025-01-15T12:00:00.000Z",
    "trialEnd": "2025-02-14T12:00:00.000Z",
    "isTrialActive": True,
    "cancelAtPeriodEnd": False,
    "cardValidated": False,
    "currency": "eur",
}


def _client(handler):
    return RemoteStateClient(
        "http://db.local",
        "secret",
        service_name="payment-service",
        transport=httpx.MockTransport(handler),
    )


class TestRequests:
    async def test_find_by_user_decodes_document(self):
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json=SUBSCRIPTION_DOC)

        client = _client(handler)
        subscription = await client.find_subscription_by_user_id("u1")
        await client.aclose()

        request = seen["request"]
        assert request.method == "GET"
        assert request.url.path == "/subscriptions/user/u1"
        assert request.headers["x-api-key"] == "secret"
        assert request.headers["x-service-name"] == "payment-service"
        assert subscription.id == "65a1"
        assert subscription.status == SubscriptionStatus.TRIAL
        assert subscription.plan == SubscriptionPlan.MONTHLY
        assert subscription.stripe_subscription_id is None
        assert subscription.trial_end == datetime(2025, 2, 14, 12, 0, tzinfo=timezone.utc)

    async def test_missing_record_is_none(self):
        client = _client(lambda request: httpx.Response(404, json={"message": "Not found"}))

        assert await client.find_subscription_by_stripe_subscription_id("sub_x") is None
        assert await client.find_payment_by_stripe_payment_intent_id("pi_x") is None

    async def test_update_sends_camel_case(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["path"] = request.url.path
            return httpx.Response(200, json={**SUBSCRIPTION_DOC, "status": "canceled"})

        client = _client(handler)
        canceled_at = datetime(2025, 1, 20, tzinfo=timezone.utc)
        subscription = await client.update_subscription_by_user_id(
            "u1",
            {"status": SubscriptionStatus.CANCELED, "canceled_at": canceled_at},
        )

        assert seen["path"] == "/subscriptions/user/u1"
        assert seen["body"] == {
            "status": "canceled",
            "canceledAt": "2025-01-20T00:00:00+00:00",
        }
        assert subscription.status == SubscriptionStatus.CANCELED

    async def test_change_plan(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={**SUBSCRIPTION_DOC, "plan": "yearly"})

        client = _client(handler)
        subscription = await client.change_subscription_plan("u1", SubscriptionPlan.YEARLY)

        assert seen == {
            "method": "PUT",
            "path": "/subscriptions/user/u1/plan",
            "body": {"plan": "yearly"},
        }
        assert subscription.plan == SubscriptionPlan.YEARLY

    async def test_payments_list(self):
        documents = [
            {
                "_id": "p1",
                "userId": "u1",
                "subscriptionId": "65a1",
                "stripePaymentIntentId": "pi_1",
                "amount": 1999,
                "status": "succeeded",
                "paymentMethod": "card",
                "currency": "eur",
            }
        ]
        client = _client(lambda request: httpx.Response(200, json=documents))

        payments = await client.find_payments_by_user_id("u1")

        assert len(payments) == 1
        assert payments[0].status == PaymentStatus.SUCCEEDED
        assert payments[0].amount == 1999


class TestErrorTranslation:
    @pytest.mark.parametrize(
        "status_code, error",
        [
            (400, BadRequestError),
            (401, UnauthorizedError),
            (403, UnauthorizedError),
            (404, NotFoundError),
            (409, ConflictError),
            (422, BadRequestError),
            (500, UpstreamUnavailableError),
            (503, UpstreamUnavailableError),
        ],
    )
    async def test_status_codes(self, status_code, error):
        client = _client(
            lambda request: httpx.Response(status_code, json={"message": "nope"})
        )

        with pytest.raises(error) as excinfo:
            await client.update_subscription_by_user_id("u1", {"cancel_at_period_end": True})
        assert "nope" in str(excinfo.value)

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler)

        with pytest.raises(UpstreamUnavailableError, match="not responding"):
            await client.find_subscription_by_user_id("u1")

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)

        with pytest.raises(UpstreamUnavailableError):
            await client.create_payment(
                {
                    "user_id": "u1",
                    "subscription_id": "s1",
                    "stripe_payment_intent_id": "pi_1",
                    "amount": 1,
                }
            )


class TestCodec:
    def test_parse_datetime(self):
        assert parse_datetime(None) is None
        assert parse_datetime("2025-01-15T12:00:00Z") == datetime(
            2025, 1, 15, 12, 0, tzinfo=timezone.utc
        )
        assert parse_datetime("2025-01-15T12:00:00").tzinfo is timezone.utc

    def test_encode_rejects_unknown_field(self):
        with pytest.raises(ValueError):
            encode_fields({"nonsense": 1}, SUBSCRIPTION_FIELDS)
