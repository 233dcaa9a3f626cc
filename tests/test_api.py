"""HTTP-level tests for the routers, run against in-memory collaborators."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from payment_service.core.app_factory import create_application
from payment_service.core.config import Settings
from payment_service.core.container import ApplicationContainer
from payment_service.domain.errors import WebhookSignatureError
from payment_service.domain.models import Payment, PaymentStatus

PREFIX = "/api/v1"


@pytest.fixture
def client(
    monkeypatch, state, stripe_service, subscription_service, webhook_service, payment_service
):
    monkeypatch.setenv("API_PREFIX", PREFIX)
    monkeypatch.setenv("SERVICE_NAME", "payment-service")
    settings = Settings()
    app = create_application(settings)
    # Lifespan is not entered, so the container below is the only one.
    app.state.container = ApplicationContainer(
        settings=settings,
        remote_state=state,
        identity_client=MagicMock(),
        stripe_service=stripe_service,
        subscription_service=subscription_service,
        webhook_service=webhook_service,
        payment_service=payment_service,
    )
    return TestClient(app)


def _create(client, user_id="u1", plan="monthly"):
    return client.post(
        f"{PREFIX}/subscriptions",
        json={"userId": user_id, "email": f"{user_id}@example.com", "name": "Ann", "plan": plan},
    )


class TestSubscriptionRoutes:
    def test_create_returns_camel_case(self, client):
        response = _create(client)

        assert response.status_code == 201
        body = response.json()
        assert body["userId"] == "u1"
        assert body["status"] == "trial"
        assert body["isTrialActive"] is True
        assert body["stripeCustomerId"] == "cus_123"

    def test_duplicate_create_is_400(self, client):
        _create(client)

        response = _create(client)

        assert response.status_code == 400
        assert response.json()["detail"] == "User already has an active subscription"

    def test_invalid_plan_is_rejected(self, client):
        response = _create(client, plan="weekly")

        assert response.status_code == 422

    def test_status_and_active(self, client):
        _create(client)

        status = client.get(f"{PREFIX}/subscriptions/user/u1/status").json()
        active = client.get(f"{PREFIX}/subscriptions/user/u1/active").json()

        assert status["hasSubscription"] is True
        assert status["trialActive"] is True
        assert status["daysRemaining"] == 30
        assert active == {"isActive": True}

    def test_unknown_user(self, client):
        assert client.get(f"{PREFIX}/subscriptions/user/ghost").status_code == 404
        assert client.get(f"{PREFIX}/subscriptions/user/ghost/active").json() == {
            "isActive": False
        }
        assert client.get(f"{PREFIX}/subscriptions/user/ghost/status").json()[
            "hasSubscription"
        ] is False

    def test_activate_then_reactivate(self, client):
        _create(client)

        first = client.post(
            f"{PREFIX}/subscriptions/user/u1/activate", json={"paymentMethodId": "pm_1"}
        )
        second = client.post(
            f"{PREFIX}/subscriptions/user/u1/activate", json={"paymentMethodId": "pm_1"}
        )

        assert first.status_code == 200
        assert first.json()["status"] == "active"
        assert second.status_code == 400

    def test_cancel_defaults_to_period_end(self, client):
        _create(client)

        response = client.post(f"{PREFIX}/subscriptions/user/u1/cancel")

        assert response.status_code == 200
        assert response.json()["cancelAtPeriodEnd"] is True
        assert response.json()["status"] == "trial"

    def test_cancel_immediately(self, client):
        _create(client)

        response = client.post(
            f"{PREFIX}/subscriptions/user/u1/cancel", json={"cancelAtPeriodEnd": False}
        )

        assert response.json()["status"] == "canceled"
        assert response.json()["canceledAt"] is not None

    def test_change_plan(self, client):
        _create(client)

        changed = client.patch(f"{PREFIX}/subscriptions/user/u1/plan", json={"plan": "yearly"})
        same = client.patch(f"{PREFIX}/subscriptions/user/u1/plan", json={"plan": "yearly"})

        assert changed.json()["plan"] == "yearly"
        assert same.status_code == 400

    def test_direct_by_id(self, client):
        created = _create(client).json()

        fetched = client.get(f"{PREFIX}/subscriptions/{created['id']}")
        patched = client.patch(
            f"{PREFIX}/subscriptions/{created['id']}", json={"cancelAtPeriodEnd": True}
        )

        assert fetched.json()["userId"] == "u1"
        assert patched.json()["cancelAtPeriodEnd"] is True
        assert client.get(f"{PREFIX}/subscriptions/missing").status_code == 404


class TestWebhookRoute:
    def test_missing_signature_is_400(self, client, state):
        response = client.post(f"{PREFIX}/webhooks/stripe", content=b"{}")

        assert response.status_code == 400
        assert state.calls == []

    def test_invalid_signature_is_400(self, client, stripe_service):
        stripe_service.construct_webhook_event.side_effect = WebhookSignatureError(
            "Invalid signature"
        )

        response = client.post(
            f"{PREFIX}/webhooks/stripe", content=b"{}", headers={"stripe-signature": "bad"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid signature"

    def test_received(self, client, stripe_service):
        stripe_service.construct_webhook_event.return_value = {
            "id": "evt_1",
            "type": "customer.created",
            "data": {"object": {}},
        }

        response = client.post(
            f"{PREFIX}/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"}
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        stripe_service.construct_webhook_event.assert_called_once_with(b"{}", "sig")


class TestPaymentRoutes:
    def test_list_and_refund(self, client, state, stripe_service):
        created = _create(client).json()
        payment = _make_payment(state, created["id"])

        listed = client.get(f"{PREFIX}/payments/user/u1").json()
        by_subscription = client.get(f"{PREFIX}/payments/subscription/{created['id']}").json()
        refunded = client.post(
            f"{PREFIX}/payments/intent/pi_1/refund", json={"amount": 500}
        ).json()

        assert [item["stripePaymentIntentId"] for item in listed] == ["pi_1"]
        assert len(by_subscription) == 1
        assert refunded["refundedAmount"] == 500
        assert refunded["status"] == "succeeded"
        assert payment.refunded_amount == 500

    def test_unknown_payment(self, client):
        assert client.get(f"{PREFIX}/payments/intent/pi_missing").status_code == 404
        assert client.post(f"{PREFIX}/payments/intent/pi_missing/refund").status_code == 404


class TestHealth:
    def test_health(self, client):
        body = client.get(f"{PREFIX}/health").json()

        assert body["status"] == "ok"
        assert body["service"] == "payment-service"

    def test_info(self, client):
        body = client.get(f"{PREFIX}/info").json()

        assert body["version"] == "1.0.0"
        assert body["features"]


def _make_payment(state, subscription_id):
    payment = Payment(
        user_id="u1",
        subscription_id=subscription_id,
        stripe_payment_intent_id="pi_1",
        amount=2000,
        status=PaymentStatus.SUCCEEDED,
        id="pay_1",
    )
    state.payments["pi_1"] = payment
    return payment
