from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..domain.models import SubscriptionPlan
from ..infrastructure.clients.identity import IdentityServiceClient
from ..infrastructure.clients.remote_state import RemoteStateClient
from ..presentation.api.routers import payments as payments_router
from ..presentation.api.routers import subscriptions as subscriptions_router
from ..presentation.api.routers import webhooks as webhooks_router
from ..services.payment_service import PaymentService
from ..services.stripe_service import StripeService
from ..services.subscription_service import SubscriptionService
from ..services.webhook_service import WebhookService
from .config import Settings
from .container import ApplicationContainer
from .logging import configure_logging

logger = logging.getLogger(__name__)


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()

    app = FastAPI(
        title="Payment Service",
        description="Subscription and payment orchestration on top of Stripe",
        version=__version__,
        lifespan=_create_lifespan(settings),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(subscriptions_router.router, prefix=settings.api_prefix)
    app.include_router(webhooks_router.router, prefix=settings.api_prefix)
    app.include_router(payments_router.router, prefix=settings.api_prefix)

    @app.get(f"{settings.api_prefix}/health", tags=["health"])
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": settings.service_name,
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get(f"{settings.api_prefix}/info", tags=["health"])
    async def info() -> Dict[str, Any]:
        return {
            "name": settings.service_name,
            "description": "Subscription and payment orchestration on top of Stripe",
            "version": __version__,
            "environment": settings.environment,
            "stripeConfigured": settings.stripe_configured,
            "features": [
                "30-day trial subscriptions",
                "Card validation without charge",
                "Monthly and yearly plans",
                "Stripe webhook reconciliation",
                "Refunds",
            ],
        }

    return app


def build_container(settings: Settings) -> ApplicationContainer:
    remote_state = RemoteStateClient(
        settings.db_service_url,
        settings.db_service_api_key,
        service_name=settings.service_name,
        timeout=settings.db_service_timeout,
    )
    identity_client = IdentityServiceClient(
        settings.auth_service_url,
        settings.auth_service_api_key,
        service_name=settings.service_name,
        timeout=settings.auth_service_timeout,
    )
    stripe_service = StripeService(
        settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        price_ids={
            SubscriptionPlan.MONTHLY: settings.stripe_price_monthly,
            SubscriptionPlan.YEARLY: settings.stripe_price_yearly,
        },
    )

    return ApplicationContainer(
        settings=settings,
        remote_state=remote_state,
        identity_client=identity_client,
        stripe_service=stripe_service,
        subscription_service=SubscriptionService(remote_state, stripe_service, identity_client),
        webhook_service=WebhookService(remote_state, stripe_service, identity_client),
        payment_service=PaymentService(remote_state, stripe_service),
    )


def _create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        if not settings.stripe_configured:
            logger.warning("STRIPE_SECRET_KEY not configured, using placeholder key")
        if not settings.stripe_webhook_secret:
            logger.warning("STRIPE_WEBHOOK_SECRET not configured, webhooks will be rejected")

        container = build_container(settings)
        app.state.container = container  # type: ignore[attr-defined]
        logger.info("%s started (%s)", settings.service_name, settings.environment)

        try:
            yield
        finally:
            await container.remote_state.aclose()
            await container.identity_client.aclose()

    return lifespan
