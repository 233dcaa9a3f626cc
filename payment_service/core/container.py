from dataclasses import dataclass

from ..infrastructure.clients.identity import IdentityServiceClient
from ..infrastructure.clients.remote_state import RemoteStateClient
from ..services.payment_service import PaymentService
from ..services.stripe_service import StripeService
from ..services.subscription_service import SubscriptionService
from ..services.webhook_service import WebhookService
from .config import Settings


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    remote_state: RemoteStateClient
    identity_client: IdentityServiceClient
    stripe_service: StripeService
    subscription_service: SubscriptionService
    webhook_service: WebhookService
    payment_service: PaymentService
