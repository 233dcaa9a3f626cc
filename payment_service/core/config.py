import logging
import os
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_PLACEHOLDER_STRIPE_KEY = "sk_test_placeholder"


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.service_name = os.getenv("SERVICE_NAME", "payment-service")
        self.environment = os.getenv("ENVIRONMENT", "development")
        self.api_prefix = os.getenv("API_PREFIX", "/api/v1").rstrip("/")

        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY") or _PLACEHOLDER_STRIPE_KEY
        self.stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
        self.stripe_price_monthly = os.getenv("STRIPE_PRICE_MONTHLY")
        self.stripe_price_yearly = os.getenv("STRIPE_PRICE_YEARLY")

        self.db_service_url = os.getenv("DB_SERVICE_URL", "http://localhost:3001")
        self.db_service_api_key = os.getenv("DB_SERVICE_API_KEY", "default-api-key")
        self.db_service_timeout = self._get_int("DB_SERVICE_TIMEOUT", default=30)

        self.auth_service_url = os.getenv("AUTH_SERVICE_URL", "http://localhost:3002/api/v1")
        self.auth_service_api_key = os.getenv("SERVICE_API_KEY", "default-key")
        self.auth_service_timeout = self._get_int("AUTH_SERVICE_TIMEOUT", default=10)

        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]

    @property
    def stripe_configured(self) -> bool:
        return self.stripe_secret_key != _PLACEHOLDER_STRIPE_KEY

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc
