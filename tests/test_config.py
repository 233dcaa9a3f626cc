import pytest

from payment_service.core.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in (
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "DB_SERVICE_TIMEOUT",
        "API_PREFIX",
        "CORS_ALLOW_ORIGINS",
    ):
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    settings = Settings()

    assert settings.api_prefix == "/api/v1"
    assert settings.db_service_timeout == 30
    assert settings.auth_service_timeout == 10
    assert settings.cors_allow_origins == ["*"]
    assert settings.stripe_configured is False
    assert settings.stripe_webhook_secret is None


def test_overrides(monkeypatch):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_live_abc")
    monkeypatch.setenv("API_PREFIX", "/payments/")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("DB_SERVICE_TIMEOUT", "5")

    settings = Settings()

    assert settings.stripe_configured is True
    assert settings.api_prefix == "/payments"
    assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]
    assert settings.db_service_timeout == 5


def test_invalid_integer(monkeypatch):
    monkeypatch.setenv("DB_SERVICE_TIMEOUT", "soon")

    with pytest.raises(RuntimeError):
        Settings()
