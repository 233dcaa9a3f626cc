"""Typed errors raised by the payment service core.

Each error carries the HTTP status the API layer answers with.
"""


class PaymentServiceError(Exception):
    """Base exception for all payment service errors."""

    status_code = 500


class NotFoundError(PaymentServiceError):
    """A required subscription or payment record does not exist."""

    status_code = 404


class BadRequestError(PaymentServiceError):
    """The requested transition is invalid for the current state."""

    status_code = 400


class ConflictError(BadRequestError):
    """The record the caller tries to create already exists."""


class WebhookSignatureError(BadRequestError):
    """A webhook payload is unsigned or its signature does not match."""


class UnauthorizedError(PaymentServiceError):
    """A collaborator rejected this service's credentials."""

    status_code = 401


class UpstreamUnavailableError(PaymentServiceError):
    """Stripe or a sibling service failed for technical reasons."""

    status_code = 503


class ConfigurationError(PaymentServiceError):
    """The service is missing configuration needed for the operation."""

    status_code = 500
