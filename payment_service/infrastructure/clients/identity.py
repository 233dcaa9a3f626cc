"""Best-effort client pushing subscription summaries to the auth service."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from ...domain.models import SubscriptionPlan, SubscriptionStatus

logger = logging.getLogger(__name__)


class IdentityServiceClient:
    """Updates the subscription fields the auth service keeps on each user.

    Failures never propagate: a subscription change that already succeeded
    against Stripe and the DB service must not be undone because the auth
    service is unreachable.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        service_name: str = "payment-service",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "x-service-key": service_key,
                "x-service-name": service_name,
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def update_user_subscription(
        self,
        user_id: str,
        plan: Optional[SubscriptionPlan] = None,
        status: Optional[SubscriptionStatus] = None,
        trial_end: Optional[datetime] = None,
    ) -> None:
        payload: Dict[str, Any] = {}
        if plan is not None:
            payload["plan"] = plan.value
        if status is not None:
            payload["status"] = status.value
        if trial_end is not None:
            payload["trialEnd"] = trial_end.isoformat()

        try:
            response = await self._client.patch(f"/users/{user_id}/subscription", json=payload)
        except Exception as exc:
            logger.error(
                "Error calling auth service to update user %s subscription: %s", user_id, exc
            )
            return

        if response.is_error:
            logger.error(
                "Failed to update user %s subscription via auth service: %s %s",
                user_id,
                response.status_code,
                _error_detail(response),
            )
            return

        logger.info("Updated user %s subscription via auth service", user_id)


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase
