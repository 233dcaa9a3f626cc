"""Stripe webhook intake."""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from ....core.dependencies import get_webhook_service
from ....domain.errors import PaymentServiceError
from ....services.webhook_service import WebhookService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="stripe-signature"),
    service: WebhookService = Depends(get_webhook_service),
) -> Dict[str, bool]:
    """Verify and apply a Stripe event; any failure answers non-2xx so Stripe retries."""
    payload = await request.body()
    try:
        await service.process_event(payload, stripe_signature)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return {"received": True}
