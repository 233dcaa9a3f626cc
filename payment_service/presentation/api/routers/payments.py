"""Payment history and refund endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from ....core.dependencies import get_payment_service
from ....domain.errors import PaymentServiceError
from ....services.payment_service import PaymentService
from ..schemas.payment_schemas import PaymentResponse, RefundRequest

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get("/user/{user_id}", response_model=List[PaymentResponse])
async def list_user_payments(
    user_id: str,
    service: PaymentService = Depends(get_payment_service),
) -> List[PaymentResponse]:
    try:
        payments = await service.list_by_user(user_id)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return [PaymentResponse.from_domain(payment) for payment in payments]


@router.get("/subscription/{subscription_id}", response_model=List[PaymentResponse])
async def list_subscription_payments(
    subscription_id: str,
    service: PaymentService = Depends(get_payment_service),
) -> List[PaymentResponse]:
    try:
        payments = await service.list_by_subscription(subscription_id)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return [PaymentResponse.from_domain(payment) for payment in payments]


@router.get("/intent/{payment_intent_id}", response_model=PaymentResponse)
async def get_payment(
    payment_intent_id: str,
    service: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    try:
        payment = await service.get_by_payment_intent(payment_intent_id)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return PaymentResponse.from_domain(payment)


@router.post("/intent/{payment_intent_id}/refund", response_model=PaymentResponse)
async def refund_payment(
    payment_intent_id: str,
    payload: Optional[RefundRequest] = None,
    service: PaymentService = Depends(get_payment_service),
) -> PaymentResponse:
    """Refund a succeeded payment; the full remaining amount when no amount is given."""
    try:
        payment = await service.refund(payment_intent_id, payload.amount if payload else None)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return PaymentResponse.from_domain(payment)
