"""Subscription lifecycle API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ....core.dependencies import get_subscription_service
from ....domain.errors import PaymentServiceError
from ....services.subscription_service import SubscriptionService
from ..schemas.subscription_schemas import (
    ActivateSubscriptionRequest,
    ActiveResponse,
    CancelSubscriptionRequest,
    ChangePlanRequest,
    CreateSubscriptionRequest,
    CreateSubscriptionWithCardRequest,
    SubscriptionResponse,
    SubscriptionStatusResponse,
    UpdateSubscriptionRequest,
)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    payload: CreateSubscriptionRequest,
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Create a subscription with a 30-day trial."""
    try:
        subscription = await service.create(
            payload.user_id, payload.email, payload.name, payload.plan
        )
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SubscriptionResponse.from_domain(subscription)


@router.post(
    "/with-card", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED
)
async def create_subscription_with_card(
    payload: CreateSubscriptionWithCardRequest,
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Create a trial subscription and validate the card without charging it."""
    try:
        subscription = await service.create_subscription_with_card(
            payload.user_id,
            payload.email,
            payload.name,
            payload.plan,
            payload.payment_method_id,
        )
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SubscriptionResponse.from_domain(subscription)


@router.get("/user/{user_id}", response_model=SubscriptionResponse)
async def get_user_subscription(
    user_id: str,
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    try:
        subscription = await service.find_by_user_id(user_id)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    if not subscription:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return SubscriptionResponse.from_domain(subscription)


@router.get("/user/{user_id}/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    user_id: str,
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionStatusResponse:
    try:
        summary = await service.get_status(user_id)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SubscriptionStatusResponse.from_summary(summary)


@router.get("/user/{user_id}/active", response_model=ActiveResponse)
async def is_subscription_active(
    user_id: str,
    service: SubscriptionService = Depends(get_subscription_service),
) -> ActiveResponse:
    try:
        active = await service.is_active(user_id)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ActiveResponse(is_active=active)


@router.post("/user/{user_id}/activate", response_model=SubscriptionResponse)
async def activate_subscription(
    user_id: str,
    payload: ActivateSubscriptionRequest,
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Convert the trial into a paid Stripe subscription."""
    try:
        subscription = await service.start_paid_subscription(user_id, payload.payment_method_id)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SubscriptionResponse.from_domain(subscription)


@router.post("/user/{user_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    user_id: str,
    payload: Optional[CancelSubscriptionRequest] = None,
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Cancel at period end (default) or immediately."""
    cancel_at_period_end = payload.cancel_at_period_end if payload else True
    try:
        subscription = await service.cancel(user_id, cancel_at_period_end)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SubscriptionResponse.from_domain(subscription)


@router.patch("/user/{user_id}/plan", response_model=SubscriptionResponse)
async def change_subscription_plan(
    user_id: str,
    payload: ChangePlanRequest,
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    try:
        subscription = await service.change_plan(user_id, payload.plan)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SubscriptionResponse.from_domain(subscription)


@router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription(
    subscription_id: str,
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    try:
        subscription = await service.find_by_id(subscription_id)
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SubscriptionResponse.from_domain(subscription)


@router.patch("/{subscription_id}", response_model=SubscriptionResponse)
async def update_subscription(
    subscription_id: str,
    payload: UpdateSubscriptionRequest,
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    try:
        subscription = await service.update(
            subscription_id, payload.model_dump(exclude_unset=True, exclude_none=True)
        )
    except PaymentServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return SubscriptionResponse.from_domain(subscription)
