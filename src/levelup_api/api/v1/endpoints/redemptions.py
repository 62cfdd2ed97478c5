"""Redemption order endpoints used by the rewards store and admin panel."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Response, status
from pydantic import BaseModel, ValidationError

from levelup_api.api.dependencies.gateway import get_redemption_repository
from levelup_api.api.errors import to_http_exception
from levelup_api.errors import LoyaltyError
from levelup_api.schemas.common import OrderStatus
from levelup_api.schemas.redemption import RedemptionOrder, RedemptionOrderCreate, RedemptionReceipt
from levelup_api.services.orders import RedemptionOrderRepository


router = APIRouter(tags=["redemptions"])


class StatusTransitionRequest(BaseModel):
    estado: OrderStatus


@router.post("/redemptions", response_model=RedemptionOrder, status_code=status.HTTP_201_CREATED)
async def create_redemption(
    request: RedemptionOrderCreate,
    repository: RedemptionOrderRepository = Depends(get_redemption_repository),
) -> RedemptionOrder:
    """Redeem a product with points; the debit is stored with the order."""

    try:
        return await repository.create(request)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc


@router.get("/redemptions/{order_id}", response_model=RedemptionOrder)
async def get_redemption(
    order_id: str,
    repository: RedemptionOrderRepository = Depends(get_redemption_repository),
) -> RedemptionOrder:
    try:
        return await repository.get(order_id)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc


@router.get("/users/{user_id}/redemptions", response_model=list[RedemptionOrder])
async def list_user_redemptions(
    user_id: str,
    repository: RedemptionOrderRepository = Depends(get_redemption_repository),
) -> list[RedemptionOrder]:
    return await repository.find_by_user(user_id)


@router.patch("/redemptions/{order_id}", response_model=RedemptionOrder)
async def update_redemption(
    order_id: str,
    partial: dict[str, Any] = Body(...),
    repository: RedemptionOrderRepository = Depends(get_redemption_repository),
) -> RedemptionOrder:
    try:
        return await repository.update(order_id, partial)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.post("/redemptions/{order_id}/transition", response_model=RedemptionOrder)
async def transition_redemption(
    order_id: str,
    request: StatusTransitionRequest,
    repository: RedemptionOrderRepository = Depends(get_redemption_repository),
) -> RedemptionOrder:
    try:
        return await repository.transition(order_id, request.estado)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/redemptions/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_redemption(
    order_id: str,
    repository: RedemptionOrderRepository = Depends(get_redemption_repository),
) -> Response:
    try:
        await repository.delete(order_id)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/redemptions/{order_id}/receipt", response_model=RedemptionReceipt)
async def get_redemption_receipt(
    order_id: str,
    repository: RedemptionOrderRepository = Depends(get_redemption_repository),
) -> RedemptionReceipt:
    try:
        return await repository.receipt(order_id)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc
