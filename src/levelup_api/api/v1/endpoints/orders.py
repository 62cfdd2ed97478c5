"""Purchase order endpoints for checkout, order history and the admin panel."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError

from levelup_api.api.dependencies.gateway import get_purchase_repository
from levelup_api.api.errors import to_http_exception
from levelup_api.errors import LoyaltyError
from levelup_api.schemas.order import OrderStats, PurchaseOrder, PurchaseOrderCreate
from levelup_api.services.orders import PurchaseOrderRepository

from .redemptions import StatusTransitionRequest


router = APIRouter(tags=["orders"])


@router.post("/orders", response_model=PurchaseOrder, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: PurchaseOrderCreate,
    repository: PurchaseOrderRepository = Depends(get_purchase_repository),
) -> PurchaseOrder:
    try:
        return await repository.create(request)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc


@router.get("/orders", response_model=list[PurchaseOrder])
async def list_orders(
    repository: PurchaseOrderRepository = Depends(get_purchase_repository),
) -> list[PurchaseOrder]:
    return await repository.find_all()


@router.get("/orders/stats", response_model=OrderStats)
async def order_stats(
    repository: PurchaseOrderRepository = Depends(get_purchase_repository),
) -> OrderStats:
    return await repository.stats()


@router.get("/orders/recent", response_model=list[PurchaseOrder])
async def recent_orders(
    limit: int = Query(5, ge=1, le=100),
    repository: PurchaseOrderRepository = Depends(get_purchase_repository),
) -> list[PurchaseOrder]:
    return await repository.recent(limit)


@router.get("/orders/{order_id}", response_model=PurchaseOrder)
async def get_order(
    order_id: str,
    repository: PurchaseOrderRepository = Depends(get_purchase_repository),
) -> PurchaseOrder:
    try:
        return await repository.get(order_id)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc


@router.get("/users/{user_id}/orders", response_model=list[PurchaseOrder])
async def list_user_orders(
    user_id: str,
    repository: PurchaseOrderRepository = Depends(get_purchase_repository),
) -> list[PurchaseOrder]:
    return await repository.find_by_user(user_id)


@router.patch("/orders/{order_id}", response_model=PurchaseOrder)
async def update_order(
    order_id: str,
    partial: dict[str, Any] = Body(...),
    repository: PurchaseOrderRepository = Depends(get_purchase_repository),
) -> PurchaseOrder:
    try:
        return await repository.update(order_id, partial)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.post("/orders/{order_id}/transition", response_model=PurchaseOrder)
async def transition_order(
    order_id: str,
    request: StatusTransitionRequest,
    repository: PurchaseOrderRepository = Depends(get_purchase_repository),
) -> PurchaseOrder:
    try:
        return await repository.transition(order_id, request.estado)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc


@router.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    order_id: str,
    repository: PurchaseOrderRepository = Depends(get_purchase_repository),
) -> Response:
    try:
        await repository.delete(order_id)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
