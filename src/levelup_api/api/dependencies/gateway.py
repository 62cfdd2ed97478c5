from fastapi import Depends, Request

from levelup_api.services.loyalty import PointsAccountService
from levelup_api.services.orders import PurchaseOrderRepository, RedemptionOrderRepository
from levelup_api.storage import PersistenceGateway


def get_gateway(request: Request) -> PersistenceGateway:
    return request.app.state.gateway


def get_redemption_repository(
    gateway: PersistenceGateway = Depends(get_gateway),
) -> RedemptionOrderRepository:
    return RedemptionOrderRepository(gateway)


def get_purchase_repository(
    gateway: PersistenceGateway = Depends(get_gateway),
) -> PurchaseOrderRepository:
    return PurchaseOrderRepository(gateway)


def get_points_service(gateway: PersistenceGateway = Depends(get_gateway)) -> PointsAccountService:
    return PointsAccountService(gateway)
