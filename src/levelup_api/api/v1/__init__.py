from fastapi import APIRouter

from .endpoints import events, health, orders, points, redemptions

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(redemptions.router)
router.include_router(orders.router)
router.include_router(points.router)
router.include_router(events.router)
