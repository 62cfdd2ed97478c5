"""Points balance, ledger history and manual adjustments."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from levelup_api.api.dependencies.gateway import get_points_service
from levelup_api.api.errors import to_http_exception
from levelup_api.errors import LoyaltyError
from levelup_api.schemas.ledger import PointsSummary
from levelup_api.services.loyalty import PointsAccountService


router = APIRouter(prefix="/users", tags=["points"])


class PointsAdjustmentRequest(BaseModel):
    puntos: int = Field(..., description="Signed amount to add to the balance")
    descripcion: str | None = Field(None, description="Reason shown in the member history")

    @field_validator("puntos")
    @classmethod
    def _non_zero(cls, value: int) -> int:
        if value == 0:
            raise ValueError("puntos must be non-zero")
        return value


@router.get("/{user_id}/points", response_model=PointsSummary)
async def get_points_summary(
    user_id: str,
    service: PointsAccountService = Depends(get_points_service),
) -> PointsSummary:
    try:
        return await service.summary(user_id)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{user_id}/points/adjustments", response_model=PointsSummary)
async def adjust_points(
    user_id: str,
    request: PointsAdjustmentRequest,
    service: PointsAccountService = Depends(get_points_service),
) -> PointsSummary:
    """Admin correction of a member balance."""

    try:
        return await service.adjust(user_id, request.puntos, descripcion=request.descripcion)
    except LoyaltyError as exc:
        raise to_http_exception(exc) from exc
