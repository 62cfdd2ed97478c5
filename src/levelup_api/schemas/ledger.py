from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from levelup_api.schemas.common import WireModel, utcnow
from levelup_api.schemas.user import LoyaltyTier


class LedgerEntryType(str, Enum):
    EARN = "earn"
    SPEND = "spend"
    REFUND = "refund"
    REVERSAL = "reversal"
    ADJUSTMENT = "adjustment"


class OrderKind(str, Enum):
    REDEMPTION = "canje"
    PURCHASE = "compra"


class PointsLedgerEntry(WireModel):
    id: str
    user_id: str = Field(..., alias="userId")
    tipo: LedgerEntryType
    puntos: int
    order_id: str | None = Field(None, alias="orderId")
    order_kind: OrderKind | None = Field(None, alias="orderKind")
    descripcion: str | None = None
    fecha: datetime = Field(default_factory=utcnow)


class PointsSummary(BaseModel):
    userId: str
    puntos: int
    puntosHistoricos: int
    nivel: LoyaltyTier
    movimientos: list[PointsLedgerEntry]
