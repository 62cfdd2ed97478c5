from enum import Enum

from pydantic import Field

from levelup_api.schemas.common import WireModel


class LoyaltyTier(str, Enum):
    BRONZE = "bronce"
    SILVER = "plata"
    GOLD = "oro"
    DIAMOND = "diamante"


class UserType(str, Enum):
    INSTITUTIONAL = "duoc"
    NORMAL = "normal"


class User(WireModel):
    """Customer record. ``puntos`` and ``nivel`` are snapshots of the points ledger."""

    id: str
    nombre: str = ""
    correo: str = ""
    tipo: UserType = UserType.NORMAL
    puntos: int = Field(0, ge=0)
    nivel: LoyaltyTier = LoyaltyTier.BRONZE
    rol: str | None = None
