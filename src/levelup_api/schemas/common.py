from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    """Statuses shared by purchase and redemption orders."""

    PENDING = "pendiente"
    CONFIRMED = "confirmado"
    PROCESSING = "procesando"
    SHIPPED = "enviado"
    DELIVERED = "entregado"
    CANCELLED = "cancelado"
    REJECTED = "rechazado"


class WireModel(BaseModel):
    """Entity stored as camelCase JSON in the remote service and local cache."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def wire_key(cls, name: str) -> str:
        """Translate a Python attribute name to its wire alias."""

        field = cls.model_fields.get(name)
        if field is not None and field.alias:
            return field.alias
        return name
