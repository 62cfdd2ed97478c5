"""Domain exceptions raised by the loyalty and order repositories."""

from __future__ import annotations

from levelup_api.schemas.common import OrderStatus


class LoyaltyError(RuntimeError):
    """Base exception for points and order lifecycle failures."""


class InsufficientPointsError(LoyaltyError):
    def __init__(self, available: int, required: int) -> None:
        super().__init__(f"Puntos insuficientes: disponibles {available}, requeridos {required}")
        self.available = available
        self.required = required


class OutOfStockError(LoyaltyError):
    def __init__(self, product_id: str, available: int, requested: int) -> None:
        super().__init__(f"Stock insuficiente para producto {product_id}: disponible {available}, solicitado {requested}")
        self.product_id = product_id
        self.available = available
        self.requested = requested


class NotRedeemableError(LoyaltyError):
    """Raised when a product is not flagged for point redemption."""


class ProductConfigurationError(LoyaltyError):
    """Raised when a redeemable product has no points cost configured."""


class InvalidTransitionError(LoyaltyError):
    def __init__(self, current_status: OrderStatus, requested_status: OrderStatus) -> None:
        super().__init__(
            f"Cannot transition order from {current_status.value} to {requested_status.value}"
        )
        self.current_status = current_status
        self.requested_status = requested_status


class EntityNotFoundError(LoyaltyError):
    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class PersistenceUnavailableError(LoyaltyError):
    """Raised when a write could not be stored by any backend."""
