"""Status transition tables for redemption and purchase orders."""

from __future__ import annotations

from levelup_api.errors import InvalidTransitionError
from levelup_api.schemas.common import OrderStatus


class OrderStateMachine:
    """Validates status changes against a fixed transition table."""

    def __init__(
        self,
        transitions: dict[OrderStatus, set[OrderStatus]],
        *,
        restitution_statuses: set[OrderStatus],
    ) -> None:
        self._transitions = transitions
        self.restitution_statuses = frozenset(restitution_statuses)

    def allowed(self, current: OrderStatus) -> set[OrderStatus]:
        return set(self._transitions.get(current, set()))

    def ensure_allowed(self, current: OrderStatus, target: OrderStatus) -> None:
        if target not in self._transitions.get(current, set()):
            raise InvalidTransitionError(current, target)

    def is_terminal(self, status: OrderStatus) -> bool:
        return not self._transitions.get(status)

    def requires_restitution(self, target: OrderStatus) -> bool:
        return target in self.restitution_statuses


REDEMPTION_STATE_MACHINE = OrderStateMachine(
    {
        OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
        OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
        OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
        OrderStatus.DELIVERED: set(),
        OrderStatus.CANCELLED: set(),
    },
    restitution_statuses={OrderStatus.CANCELLED},
)

PURCHASE_STATE_MACHINE = OrderStateMachine(
    {
        OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REJECTED},
        OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REJECTED},
        OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
        OrderStatus.DELIVERED: set(),
        OrderStatus.CANCELLED: set(),
        OrderStatus.REJECTED: set(),
    },
    restitution_statuses={OrderStatus.CANCELLED, OrderStatus.REJECTED},
)
