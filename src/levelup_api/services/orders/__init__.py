"""Order repositories and status state machines."""

from .purchases import PurchaseOrderRepository  # noqa: F401
from .redemptions import RedemptionOrderRepository  # noqa: F401
from .state_machine import (  # noqa: F401
    PURCHASE_STATE_MACHINE,
    REDEMPTION_STATE_MACHINE,
    OrderStateMachine,
)
