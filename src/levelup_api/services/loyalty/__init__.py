"""Points ledger and pure loyalty rules."""

from .ledger import PointsAccountService, PointsLedger  # noqa: F401
from .rules import (  # noqa: F401
    EarnPolicy,
    FlatRateEarnPolicy,
    can_afford,
    institutional_discount,
    is_institutional,
    points_earned,
    points_required,
    promote_tier,
    tier_for_points,
)
