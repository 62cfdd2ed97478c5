"""Pure functions governing how points are earned, required and compared."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from levelup_api.errors import NotRedeemableError, ProductConfigurationError
from levelup_api.schemas.product import Product
from levelup_api.schemas.user import LoyaltyTier, User, UserType


# Lifetime points needed for each tier, highest first
TIER_THRESHOLDS: tuple[tuple[LoyaltyTier, int], ...] = (
    (LoyaltyTier.DIAMOND, 2000),
    (LoyaltyTier.GOLD, 1000),
    (LoyaltyTier.SILVER, 500),
    (LoyaltyTier.BRONZE, 0),
)
_TIER_RANK = {tier: rank for rank, (tier, _) in enumerate(reversed(TIER_THRESHOLDS))}


class EarnPolicy(Protocol):
    def __call__(self, money_paid: int) -> int:
        ...


@dataclass(frozen=True)
class FlatRateEarnPolicy:
    """One point per ``amount_per_point`` money units paid."""

    amount_per_point: int = 100

    def __call__(self, money_paid: int) -> int:
        if money_paid <= 0:
            return 0
        return money_paid // self.amount_per_point


def points_earned(money_subtotal: int, policy: EarnPolicy | None = None) -> int:
    """Points credited for the money-paid portion of an order."""

    return (policy or FlatRateEarnPolicy())(money_subtotal)


def points_required(product: Product) -> int:
    if not product.canjeable:
        raise NotRedeemableError(f"Producto {product.codigo} no es canjeable")
    if product.puntos is None or product.puntos <= 0:
        raise ProductConfigurationError(f"Producto canjeable {product.codigo} no tiene costo en puntos")
    return product.puntos


def can_afford(user: User, cost: int) -> bool:
    return cost >= 0 and user.puntos >= cost


def tier_for_points(lifetime_points: int) -> LoyaltyTier:
    for tier, threshold in TIER_THRESHOLDS:
        if lifetime_points >= threshold:
            return tier
    return LoyaltyTier.BRONZE


def promote_tier(current: LoyaltyTier, lifetime_points: int) -> LoyaltyTier:
    """Tier earned by ``lifetime_points``, never lower than ``current``."""

    candidate = tier_for_points(lifetime_points)
    return candidate if _TIER_RANK[candidate] > _TIER_RANK[current] else current


def is_institutional(user: User, email_domain: str) -> bool:
    if user.tipo == UserType.INSTITUTIONAL:
        return True
    return bool(email_domain) and user.correo.lower().endswith(f"@{email_domain.lower()}")


def institutional_discount(subtotal: int, rate: Decimal) -> int:
    return int((Decimal(subtotal) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
