"""Collections exchanged with the remote service and their local cache keys."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Collection:
    name: str
    cache_key: str


EVENTS = Collection("events", "levelup_events")
REDEMPTIONS = Collection("redemptions", "redemption_orders")
ORDERS = Collection("orders", "levelup_orders")
PRODUCTS = Collection("products", "levelup_products")
USERS = Collection("users", "levelup_users")
POINTS_LEDGER = Collection("points-ledger", "levelup_points_ledger")

REDEMPTION_ORDER_COUNTER = "redemption_order_counter"
PURCHASE_ORDER_COUNTER = "levelup_order_counter"

COLLECTIONS_BY_NAME = {
    collection.name: collection
    for collection in (EVENTS, REDEMPTIONS, ORDERS, PRODUCTS, USERS, POINTS_LEDGER)
}
