import re
from datetime import datetime, timezone

import pytest

from levelup_api.errors import PersistenceUnavailableError
from levelup_api.services.sequence import SequenceGenerator


@pytest.mark.asyncio
async def test_identifiers_increase_and_are_zero_padded(gateway):
    sequence = SequenceGenerator(
        gateway,
        "redemption_order_counter",
        clock=lambda: datetime(2026, 3, 1, tzinfo=timezone.utc),
    )

    first = await sequence.next("CANJE")
    second = await sequence.next("CANJE")

    assert first == "CANJE-001-2026"
    assert second == "CANJE-002-2026"
    assert await gateway.get_scalar("redemption_order_counter") == 2


@pytest.mark.asyncio
async def test_counter_does_not_reset_at_year_rollover(gateway):
    now = [datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc)]
    sequence = SequenceGenerator(gateway, "levelup_order_counter", clock=lambda: now[0])

    assert await sequence.next("ORD") == "ORD-001-2026"
    now[0] = datetime(2027, 1, 1, 0, 1, tzinfo=timezone.utc)
    assert await sequence.next("ORD") == "ORD-002-2027"


@pytest.mark.asyncio
async def test_counters_are_independent_per_namespace(gateway):
    redemptions = SequenceGenerator(gateway, "redemption_order_counter")
    purchases = SequenceGenerator(gateway, "levelup_order_counter")

    await redemptions.next("CANJE")
    await redemptions.next("CANJE")

    assert re.fullmatch(r"ORD-001-\d{4}", await purchases.next("ORD"))


@pytest.mark.asyncio
async def test_counter_past_three_digits_keeps_growing(gateway):
    await gateway.set_scalar("redemption_order_counter", 999)
    sequence = SequenceGenerator(gateway, "redemption_order_counter")

    assert re.fullmatch(r"CANJE-1000-\d{4}", await sequence.next("CANJE"))


@pytest.mark.asyncio
async def test_unreadable_counter_falls_back_to_timestamp(gateway):
    await gateway.set_scalar("redemption_order_counter", "not-a-number")
    sequence = SequenceGenerator(gateway, "redemption_order_counter")

    identifier = await sequence.next("CANJE")

    assert re.fullmatch(r"CANJE-\d+", identifier)


@pytest.mark.asyncio
async def test_unavailable_cache_falls_back_to_timestamp(gateway, monkeypatch):
    async def unavailable(key):
        raise PersistenceUnavailableError("cache offline")

    monkeypatch.setattr(gateway, "get_scalar", unavailable)
    sequence = SequenceGenerator(gateway, "redemption_order_counter")

    first = await sequence.next("CANJE")

    assert re.fullmatch(r"CANJE-\d+", first)
