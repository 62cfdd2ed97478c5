from __future__ import annotations

import json

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from levelup_api.core.settings import DEFAULT_SEED_DIR, Settings
from levelup_api.errors import PersistenceUnavailableError
from levelup_api.models import RemoteSyncJournalEntry
from levelup_api.storage import (
    LocalCacheBackend,
    PersistenceGateway,
    RemoteServiceBackend,
    SeedBackend,
    StorageBackendError,
    WriteBatch,
    build_gateway,
)
from levelup_api.storage.collections import EVENTS, POINTS_LEDGER, PRODUCTS, REDEMPTIONS, USERS


class _FailingCache(LocalCacheBackend):
    async def write_many(self, batch: WriteBatch, *, remote_delivered: bool | None = None) -> None:
        raise StorageBackendError("disk full")


def _remote(handler, *, clock=None) -> RemoteServiceBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs = {"http_client": client, "api_token": "secret", "retry_after_seconds": 30}
    if clock is not None:
        kwargs["clock"] = clock
    return RemoteServiceBackend("https://levelup.test/api", **kwargs)


@pytest.mark.asyncio
async def test_remote_read_warms_local_cache(session_factory, tmp_path):
    seen_headers: list[str | None] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen_headers.append(request.headers.get("Authorization"))
        assert request.url.path == "/api/events"
        return httpx.Response(200, json=[{"id": "event_1", "activo": True}])

    cache = LocalCacheBackend(session_factory)
    gateway = PersistenceGateway(cache=cache, remote=_remote(handler), seed=SeedBackend(tmp_path))

    events = await gateway.read(EVENTS)

    assert events == [{"id": "event_1", "activo": True}]
    assert seen_headers == ["Bearer secret"]
    assert await cache.read(EVENTS) == [{"id": "event_1", "activo": True}]


@pytest.mark.asyncio
async def test_remote_failure_falls_back_to_cache_and_cools_down(session_factory, tmp_path):
    calls = 0
    now = [100.0]

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503, json={"detail": "down"})

    cache = LocalCacheBackend(session_factory)
    await cache.write_many(WriteBatch("prime").put(USERS, [{"id": "user-1"}]))
    remote = _remote(handler, clock=lambda: now[0])
    gateway = PersistenceGateway(cache=cache, remote=remote, seed=SeedBackend(tmp_path))

    assert await gateway.read(USERS) == [{"id": "user-1"}]
    assert calls == 1

    # Within the cool-down the remote is not contacted again
    assert await gateway.read(USERS) == [{"id": "user-1"}]
    assert calls == 1
    assert (await gateway.status())["remote"] == "unavailable"

    now[0] += 31
    assert await remote.probe() is True


@pytest.mark.asyncio
async def test_network_error_is_never_surfaced_on_read(session_factory, tmp_path):
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = PersistenceGateway(
        cache=LocalCacheBackend(session_factory),
        remote=_remote(handler),
        seed=SeedBackend(tmp_path),
    )

    assert await gateway.read(REDEMPTIONS) == []


@pytest.mark.asyncio
async def test_cold_cache_bootstraps_from_seed_once(session_factory, tmp_path):
    seed_events = [{"id": "event_001", "titulo": "Torneo", "activo": True}]
    (tmp_path / "levelup_events.json").write_text(json.dumps(seed_events), encoding="utf-8")
    cache = LocalCacheBackend(session_factory)
    gateway = PersistenceGateway(cache=cache, seed=SeedBackend(tmp_path))

    assert await gateway.read(EVENTS) == seed_events
    assert await cache.read(EVENTS) == seed_events

    (tmp_path / "levelup_events.json").write_text("[]", encoding="utf-8")
    assert await gateway.read(EVENTS) == seed_events


@pytest.mark.asyncio
async def test_unreadable_seed_returns_empty_list(session_factory, tmp_path):
    (tmp_path / "levelup_events.json").write_text("{not json", encoding="utf-8")
    gateway = PersistenceGateway(cache=LocalCacheBackend(session_factory), seed=SeedBackend(tmp_path))

    assert await gateway.read(EVENTS) == []


@pytest.mark.asyncio
async def test_write_goes_to_remote_and_local_cache(session_factory, tmp_path):
    received: dict[str, object] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PUT":
            received[request.url.path] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(200, json=[])

    cache = LocalCacheBackend(session_factory)
    gateway = PersistenceGateway(cache=cache, remote=_remote(handler), seed=SeedBackend(tmp_path))

    batch = (
        WriteBatch("two collections")
        .put(USERS, [{"id": "user-1", "puntos": 10}])
        .put(PRODUCTS, [{"codigo": "P1", "stock": 3}])
    )
    await gateway.commit(batch)

    assert received == {
        "/api/users": [{"id": "user-1", "puntos": 10}],
        "/api/products": [{"codigo": "P1", "stock": 3}],
    }
    assert await cache.read(USERS) == [{"id": "user-1", "puntos": 10}]
    assert await cache.read(PRODUCTS) == [{"codigo": "P1", "stock": 3}]


@pytest.mark.asyncio
async def test_write_survives_remote_failure(session_factory, tmp_path):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    cache = LocalCacheBackend(session_factory)
    gateway = PersistenceGateway(cache=cache, remote=_remote(handler), seed=SeedBackend(tmp_path))

    await gateway.write(USERS, [{"id": "user-1"}])

    assert await cache.read(USERS) == [{"id": "user-1"}]


@pytest.mark.asyncio
async def test_write_rejected_by_every_backend_raises(session_factory, tmp_path):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    gateway = PersistenceGateway(
        cache=_FailingCache(session_factory),
        remote=_remote(handler),
        seed=SeedBackend(tmp_path),
    )

    with pytest.raises(PersistenceUnavailableError):
        await gateway.write(USERS, [{"id": "user-1"}])


@pytest.mark.asyncio
async def test_local_write_failure_tolerated_after_remote_success(session_factory, tmp_path):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    gateway = PersistenceGateway(
        cache=_FailingCache(session_factory),
        remote=_remote(handler),
        seed=SeedBackend(tmp_path),
    )

    await gateway.write(USERS, [{"id": "user-1"}])


def _store_remote(store: dict[str, list], state: dict[str, bool], now: list[float]) -> RemoteServiceBackend:
    """Remote backed by ``store``; ``state`` switches outages on and off."""

    async def handler(request: httpx.Request) -> httpx.Response:
        name = request.url.path.rsplit("/", 1)[-1]
        if state.get("down"):
            return httpx.Response(503, json={"detail": "down"})
        if request.method == "PUT":
            if state.get("reject_writes"):
                return httpx.Response(500)
            store[name] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(200, json=store.get(name, []))

    return _remote(handler, clock=lambda: now[0])


async def _journal(session_factory) -> list[RemoteSyncJournalEntry]:
    async with session_factory() as session:
        return list((await session.execute(select(RemoteSyncJournalEntry))).scalars())


@pytest.mark.asyncio
async def test_failed_cache_commit_leaves_no_partial_batch(engine, tmp_path):
    failures = [1]

    class _FlakyCommitSession(AsyncSession):
        async def commit(self) -> None:
            if failures[0]:
                failures[0] -= 1
                raise OperationalError("COMMIT", {}, Exception("disk I/O error"))
            await super().commit()

    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=_FlakyCommitSession)
    cache = LocalCacheBackend(session_factory)
    gateway = PersistenceGateway(cache=cache, seed=SeedBackend(tmp_path))

    with pytest.raises(PersistenceUnavailableError):
        await gateway.commit(
            WriteBatch("redeem")
            .put(USERS, [{"id": "user-1", "puntos": 1}])
            .put(POINTS_LEDGER, [{"id": "ledger-1", "puntos": -1}])
        )

    assert await cache.read(USERS) is None
    assert await cache.read(POINTS_LEDGER) is None

    await gateway.write(USERS, [{"id": "user-1", "puntos": 2}])
    await gateway.write(USERS, [{"id": "user-1", "puntos": 3}])

    assert await gateway.recover() == 0
    assert await gateway.read(USERS) == [{"id": "user-1", "puntos": 3}]
    assert await cache.pending_collections() == []


@pytest.mark.asyncio
async def test_sync_journal_keeps_one_row_per_collection(session_factory, tmp_path):
    store: dict[str, list] = {}
    state = {"down": True}
    now = [100.0]
    cache = LocalCacheBackend(session_factory)
    gateway = PersistenceGateway(cache=cache, remote=_store_remote(store, state, now), seed=SeedBackend(tmp_path))

    for puntos in (10, 20, 30):
        await gateway.write(USERS, [{"id": "user-1", "puntos": puntos}])

    journal = await _journal(session_factory)
    assert [(entry.collection, entry.pending_changes) for entry in journal] == [("users", 3)]
    assert journal[0].last_description == "replace users"

    state["down"] = False
    now[0] += 31
    for _ in range(3):
        assert await gateway.read(USERS) == [{"id": "user-1", "puntos": 30}]

    assert store["users"] == [{"id": "user-1", "puntos": 30}]
    assert await _journal(session_factory) == []


@pytest.mark.asyncio
async def test_remote_read_never_overwrites_undelivered_local_changes(session_factory, tmp_path):
    store = {"users": [{"id": "user-1", "puntos": 0}]}
    state = {"down": True}
    now = [100.0]
    cache = LocalCacheBackend(session_factory)
    gateway = PersistenceGateway(cache=cache, remote=_store_remote(store, state, now), seed=SeedBackend(tmp_path))

    await gateway.write(USERS, [{"id": "user-1", "puntos": 50}])

    # Remote answers reads again but still rejects the pending delivery
    state.update(down=False, reject_writes=True)
    now[0] += 31
    assert await gateway.read(USERS) == [{"id": "user-1", "puntos": 50}]
    assert await cache.read(USERS) == [{"id": "user-1", "puntos": 50}]
    assert store["users"] == [{"id": "user-1", "puntos": 0}]
    assert await cache.pending_collections() == ["users"]

    state["reject_writes"] = False
    now[0] += 31
    assert await gateway.read(USERS) == [{"id": "user-1", "puntos": 50}]
    assert store["users"] == [{"id": "user-1", "puntos": 50}]
    assert await cache.pending_collections() == []


@pytest.mark.asyncio
async def test_recover_delivers_collections_left_pending(session_factory, tmp_path):
    store: dict[str, list] = {}
    now = [100.0]
    cache = LocalCacheBackend(session_factory)
    await cache.write_many(
        WriteBatch("offline redemption")
        .put(USERS, [{"id": "user-1", "puntos": 200}])
        .put(PRODUCTS, [{"codigo": "P1", "stock": 4}]),
        remote_delivered=False,
    )
    gateway = PersistenceGateway(cache=cache, remote=_store_remote(store, {}, now), seed=SeedBackend(tmp_path))

    assert await gateway.recover() == 2
    assert store == {
        "users": [{"id": "user-1", "puntos": 200}],
        "products": [{"codigo": "P1", "stock": 4}],
    }
    assert await gateway.recover() == 0


@pytest.mark.asyncio
async def test_delivered_write_clears_earlier_pending_state(session_factory, tmp_path):
    store: dict[str, list] = {}
    state = {"down": True}
    now = [100.0]
    cache = LocalCacheBackend(session_factory)
    gateway = PersistenceGateway(cache=cache, remote=_store_remote(store, state, now), seed=SeedBackend(tmp_path))

    await gateway.write(PRODUCTS, [{"codigo": "P1", "stock": 4}])
    state["down"] = False
    now[0] += 31
    await gateway.write(USERS, [{"id": "user-1", "puntos": 5}])

    assert store == {
        "products": [{"codigo": "P1", "stock": 4}],
        "users": [{"id": "user-1", "puntos": 5}],
    }
    assert await _journal(session_factory) == []


@pytest.mark.asyncio
async def test_status_reports_disabled_remote(gateway):
    assert await gateway.status() == {"remote": "disabled", "local_cache": "available"}


@pytest.mark.asyncio
async def test_scalar_values_round_trip_through_cache(gateway):
    assert await gateway.get_scalar("redemption_order_counter") is None

    await gateway.set_scalar("redemption_order_counter", 7)

    assert await gateway.get_scalar("redemption_order_counter") == 7


@pytest.mark.asyncio
async def test_build_gateway_enables_remote_only_when_configured(session_factory, tmp_path):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[])

    offline = build_gateway(Settings(remote_api_base_url=" ", seed_data_dir=str(tmp_path)), session_factory)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        online = build_gateway(
            Settings(remote_api_base_url="https://levelup.test/api", seed_data_dir=str(tmp_path)),
            session_factory,
            http_client=client,
        )

        assert (await online.status())["remote"] == "available"
        await online.aclose()
        assert client.is_closed is False

    assert (await offline.status())["remote"] == "disabled"


@pytest.mark.asyncio
async def test_packaged_seed_provides_events(session_factory):
    gateway = PersistenceGateway(cache=LocalCacheBackend(session_factory), seed=SeedBackend(DEFAULT_SEED_DIR))

    events = await gateway.read(EVENTS)

    assert events
    assert all({"id", "titulo", "activo"} <= event.keys() for event in events)
