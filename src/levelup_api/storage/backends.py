"""Interchangeable storage backends behind the persistence gateway."""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

import httpx
from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from levelup_api.models.cache import CacheEntry, RemoteSyncJournalEntry
from levelup_api.storage.batch import Entity, WriteBatch
from levelup_api.storage.collections import Collection


class StorageBackendError(RuntimeError):
    """Raised by a backend when it cannot serve a read or write."""


class StorageBackend(Protocol):
    name: str
    writable: bool

    async def probe(self) -> bool:
        """Return whether the backend should be tried right now."""

    async def read(self, collection: Collection) -> list[Entity] | None:
        """Return the stored entities, ``None`` when the backend holds nothing."""

    async def write_many(self, batch: WriteBatch) -> None:
        """Store every collection of the batch or raise ``StorageBackendError``."""


class RemoteServiceBackend:
    """REST collections on the LevelUp backend."""

    name = "remote"
    writable = True

    def __init__(
        self,
        base_url: str | None,
        *,
        api_token: str | None = None,
        timeout_seconds: float = 5.0,
        retry_after_seconds: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._base_url = base_url.rstrip("/") if base_url else None
        self._api_token = api_token
        self._timeout_seconds = timeout_seconds
        self._retry_after_seconds = retry_after_seconds
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._unavailable_until: float | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url)

    async def probe(self) -> bool:
        if not self._base_url:
            return False
        if self._unavailable_until is not None and self._clock() < self._unavailable_until:
            return False
        return True

    async def read(self, collection: Collection) -> list[Entity] | None:
        response = await self._request("GET", collection)
        try:
            data = response.json()
        except ValueError as exc:
            self._mark_failure()
            raise StorageBackendError(f"Remote returned invalid JSON for {collection.name}") from exc
        if not isinstance(data, list):
            self._mark_failure()
            raise StorageBackendError(f"Remote returned a non-list payload for {collection.name}")
        return data

    async def write_many(self, batch: WriteBatch) -> None:
        for collection, entities in batch.changes.items():
            await self._request("PUT", collection, json=entities)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, collection: Collection, **kwargs: Any) -> httpx.Response:
        if not self._base_url:
            raise StorageBackendError("Remote service is not configured")

        url = f"{self._base_url}/{collection.name}"
        headers = {"Accept": "application/json"}
        if self._api_token:
            headers["Authorization"] = (
                self._api_token if self._api_token.lower().startswith("bearer ") else f"Bearer {self._api_token}"
            )

        try:
            response = await self._get_client().request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._mark_failure()
            raise StorageBackendError(
                f"Remote {method} {collection.name} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            self._mark_failure()
            raise StorageBackendError(f"Remote {method} {collection.name} failed: {exc}") from exc

        self._unavailable_until = None
        return response

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._client

    def _mark_failure(self) -> None:
        self._unavailable_until = self._clock() + self._retry_after_seconds


class LocalCacheBackend:
    """Durable key/value cache holding one JSON document per key.

    Also keeps the remote sync journal: the collections whose latest local
    state the remote service has not acknowledged yet.
    """

    name = "local_cache"
    writable = True

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def probe(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    async def read(self, collection: Collection) -> list[Entity] | None:
        value = await self.get_value(collection.cache_key)
        if value is None:
            return None
        if not isinstance(value, list):
            raise StorageBackendError(f"Cache key {collection.cache_key} does not hold a collection")
        return value

    async def get_value(self, key: str) -> Any | None:
        try:
            async with self._session_factory() as session:
                entry = await session.get(CacheEntry, key)
                raw = entry.value if entry is not None else None
        except SQLAlchemyError as exc:
            raise StorageBackendError(f"Cache read failed for {key}") from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StorageBackendError(f"Cache key {key} holds invalid JSON") from exc

    async def set_value(self, key: str, value: Any) -> None:
        try:
            async with self._session_factory() as session:
                await session.merge(CacheEntry(key=key, value=json.dumps(value)))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageBackendError(f"Cache write failed for {key}") from exc

    async def write_many(self, batch: WriteBatch, *, remote_delivered: bool | None = None) -> None:
        """Store every key of ``batch`` in one transaction.

        ``remote_delivered`` updates the sync journal in that same transaction:
        ``False`` marks the batch's collections pending, ``True`` clears them
        and ``None`` leaves the journal untouched.
        """

        names = batch.collections
        try:
            async with self._session_factory() as session:
                for key, value in batch.by_cache_key().items():
                    await session.merge(CacheEntry(key=key, value=json.dumps(value)))
                if remote_delivered is False:
                    await self._mark_pending(session, names, batch.description)
                elif remote_delivered:
                    await session.execute(
                        delete(RemoteSyncJournalEntry).where(RemoteSyncJournalEntry.collection.in_(names))
                    )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageBackendError(f"Cache batch failed: {batch.description}") from exc

    async def pending_collections(self) -> list[str]:
        try:
            async with self._session_factory() as session:
                stmt = select(RemoteSyncJournalEntry.collection).order_by(
                    RemoteSyncJournalEntry.first_pending_at.asc(),
                    RemoteSyncJournalEntry.collection.asc(),
                )
                return list((await session.execute(stmt)).scalars())
        except SQLAlchemyError as exc:
            raise StorageBackendError("Remote sync journal read failed") from exc

    async def clear_pending(self, names: Iterable[str]) -> None:
        names = list(names)
        if not names:
            return
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(RemoteSyncJournalEntry).where(RemoteSyncJournalEntry.collection.in_(names))
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StorageBackendError("Remote sync journal update failed") from exc

    @staticmethod
    async def _mark_pending(session: AsyncSession, names: list[str], description: str) -> None:
        for name in names:
            entry = await session.get(RemoteSyncJournalEntry, name)
            if entry is None:
                session.add(RemoteSyncJournalEntry(collection=name, last_description=description))
            else:
                entry.pending_changes += 1
                entry.last_description = description
                entry.last_pending_at = datetime.now(timezone.utc)


class SeedBackend:
    """Read-only JSON documents named after their cache key."""

    name = "seed"
    writable = False

    def __init__(self, seed_dir: str | Path) -> None:
        self._seed_dir = Path(seed_dir)

    async def probe(self) -> bool:
        return self._seed_dir.is_dir()

    async def read(self, collection: Collection) -> list[Entity] | None:
        path = self._seed_dir / f"{collection.cache_key}.json"
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageBackendError(f"Seed document {path.name} could not be loaded") from exc
        if not isinstance(data, list):
            raise StorageBackendError(f"Seed document {path.name} is not a list")
        return data

    async def write_many(self, batch: WriteBatch) -> None:
        raise StorageBackendError("Seed documents are read-only")
