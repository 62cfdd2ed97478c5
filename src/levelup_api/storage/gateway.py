"""Remote-first persistence with a durable local cache fallback."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

import httpx
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from levelup_api.core.settings import Settings
from levelup_api.errors import PersistenceUnavailableError
from levelup_api.storage.backends import (
    LocalCacheBackend,
    RemoteServiceBackend,
    SeedBackend,
    StorageBackendError,
)
from levelup_api.storage.batch import Entity, WriteBatch
from levelup_api.storage.collections import COLLECTIONS_BY_NAME, Collection


class PersistenceGateway:
    """Best-effort availability layer shared by every repository.

    Reads try the remote service, then the local cache, then the seed
    documents, and finally return an empty list. Writes always land in the
    local cache and are delivered to the remote when it is reachable. A
    collection whose latest change the remote did not acknowledge stays in the
    sync journal; its local state is pushed before the remote is read or
    written again, so the remote never overwrites newer local data.
    """

    def __init__(
        self,
        *,
        cache: LocalCacheBackend,
        remote: RemoteServiceBackend | None = None,
        seed: SeedBackend | None = None,
    ) -> None:
        self._cache = cache
        self._remote = remote
        self._seed = seed
        # Held by repositories for a whole read-validate-commit cycle
        self.lock = asyncio.Lock()
        # Serialises remote traffic with the sync journal
        self._remote_lock = asyncio.Lock()

    @property
    def remote_enabled(self) -> bool:
        return self._remote is not None and self._remote.is_configured

    async def read(self, collection: Collection) -> list[Entity]:
        if self.remote_enabled and await self._remote.probe():
            async with self._remote_lock:
                entities = await self._read_remote(collection)
            if entities is not None:
                return entities

        try:
            cached = await self._cache.read(collection)
        except StorageBackendError as exc:
            logger.warning("Local cache read failed", collection=collection.name, error=str(exc))
            cached = None
        if cached is not None:
            return cached

        if self._seed is not None and await self._seed.probe():
            try:
                seeded = await self._seed.read(collection)
            except StorageBackendError as exc:
                logger.warning("Seed bootstrap failed", collection=collection.name, error=str(exc))
                seeded = None
            if seeded is not None:
                logger.info("Bootstrapped local cache from seed", collection=collection.name, count=len(seeded))
                await self._warm(collection, seeded)
                return seeded

        return []

    async def write(self, collection: Collection, entities: Iterable[Entity], *, description: str | None = None) -> None:
        await self.commit(WriteBatch(description or f"replace {collection.name}").put(collection, entities))

    async def commit(self, batch: WriteBatch) -> None:
        """Persist every collection of ``batch`` as one logical change."""

        if not batch:
            return

        async with self._remote_lock:
            delivered: bool | None = None
            if self.remote_enabled:
                delivered = False
                if await self._remote.probe() and await self._push_pending():
                    try:
                        await self._remote.write_many(batch)
                        delivered = True
                    except StorageBackendError as exc:
                        logger.warning(
                            "Remote write failed, keeping change for later delivery",
                            description=batch.description,
                            collections=batch.collections,
                            error=str(exc),
                        )

            try:
                await self._cache.write_many(batch, remote_delivered=delivered)
            except StorageBackendError as exc:
                if not delivered:
                    logger.error(
                        "Write rejected by every backend",
                        description=batch.description,
                        collections=batch.collections,
                        error=str(exc),
                    )
                    raise PersistenceUnavailableError(
                        "No se pudo guardar el cambio, intenta nuevamente"
                    ) from exc
                logger.warning(
                    "Local cache write failed after remote write",
                    description=batch.description,
                    error=str(exc),
                )

    async def get_scalar(self, key: str) -> Any | None:
        try:
            return await self._cache.get_value(key)
        except StorageBackendError as exc:
            raise PersistenceUnavailableError(str(exc)) from exc

    async def set_scalar(self, key: str, value: Any) -> None:
        try:
            await self._cache.set_value(key, value)
        except StorageBackendError as exc:
            raise PersistenceUnavailableError(str(exc)) from exc

    async def recover(self) -> int:
        """Deliver collections left pending by an earlier run; returns how many."""

        if not self.remote_enabled:
            return 0
        try:
            pending = await self._cache.pending_collections()
        except StorageBackendError as exc:
            logger.error("Remote sync journal unreadable", error=str(exc))
            return 0
        if not pending or not await self._remote.probe():
            return 0
        async with self._remote_lock:
            if not await self._push_pending():
                return 0
        logger.info("Delivered pending collections to remote", collections=pending)
        return len(pending)

    async def status(self) -> dict[str, str]:
        remote_status = "disabled"
        if self.remote_enabled:
            remote_status = "available" if await self._remote.probe() else "unavailable"
        cache_status = "available" if await self._cache.probe() else "unavailable"
        return {"remote": remote_status, "local_cache": cache_status}

    async def aclose(self) -> None:
        if self._remote is not None:
            await self._remote.aclose()

    async def _read_remote(self, collection: Collection) -> list[Entity] | None:
        if not await self._push_pending():
            return None
        try:
            entities = await self._remote.read(collection)
        except StorageBackendError as exc:
            logger.warning(
                "Remote read failed, falling back to local cache",
                collection=collection.name,
                error=str(exc),
            )
            return None
        entities = entities or []
        await self._warm(collection, entities)
        return entities

    async def _push_pending(self) -> bool:
        """Send the local state of every pending collection to the remote.

        Returns ``True`` when nothing is left pending. Must be called with the
        remote lock held.
        """

        try:
            pending = await self._cache.pending_collections()
        except StorageBackendError as exc:
            logger.warning("Remote sync journal unreadable", error=str(exc))
            return False
        if not pending:
            return True

        batch = WriteBatch(f"deliver pending {', '.join(pending)}")
        try:
            for name in pending:
                collection = COLLECTIONS_BY_NAME.get(name)
                entities = await self._cache.read(collection) if collection is not None else None
                if entities is not None:
                    batch.put(collection, entities)
            if batch:
                await self._remote.write_many(batch)
            await self._cache.clear_pending(pending)
        except StorageBackendError as exc:
            logger.warning(
                "Pending collections not delivered, remote left untouched",
                collections=pending,
                error=str(exc),
            )
            return False

        logger.info("Delivered pending collections", collections=pending)
        return True

    async def _warm(self, collection: Collection, entities: list[Entity]) -> None:
        try:
            await self._cache.write_many(WriteBatch(f"warm {collection.name}").put(collection, entities))
        except StorageBackendError as exc:
            logger.warning("Could not warm local cache", collection=collection.name, error=str(exc))


def build_gateway(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    http_client: httpx.AsyncClient | None = None,
) -> PersistenceGateway:
    remote = None
    if settings.remote_api_base_url:
        remote = RemoteServiceBackend(
            settings.remote_api_base_url,
            api_token=settings.remote_api_token,
            timeout_seconds=settings.remote_timeout_seconds,
            retry_after_seconds=settings.remote_retry_after_seconds,
            http_client=http_client,
        )
    return PersistenceGateway(
        cache=LocalCacheBackend(session_factory),
        remote=remote,
        seed=SeedBackend(settings.seed_data_dir),
    )
