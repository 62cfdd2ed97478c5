"""Dual-mode persistence: remote service first, local cache fallback."""

from .backends import (  # noqa: F401
    LocalCacheBackend,
    RemoteServiceBackend,
    SeedBackend,
    StorageBackend,
    StorageBackendError,
)
from .batch import Entity, WriteBatch  # noqa: F401
from .gateway import PersistenceGateway, build_gateway  # noqa: F401
