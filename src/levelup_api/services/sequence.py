"""Human-readable, monotonically increasing order numbers."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable

from loguru import logger

from levelup_api.errors import PersistenceUnavailableError
from levelup_api.schemas.common import utcnow
from levelup_api.storage import PersistenceGateway


class SequenceGenerator:
    """Issues ``{PREFIX}-{counter:03d}-{year}`` identifiers.

    One counter per namespace, persisted in the local cache. The counter
    never resets at year rollover; only the year segment changes. Safe for a
    single writer only.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        namespace: str,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._gateway = gateway
        self._namespace = namespace
        self._clock = clock

    async def next(self, prefix: str) -> str:
        try:
            current = await self._gateway.get_scalar(self._namespace)
            counter = int(current or 0) + 1
            await self._gateway.set_scalar(self._namespace, counter)
        except (PersistenceUnavailableError, TypeError, ValueError) as exc:
            fallback = f"{prefix}-{time.time_ns()}"
            logger.warning(
                "Order counter unavailable, using timestamp identifier",
                namespace=self._namespace,
                identifier=fallback,
                error=str(exc),
            )
            return fallback

        return f"{prefix}-{counter:03d}-{self._clock().year:04d}"
