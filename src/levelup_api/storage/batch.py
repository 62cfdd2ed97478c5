from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from levelup_api.storage.collections import Collection


Entity = dict[str, Any]


@dataclass
class WriteBatch:
    """Compound change applied to several collections as one unit.

    Each collection is replaced by the full entity list recorded here, so
    replaying a batch is idempotent.
    """

    description: str
    changes: dict[Collection, list[Entity]] = field(default_factory=dict)

    def put(self, collection: Collection, entities: Iterable[Entity]) -> "WriteBatch":
        self.changes[collection] = list(entities)
        return self

    def by_cache_key(self) -> dict[str, list[Entity]]:
        return {collection.cache_key: entities for collection, entities in self.changes.items()}

    @property
    def collections(self) -> list[str]:
        return [collection.name for collection in self.changes]

    def __bool__(self) -> bool:
        return bool(self.changes)
