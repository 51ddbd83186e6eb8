"""
In-memory Entity Store for SchoolSync.

The Entity Store holds the authoritative local snapshot of every
collection plus the configuration record. It performs no I/O: the Sync
Coordinator, Bootstrap Loader and Tombstone Reaper own all traffic to the
remote store and use this class only to read and mutate local state.

Invariants:
    - Record ids are unique within a collection (soft-deleted included)
    - A record's session never changes after insertion
    - Every read returns an immutable snapshot; later writes never show up
      in a snapshot a reader already holds
    - A rejected mutation leaves the store untouched

Thread safety:
    None needed. The store is mutated only from the single asyncio event
    loop that drives the coordinator, the loader and the reaper. Each
    mutation is synchronous and therefore atomic with respect to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Union

from ..errors import DuplicateIdError, RecordNotFoundError, SessionReassignmentError
from .records import AppConfig, Collection, Record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InsertRecord:
    """Append a new record."""

    record: Record


@dataclass(frozen=True)
class ReplaceRecord:
    """Replace an existing record (same id) in place."""

    record: Record


@dataclass(frozen=True)
class RemoveRecords:
    """Drop records by id. Unknown ids are ignored."""

    ids: frozenset[str]

    @classmethod
    def of(cls, ids: Iterable[str]) -> RemoveRecords:
        return cls(frozenset(ids))


Mutation = Union[InsertRecord, ReplaceRecord, RemoveRecords]


@dataclass(frozen=True)
class StoreSnapshot:
    """Whole-store capture: every collection plus configuration."""

    collections: dict[Collection, tuple[Record, ...]] = field(default_factory=dict)
    config: AppConfig = field(default_factory=AppConfig.default)

    def get(self, collection: Collection) -> tuple[Record, ...]:
        return self.collections.get(collection, ())


class EntityStore:
    """Canonical in-memory representation of all record collections.

    Example:
        >>> store = EntityStore()
        >>> _ = store.apply(Collection.STUDENTS, InsertRecord(Record(id="ST01", session="2024-2025")))
        >>> [r.id for r in store.get(Collection.STUDENTS)]
        ['ST01']
    """

    def __init__(self, config: AppConfig | None = None) -> None:
        self._collections: dict[Collection, tuple[Record, ...]] = {c: () for c in Collection}
        self._config = config or AppConfig.default()
        self._version = 0

    @property
    def version(self) -> int:
        """Monotonic counter bumped on every successful write."""
        return self._version

    @property
    def config(self) -> AppConfig:
        return self._config

    def set_config(self, config: AppConfig) -> None:
        self._config = config
        self._version += 1

    def get(self, collection: Collection | str) -> tuple[Record, ...]:
        """Current snapshot of a collection in insertion order."""
        return self._collections[Collection.parse(collection)]

    def find(self, collection: Collection | str, record_id: str) -> Record | None:
        for record in self.get(collection):
            if record.id == record_id:
                return record
        return None

    def ids(self, collection: Collection | str) -> set[str]:
        return {r.id for r in self.get(collection)}

    def apply(self, collection: Collection | str, mutation: Mutation) -> tuple[Record, ...]:
        """Apply an in-memory mutation and return the new snapshot.

        Raises:
            DuplicateIdError: Insert of an id that already exists
            RecordNotFoundError: Replace of an unknown id
            SessionReassignmentError: Replace that changes the session
        """
        collection = Collection.parse(collection)
        current = self._collections[collection]

        if isinstance(mutation, InsertRecord):
            record = mutation.record
            if any(r.id == record.id for r in current):
                raise DuplicateIdError(collection.value, record.id)
            updated = current + (record,)

        elif isinstance(mutation, ReplaceRecord):
            record = mutation.record
            index = self._index_of(current, record.id)
            if index is None:
                raise RecordNotFoundError(collection.value, record.id)
            previous = current[index]
            if previous.session != record.session:
                raise SessionReassignmentError(
                    collection.value, record.id, previous.session, record.session
                )
            updated = current[:index] + (record,) + current[index + 1 :]

        elif isinstance(mutation, RemoveRecords):
            updated = tuple(r for r in current if r.id not in mutation.ids)

        else:
            raise TypeError(f"Unsupported mutation: {mutation!r}")

        self._collections[collection] = updated
        self._version += 1
        return updated

    def replace(self, collection: Collection | str, records: Iterable[Record]) -> tuple[Record, ...]:
        """Wholesale replacement of a collection.

        Raises:
            DuplicateIdError: If the new records repeat an id
        """
        collection = Collection.parse(collection)
        records = tuple(records)
        self._check_unique(collection, records)
        self._collections[collection] = records
        self._version += 1
        logger.debug(
            "Collection replaced",
            extra={"collection": collection.value, "count": len(records)},
        )
        return records

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(collections=dict(self._collections), config=self._config)

    def load(self, snapshot: StoreSnapshot) -> None:
        """Swap in a whole-store snapshot atomically.

        All collections are validated before any is installed.
        """
        staged = {c: tuple(snapshot.get(c)) for c in Collection}
        for collection, records in staged.items():
            self._check_unique(collection, records)
        self._collections = staged
        self._config = snapshot.config
        self._version += 1

    def reset(self) -> None:
        """Return to empty collections and the default configuration."""
        self.load(StoreSnapshot())

    @staticmethod
    def _index_of(records: tuple[Record, ...], record_id: str) -> int | None:
        for i, record in enumerate(records):
            if record.id == record_id:
                return i
        return None

    @staticmethod
    def _check_unique(collection: Collection, records: tuple[Record, ...]) -> None:
        seen: set[str] = set()
        for record in records:
            if record.id in seen:
                raise DuplicateIdError(collection.value, record.id)
            seen.add(record.id)
