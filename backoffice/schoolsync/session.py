"""
Session partitioning.

Every record is stamped with the academic session active when it was
created. Read paths that show "current" records filter by that session;
the recycle bin shows soft-deleted records of the same session.

The partitioner is pure: it reads the session configuration through a
SessionSource and owns no storage. It never changes the current session;
that is an administrative action outside this layer.
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol

from .store.entity_store import EntityStore
from .store.records import Collection, Record


class SessionSource(Protocol):
    """Read access to the session configuration."""

    def current_session(self) -> str | None:
        ...

    def known_sessions(self) -> list[str]:
        ...


class StoreSessionSource:
    """SessionSource backed by the store's configuration record."""

    def __init__(self, store: EntityStore) -> None:
        self._store = store

    def current_session(self) -> str | None:
        return self._store.config.current_session

    def known_sessions(self) -> list[str]:
        return self._store.config.sessions


class SessionPartitioner:
    """Active-session stamping and filtering."""

    def __init__(self, source: SessionSource) -> None:
        self.source = source

    def current_session(self) -> str | None:
        return self.source.current_session()

    def known_sessions(self) -> list[str]:
        return self.source.known_sessions()

    def stamp(self, record_id: str, fields: dict[str, Any]) -> Record:
        """Build a new active record in the current session."""
        return Record(id=record_id, session=self.current_session(), fields=fields)

    def in_session(
        self, collection: Collection, record: Record, session: str | None = None
    ) -> bool:
        """Whether a record belongs to a session (default: the current one).

        Students created before sessions existed carry no session; they are
        treated as part of every session. No other collection gets this
        allowance.
        """
        session = session if session is not None else self.current_session()
        if record.session is None:
            return collection.spec.allows_sessionless
        return record.session == session

    def is_active(self, collection: Collection, record: Record) -> bool:
        return not record.is_deleted and self.in_session(collection, record)

    def active(self, collection: Collection, records: Iterable[Record]) -> list[Record]:
        """Records visible to every read path outside the recycle bin."""
        return [r for r in records if self.is_active(collection, r)]

    def recycle_bin(self, collection: Collection, records: Iterable[Record]) -> list[Record]:
        """Soft-deleted records of the current session."""
        return [r for r in records if r.is_deleted and self.in_session(collection, r)]

    def sessions_in_use(self, store: EntityStore) -> set[str]:
        """Sessions referenced by at least one record, deleted or not."""
        return {
            record.session
            for collection in Collection
            for record in store.get(collection)
            if record.session is not None
        }

    def can_retire_session(self, store: EntityStore, session: str) -> bool:
        """Whether a session could be removed from the known sessions.

        At least one other session must remain and no record may refer
        to it.
        """
        remaining = [s for s in self.known_sessions() if s != session]
        if not remaining:
            return False
        return session not in self.sessions_in_use(store)
