"""
In-memory remote store client for testing.

This module provides a simple in-memory remote store backend for:
- Unit tests
- Integration tests of the coordinator, loader and reaper
- Local development without a hosted database

Invariants:
    - All data is lost on process exit
    - Rows are copied on the way in and out; callers never share state
    - Injected failures are consumed in the order they were queued

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with RemoteStoreClient protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .base import RemoteConnectionError, RemoteResult

logger = logging.getLogger(__name__)

ANY_TABLE = "*"


@dataclass
class InjectedFailure:
    """A queued failure for one (table, operation) pair."""
    message: Optional[str] = None
    exception: Optional[BaseException] = None
    remaining: Optional[int] = 1


@dataclass
class RecordedCall:
    """A call made against the in-memory store (testing helper)."""
    op: str
    table: str
    payload: Any = None


class InMemoryRemoteStore:
    """In-memory implementation of RemoteStoreClient for testing.

    Attributes:
        calls: Every call made, in order

    Failure injection:
        fail_next() queues a remote-side error text, raise_next() queues a
        transport exception, fail_always() makes an operation fail until
        clear_failures() is called.

    Suspension:
        hold() makes every subsequent call wait until release(), which lets
        tests observe optimistic state before reconciliation.

    Example:
        >>> remote = InMemoryRemoteStore()
        >>> await remote.connect()
        >>> remote.fail_next("fees", "insert", "new row violates row-level security policy")
        >>> result = await remote.insert("fees", [{"id": "FEE-1"}])
        >>> result.ok
        False
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[Any, Dict[str, Any]]] = defaultdict(dict)
        self._failures: Dict[Tuple[str, str], List[InjectedFailure]] = defaultdict(list)
        self._connected = False
        self._gate = asyncio.Event()
        self._gate.set()
        self.calls: List[RecordedCall] = []

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryRemoteStore connected")

    async def close(self) -> None:
        """Close; data is kept so a reconnect sees the same tables."""
        self._connected = False
        logger.debug("InMemoryRemoteStore closed")

    async def select(
        self, table: str, match_ids: Optional[Sequence[Any]] = None
    ) -> RemoteResult:
        failure = await self._begin("select", table, match_ids)
        if failure:
            return failure
        rows = self._tables[table]
        if match_ids is None:
            selected = list(rows.values())
        else:
            wanted = set(match_ids)
            selected = [row for key, row in rows.items() if key in wanted]
        return RemoteResult(data=copy.deepcopy(selected))

    async def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> RemoteResult:
        failure = await self._begin("insert", table, rows)
        if failure:
            return failure
        existing = self._tables[table]
        for row in rows:
            if row.get("id") in existing:
                return RemoteResult.failure(
                    f'duplicate key value violates unique constraint "{table}_pkey"'
                )
        for row in rows:
            existing[row["id"]] = copy.deepcopy(dict(row))
        return RemoteResult(data=copy.deepcopy(list(rows)))

    async def upsert(self, table: str, rows: Sequence[Dict[str, Any]]) -> RemoteResult:
        failure = await self._begin("upsert", table, rows)
        if failure:
            return failure
        existing = self._tables[table]
        for row in rows:
            existing[row["id"]] = copy.deepcopy(dict(row))
        return RemoteResult(data=copy.deepcopy(list(rows)))

    async def update(
        self, table: str, values: Dict[str, Any], match_ids: Sequence[Any]
    ) -> RemoteResult:
        failure = await self._begin("update", table, {"values": values, "ids": list(match_ids)})
        if failure:
            return failure
        updated = []
        for row_id in match_ids:
            row = self._tables[table].get(row_id)
            if row is not None:
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return RemoteResult(data=updated)

    async def delete(self, table: str, match_ids: Sequence[Any]) -> RemoteResult:
        failure = await self._begin("delete", table, list(match_ids))
        if failure:
            return failure
        removed = []
        for row_id in match_ids:
            row = self._tables[table].pop(row_id, None)
            if row is not None:
                removed.append(row)
        return RemoteResult(data=removed)

    async def delete_all(self, table: str) -> RemoteResult:
        failure = await self._begin("delete_all", table)
        if failure:
            return failure
        removed = list(self._tables[table].values())
        self._tables[table].clear()
        return RemoteResult(data=removed)

    async def _begin(self, op: str, table: str, payload: Any = None) -> Optional[RemoteResult]:
        """Record the call, honor the hold gate and injected failures."""
        self.calls.append(RecordedCall(op=op, table=table, payload=copy.deepcopy(payload)))
        await self._gate.wait()

        if not self._connected:
            raise RemoteConnectionError("Not connected")

        injected = self._take_failure(op, table)
        if injected is None:
            return None
        if injected.exception is not None:
            raise injected.exception
        logger.debug(
            "Injected remote failure",
            extra={"op": op, "table": table, "error": injected.message},
        )
        return RemoteResult.failure(injected.message or "Injected failure")

    def _take_failure(self, op: str, table: str) -> Optional[InjectedFailure]:
        for key in ((table, op), (ANY_TABLE, op), (table, ANY_TABLE), (ANY_TABLE, ANY_TABLE)):
            queue = self._failures.get(key)
            if not queue:
                continue
            failure = queue[0]
            if failure.remaining is not None:
                failure.remaining -= 1
                if failure.remaining <= 0:
                    queue.pop(0)
            return failure
        return None

    # Testing helpers

    def fail_next(self, table: str, op: str, message: str, times: int = 1) -> None:
        """Make the next `times` calls of op on table return an error."""
        self._failures[(table, op)].append(InjectedFailure(message=message, remaining=times))

    def fail_always(self, table: str, op: str, message: str) -> None:
        """Make every call of op on table return an error."""
        self._failures[(table, op)].append(InjectedFailure(message=message, remaining=None))

    def raise_next(self, table: str, op: str, exception: BaseException, times: int = 1) -> None:
        """Make the next `times` calls of op on table raise (transport failure)."""
        self._failures[(table, op)].append(InjectedFailure(exception=exception, remaining=times))

    def clear_failures(self) -> None:
        self._failures.clear()

    def hold(self) -> None:
        """Suspend every subsequent call until release()."""
        self._gate.clear()

    def release(self) -> None:
        self._gate.set()

    def seed(self, table: str, rows: Sequence[Dict[str, Any]]) -> None:
        """Put rows directly into a table without recording a call."""
        for row in rows:
            self._tables[table][row["id"]] = copy.deepcopy(dict(row))

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """Current rows of a table."""
        return copy.deepcopy(list(self._tables[table].values()))

    def row_ids(self, table: str) -> List[Any]:
        return list(self._tables[table].keys())

    def calls_for(self, op: str, table: Optional[str] = None) -> List[RecordedCall]:
        return [c for c in self.calls if c.op == op and (table is None or c.table == table)]
