"""
Remote Persistence Gateway for SchoolSync.

Translates collection-level operations into calls on a RemoteStoreClient
and reports success or failure without interpreting business meaning.

Invariants:
    - Every operation returns a GatewayResult; nothing is raised to callers
    - Error text is surfaced raw; classification happens in sync.classify
    - The gateway keeps no cache; staleness is resolved by re-bootstrapping
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

from ..errors import InvariantViolationError
from ..store.records import AppConfig, Collection, Record
from .base import CONFIG_TABLE, RemoteResult, RemoteStoreClient, RemoteStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class GatewayResult(Generic[T]):
    """Result of a gateway operation.

    Attributes:
        success: Whether the remote store accepted the operation
        data: Operation payload (records for fetch_all, config for fetch_config)
        error: Raw error text if failed
        transport_failure: True when the call never reached the store
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    transport_failure: bool = False

    @classmethod
    def ok(cls, data: Optional[T] = None) -> GatewayResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: str, transport_failure: bool = False) -> GatewayResult[T]:
        return cls(success=False, error=error, transport_failure=transport_failure)


class PersistenceGateway:
    """Collection-level access to the remote store.

    Example:
        >>> gateway = PersistenceGateway(InMemoryRemoteStore())
        >>> result = await gateway.insert(Collection.FEES, record)
        >>> if not result.success:
        ...     print(result.error)
    """

    def __init__(self, client: RemoteStoreClient) -> None:
        self.client = client

    async def connect(self) -> GatewayResult[None]:
        return await self._call("connect", CONFIG_TABLE, self._connect)

    async def close(self) -> None:
        await self.client.close()

    async def fetch_all(self, collection: Collection) -> GatewayResult[list[Record]]:
        """Fetch every row of a collection as records.

        Rows that break record invariants are skipped and logged, as are
        later rows repeating an id already seen.
        """
        result = await self._call("select", collection.value, lambda: self.client.select(collection.value))
        if not result.success:
            return result  # type: ignore[return-value]

        records: list[Record] = []
        seen: set[str] = set()
        for row in result.data or []:
            try:
                record = Record.from_row(row)
            except InvariantViolationError as e:
                logger.warning(
                    f"Skipping malformed row from '{collection.value}': {e.message}",
                    extra={"collection": collection.value, "record_id": e.record_id},
                )
                continue
            if record.id in seen:
                logger.warning(
                    f"Skipping duplicate row '{record.id}' from '{collection.value}'",
                    extra={"collection": collection.value, "record_id": record.id},
                )
                continue
            seen.add(record.id)
            records.append(record)
        return GatewayResult.ok(records)

    async def insert(self, collection: Collection, record: Record) -> GatewayResult[None]:
        row = record.to_row()
        return await self._call(
            "insert", collection.value, lambda: self.client.insert(collection.value, [row])
        )

    async def upsert(self, collection: Collection, record: Record) -> GatewayResult[None]:
        row = record.to_row()
        return await self._call(
            "upsert", collection.value, lambda: self.client.upsert(collection.value, [row])
        )

    async def update_fields(
        self, collection: Collection, record_id: str, fields: dict[str, Any]
    ) -> GatewayResult[None]:
        values = dict(fields)
        return await self._call(
            "update",
            collection.value,
            lambda: self.client.update(collection.value, values, [record_id]),
        )

    async def delete_by_ids(
        self, collection: Collection, ids: Iterable[str]
    ) -> GatewayResult[None]:
        ids = list(ids)
        if not ids:
            return GatewayResult.ok()
        return await self._call(
            "delete", collection.value, lambda: self.client.delete(collection.value, ids)
        )

    async def delete_all(self, collection: Collection) -> GatewayResult[None]:
        return await self._call(
            "delete_all", collection.value, lambda: self.client.delete_all(collection.value)
        )

    async def fetch_config(self) -> GatewayResult[Optional[AppConfig]]:
        """Fetch the singular configuration row (None if absent)."""
        result = await self._call(
            "select", CONFIG_TABLE, lambda: self.client.select(CONFIG_TABLE, [AppConfig.ROW_ID])
        )
        if not result.success:
            return result  # type: ignore[return-value]
        rows = result.data or []
        return GatewayResult.ok(AppConfig.from_row(rows[0]) if rows else None)

    async def save_config(self, config: AppConfig) -> GatewayResult[None]:
        row = config.to_row()
        return await self._call(
            "upsert", CONFIG_TABLE, lambda: self.client.upsert(CONFIG_TABLE, [row])
        )

    async def _connect(self) -> RemoteResult:
        await self.client.connect()
        return RemoteResult()

    async def _call(
        self,
        op: str,
        table: str,
        call: Callable[[], Awaitable[RemoteResult]],
    ) -> GatewayResult[Any]:
        try:
            result = await call()
        except (RemoteStoreError, OSError, asyncio.TimeoutError, ValueError) as e:
            message = str(e) or type(e).__name__
            logger.warning(
                f"Remote {op} on '{table}' failed in transport: {message}",
                extra={"op": op, "table": table},
            )
            return GatewayResult.failed(message, transport_failure=True)

        if not result.ok:
            logger.warning(
                f"Remote {op} on '{table}' rejected: {result.error}",
                extra={"op": op, "table": table},
            )
            return GatewayResult.failed(result.error or "Unknown remote error")
        return GatewayResult.ok(result.data)
