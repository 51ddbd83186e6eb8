"""
Sync Coordinator for SchoolSync.

Every mutating operation runs the same three steps:
1. Optimistic apply: the Entity Store is changed synchronously, before the
   first await, so readers see the change immediately
2. Remote dispatch: the matching gateway call is awaited
3. Reconciliation: on success nothing more happens to local state; on
   failure the operation's own change is rolled back

Operations and rollback:
    create        append record        -> remove that id
    update_fields replace in place     -> restore captured field values
    save          full replace         -> restore captured field values
    soft_delete   isDeleted/deletedAt  -> clear them again
    restore       clear isDeleted      -> re-apply previous deletedAt
    purge         remote delete first, local drop only on success

Invariants:
    - Two operations issued in sequence apply to the store in that order
    - A rollback reverts only the keys its own operation wrote, and only
      where the store still holds the value that operation wrote; a later
      operation's effect is never clobbered
    - Every operation ends with exactly one notification
    - Remote failures never raise; local invariant violations raise before
      any remote call

How to change safely:
    - Keep every store mutation ahead of the first await in an operation
    - Route any new error text through classify_remote_error
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Optional

from ..errors import InvariantViolationError, RecordNotFoundError
from ..gateway.gateway import GatewayResult, PersistenceGateway
from ..notify import Notifier, Severity
from ..session import SessionPartitioner
from ..store.entity_store import EntityStore, InsertRecord, RemoveRecords, ReplaceRecord
from ..store.records import (
    BOOKKEEPING_KEYS,
    AppConfig,
    Collection,
    Record,
    format_timestamp,
    utcnow,
)
from .classify import ErrorKind, classify_remote_error
from .ids import IdScheme, scheme_for

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class OperationOutcome:
    """Result of a coordinated operation.

    Attributes:
        success: Whether the remote store confirmed the operation
        operation: Operation name (create, update, soft_delete, ...)
        collection: Affected collection, None for config/reset operations
        record: The record as optimistically applied
        error: Raw remote error text if failed
        error_kind: Classified failure if failed
    """

    success: bool
    operation: str
    collection: Optional[Collection] = None
    record: Optional[Record] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


_DESCRIPTIONS = {
    "create": ("creating", "created"),
    "update": ("updating", "updated"),
    "save": ("updating", "updated"),
    "soft_delete": ("deleting", "moved to the recycle bin"),
    "restore": ("restoring", "restored"),
    "purge": ("permanently deleting", "permanently deleted"),
}


def failure_message(kind: ErrorKind, action: str, error: str | None) -> str:
    """User-facing text for a classified failure."""
    detail = f" ({error})" if error else ""
    if kind is ErrorKind.POLICY_DENIED:
        return (
            f"Administrative action required: {action} was blocked by a "
            f"security policy on the remote store{detail}"
        )
    if kind is ErrorKind.SCHEMA_MISMATCH:
        return (
            f"Remote store misconfigured: {action} failed because an expected "
            f"column is missing{detail}"
        )
    return f"Sync failed: {action} did not reach the remote store{detail}"


class SyncCoordinator:
    """Optimistic local mutation with remote confirmation and rollback.

    Example:
        >>> coordinator = SyncCoordinator(store, gateway, partitioner, notifier)
        >>> outcome = await coordinator.create(Collection.FEES, {"studentId": "ST01", "amount": 500})
        >>> outcome.success
        True
    """

    def __init__(
        self,
        store: EntityStore,
        gateway: PersistenceGateway,
        partitioner: SessionPartitioner,
        notifier: Notifier,
        clock: Callable[[], datetime] = utcnow,
        id_schemes: Optional[dict[Collection, IdScheme]] = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Entity Store owned jointly with the loader and reaper
            gateway: Remote persistence gateway
            partitioner: Supplies the session stamped on new records
            notifier: Notification sink
            clock: Source of deletedAt timestamps
            id_schemes: Override id generation per collection
        """
        self.store = store
        self.gateway = gateway
        self.partitioner = partitioner
        self.notifier = notifier
        self.clock = clock
        self._id_schemes = {c: scheme_for(c.spec) for c in Collection}
        if id_schemes:
            self._id_schemes.update(id_schemes)

    # Record operations

    async def create(self, collection: Collection | str, fields: dict[str, Any]) -> OperationOutcome:
        """Create a record stamped with the current session.

        Raises:
            InvariantViolationError: If fields carry id/session/isDeleted/deletedAt
        """
        collection = Collection.parse(collection)
        self._reject_bookkeeping(collection, fields)
        record_id = self._id_schemes[collection].next_id(self.store.ids(collection))
        record = self.partitioner.stamp(record_id, fields)
        self.store.apply(collection, InsertRecord(record))

        result = await self.gateway.insert(collection, record)
        if result.success:
            return self._succeeded("create", collection, record)

        self.store.apply(collection, RemoveRecords.of([record.id]))
        logger.info(
            "Rolled back optimistic create",
            extra={"collection": collection.value, "record_id": record.id},
        )
        return self._failed("create", collection, record, result)

    async def update_fields(
        self, collection: Collection | str, record_id: str, changes: dict[str, Any]
    ) -> OperationOutcome:
        """Change domain fields of a record in place.

        Raises:
            RecordNotFoundError: If the record does not exist
            InvariantViolationError: If changes touch bookkeeping keys
        """
        collection = Collection.parse(collection)
        self._reject_bookkeeping(collection, changes)
        before = self._require(collection, record_id)
        after = before.with_fields(changes)
        values = dict(changes)
        return await self._replace(
            "update",
            collection,
            before,
            after,
            lambda: self.gateway.update_fields(collection, record_id, values),
        )

    async def save(self, collection: Collection | str, record: Record) -> OperationOutcome:
        """Replace a whole record (same id, same session, same lifecycle state).

        Raises:
            RecordNotFoundError: If the record does not exist
            SessionReassignmentError: If the session differs
            InvariantViolationError: If the lifecycle state differs
        """
        collection = Collection.parse(collection)
        before = self._require(collection, record.id)
        if (before.is_deleted, before.deleted_at) != (record.is_deleted, record.deleted_at):
            raise InvariantViolationError(
                "Use soft_delete/restore to change the lifecycle state of a record",
                collection=collection.value,
                record_id=record.id,
            )
        return await self._replace(
            "save",
            collection,
            before,
            record,
            lambda: self.gateway.upsert(collection, record),
        )

    async def soft_delete(self, collection: Collection | str, record_id: str) -> OperationOutcome:
        """Move a record to the recycle bin.

        Raises:
            RecordNotFoundError: If the record does not exist
            InvariantViolationError: If it is already deleted
        """
        collection = Collection.parse(collection)
        before = self._require(collection, record_id)
        if before.is_deleted:
            raise InvariantViolationError(
                f"Record '{record_id}' is already in the recycle bin",
                collection=collection.value,
                record_id=record_id,
            )
        after = before.soft_deleted(self.clock())
        values = {"isDeleted": True, "deletedAt": format_timestamp(after.deleted_at)}
        return await self._replace(
            "soft_delete",
            collection,
            before,
            after,
            lambda: self.gateway.update_fields(collection, record_id, values),
        )

    async def restore(self, collection: Collection | str, record_id: str) -> OperationOutcome:
        """Bring a record back from the recycle bin.

        Raises:
            RecordNotFoundError: If the record does not exist
            InvariantViolationError: If it is not deleted
        """
        collection = Collection.parse(collection)
        before = self._require(collection, record_id)
        if not before.is_deleted:
            raise InvariantViolationError(
                f"Record '{record_id}' is not in the recycle bin",
                collection=collection.value,
                record_id=record_id,
            )
        after = before.restored()
        values = {"isDeleted": False, "deletedAt": None}
        return await self._replace(
            "restore",
            collection,
            before,
            after,
            lambda: self.gateway.update_fields(collection, record_id, values),
        )

    async def purge(self, collection: Collection | str, record_id: str) -> OperationOutcome:
        """Irreversibly delete a record from the recycle bin.

        The remote row goes first; the local copy is dropped only once the
        remote store confirms, so a failed delete never loses local data.

        Raises:
            RecordNotFoundError: If the record does not exist
            InvariantViolationError: If it is not in the recycle bin
        """
        collection = Collection.parse(collection)
        record = self._require(collection, record_id)
        if not record.is_deleted:
            raise InvariantViolationError(
                f"Record '{record_id}' must be in the recycle bin before it is purged",
                collection=collection.value,
                record_id=record_id,
            )

        result = await self.gateway.delete_by_ids(collection, [record_id])
        if not result.success:
            return self._failed("purge", collection, record, result)

        self.store.apply(collection, RemoveRecords.of([record_id]))
        return self._succeeded("purge", collection, record)

    # Configuration operations

    async def save_config(self, config: AppConfig) -> OperationOutcome:
        """Replace the configuration record locally and remotely."""
        previous = self.store.config
        self.store.set_config(config)

        result = await self.gateway.save_config(config)
        if result.success:
            logger.info("Configuration saved")
            self.notifier("Settings saved", Severity.SUCCESS)
            return OperationOutcome(success=True, operation="save_config")

        if self.store.config is config:
            self.store.set_config(previous)
        kind = classify_remote_error(result.error)
        self.notifier(failure_message(kind, "saving settings", result.error), Severity.ERROR)
        return OperationOutcome(
            success=False,
            operation="save_config",
            error=result.error,
            error_kind=kind,
        )

    async def factory_reset(self) -> OperationOutcome:
        """Delete every record remotely, then reset the local store.

        Local state is only reset when every table was cleared.
        """
        collections = list(Collection)
        results = await asyncio.gather(*(self.gateway.delete_all(c) for c in collections))
        failures = [(c, r) for c, r in zip(collections, results) if not r.success]
        if not failures:
            self.store.reset()
            logger.info("Factory reset complete")
            self.notifier("Factory reset complete", Severity.SUCCESS)
            return OperationOutcome(success=True, operation="factory_reset")

        collection, first = failures[0]
        kind = classify_remote_error(first.error)
        logger.warning(
            "Factory reset failed",
            extra={"failed_collections": [c.value for c, _ in failures]},
        )
        self.notifier(
            failure_message(kind, f"resetting {collection.value}", first.error),
            Severity.ERROR,
        )
        return OperationOutcome(
            success=False,
            operation="factory_reset",
            collection=collection,
            error=first.error,
            error_kind=kind,
        )

    # Internals

    async def _replace(
        self,
        operation: str,
        collection: Collection,
        before: Record,
        after: Record,
        dispatch: Callable[[], Any],
    ) -> OperationOutcome:
        self.store.apply(collection, ReplaceRecord(after))

        result = await dispatch()
        if result.success:
            return self._succeeded(operation, collection, after)

        self._rollback(collection, before, after)
        return self._failed(operation, collection, after, result)

    def _rollback(self, collection: Collection, before: Record, after: Record) -> None:
        """Revert the values this operation wrote, where they still hold them.

        Works on typed attributes so timestamps keep their full precision.
        isDeleted and deletedAt are reverted together or not at all.
        """
        current = self.store.find(collection, after.id)
        if current is None:
            logger.info(
                "Nothing to roll back; record no longer present",
                extra={"collection": collection.value, "record_id": after.id},
            )
            return

        fields = dict(current.fields)
        for key in before.fields.keys() | after.fields.keys():
            written = after.fields.get(key, _MISSING)
            if before.fields.get(key, _MISSING) == written:
                continue
            if current.fields.get(key, _MISSING) != written:
                continue
            if key in before.fields:
                fields[key] = before.fields[key]
            else:
                fields.pop(key, None)

        is_deleted, deleted_at = current.is_deleted, current.deleted_at
        written = (after.is_deleted, after.deleted_at)
        previous = (before.is_deleted, before.deleted_at)
        if previous != written and (is_deleted, deleted_at) == written:
            is_deleted, deleted_at = previous

        reverted = replace(current, fields=fields, is_deleted=is_deleted, deleted_at=deleted_at)
        if reverted != current:
            self.store.apply(collection, ReplaceRecord(reverted))
            logger.info(
                "Rolled back optimistic change",
                extra={"collection": collection.value, "record_id": after.id},
            )

    def _require(self, collection: Collection, record_id: str) -> Record:
        record = self.store.find(collection, record_id)
        if record is None:
            raise RecordNotFoundError(collection.value, record_id)
        return record

    @staticmethod
    def _reject_bookkeeping(collection: Collection, fields: dict[str, Any]) -> None:
        leaked = BOOKKEEPING_KEYS & fields.keys()
        if leaked:
            raise InvariantViolationError(
                f"Bookkeeping fields cannot be set directly: {sorted(leaked)}",
                collection=collection.value,
            )

    def _succeeded(self, operation: str, collection: Collection, record: Record) -> OperationOutcome:
        _, done = _DESCRIPTIONS[operation]
        logger.info(
            f"{operation} confirmed",
            extra={"collection": collection.value, "record_id": record.id},
        )
        severity = Severity.INFO if operation == "soft_delete" else Severity.SUCCESS
        self.notifier(f"{collection.spec.label} {record.id} {done}", severity)
        return OperationOutcome(
            success=True, operation=operation, collection=collection, record=record
        )

    def _failed(
        self,
        operation: str,
        collection: Collection,
        record: Record,
        result: GatewayResult[Any],
    ) -> OperationOutcome:
        kind = classify_remote_error(result.error)
        doing, _ = _DESCRIPTIONS[operation]
        action = f"{doing} {collection.spec.label.lower()} {record.id}"
        self.notifier(failure_message(kind, action, result.error), Severity.ERROR)
        return OperationOutcome(
            success=False,
            operation=operation,
            collection=collection,
            record=record,
            error=result.error,
            error_kind=kind,
        )
