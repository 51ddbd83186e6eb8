"""
Error types for SchoolSync.

This module defines the exceptions raised synchronously to callers:
- SchoolSyncError: Base exception
- StoreError: Entity Store invariant violations
- BackupFormatError: Rejected backup document
- UnknownCollectionError: Unknown collection name

Remote failures are never raised from the coordinator, the bootstrap
loader or the reaper; they are converted to notifications instead.

Invariants:
    - All errors inherit from SchoolSyncError
    - Errors include context for debugging
    - A raised error means nothing was applied
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class SchoolSyncError(Exception):
    """Base exception for all SchoolSync errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SCHOOLSYNC_ERROR"
        self.details = details or {}


class StoreError(SchoolSyncError):
    """A local invariant of the Entity Store was violated."""

    def __init__(
        self,
        message: str,
        code: str = "STORE_ERROR",
        collection: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"collection": collection, "record_id": record_id},
        )
        self.collection = collection
        self.record_id = record_id


class DuplicateIdError(StoreError):
    """A record id already exists in its collection."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(
            f"Record '{record_id}' already exists in '{collection}'",
            code="DUPLICATE_ID",
            collection=collection,
            record_id=record_id,
        )


class RecordNotFoundError(StoreError):
    """No record with the given id exists in the collection."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(
            f"Record '{record_id}' not found in '{collection}'",
            code="NOT_FOUND",
            collection=collection,
            record_id=record_id,
        )


class SessionReassignmentError(StoreError):
    """A mutation tried to move a record to another session."""

    def __init__(
        self,
        collection: str,
        record_id: str,
        current: Optional[str],
        attempted: Optional[str],
    ) -> None:
        super().__init__(
            f"Record '{record_id}' in '{collection}' belongs to session "
            f"{current!r}; it cannot be moved to {attempted!r}",
            code="SESSION_REASSIGNMENT",
            collection=collection,
            record_id=record_id,
        )
        self.details.update({"current": current, "attempted": attempted})


class InvariantViolationError(StoreError):
    """A record or mutation is malformed.

    Raised when:
    - deletedAt is set without isDeleted (or the reverse)
    - A row has no usable id
    - An update touches bookkeeping fields
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="INVARIANT_VIOLATION",
            collection=collection,
            record_id=record_id,
        )


class BackupFormatError(SchoolSyncError):
    """A backup document was rejected.

    Attributes:
        errors: Individual problems found in the document
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(
            message,
            code="BACKUP_FORMAT",
            details={"errors": errors or []},
        )
        self.errors = errors or []


class UnknownCollectionError(SchoolSyncError):
    """Collection name is not one of the managed collections."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Unknown collection '{name}'",
            code="UNKNOWN_COLLECTION",
            details={"collection": name},
        )
        self.name = name
