"""
Store module for SchoolSync - the local working copy.

This module handles:
- Record and configuration types
- The in-memory Entity Store (get/apply/replace)
- Backup export and validated import

Invariants:
    - The store never performs I/O
    - Record ids are unique per collection
    - deletedAt is set exactly when isDeleted is true
"""

from .backup import BackupDocument, export_backup, import_backup, parse_backup
from .entity_store import (
    EntityStore,
    InsertRecord,
    Mutation,
    RemoveRecords,
    ReplaceRecord,
    StoreSnapshot,
)
from .records import (
    COLLECTION_SPECS,
    AppConfig,
    Collection,
    CollectionSpec,
    Record,
    format_timestamp,
    parse_timestamp,
    utcnow,
)

__all__ = [
    "AppConfig",
    "BackupDocument",
    "COLLECTION_SPECS",
    "Collection",
    "CollectionSpec",
    "EntityStore",
    "InsertRecord",
    "Mutation",
    "Record",
    "RemoveRecords",
    "ReplaceRecord",
    "StoreSnapshot",
    "export_backup",
    "format_timestamp",
    "import_backup",
    "parse_backup",
    "parse_timestamp",
    "utcnow",
]
