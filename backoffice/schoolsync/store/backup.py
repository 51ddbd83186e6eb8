"""
Backup export/import for the Entity Store.

A backup is a single JSON document holding every collection and the
configuration sections:

    {
        "students": [...], "employees": [...], "fees": [...], "expenses": [...],
        "classes": [...], "feeCategories": [...],
        "schoolProfile": {...}, "userProfile": {...}, "settings": {...}
    }

Invariants:
    - Import validates the whole document before touching the store
    - A rejected import leaves the store exactly as it was
    - Import errors are raised to the caller, never sent as notifications
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import BackupFormatError, InvariantViolationError
from .entity_store import EntityStore, StoreSnapshot
from .records import AppConfig, Collection, Record

logger = logging.getLogger(__name__)


class BackupDocument(BaseModel):
    """Schema of a backup document.

    The four collections, schoolProfile and settings are required.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    students: list[dict[str, Any]]
    employees: list[dict[str, Any]]
    fees: list[dict[str, Any]]
    expenses: list[dict[str, Any]]
    school_profile: dict[str, Any] = Field(alias="schoolProfile")
    settings: dict[str, Any]
    user_profile: Optional[dict[str, Any]] = Field(default=None, alias="userProfile")
    classes: Optional[list[str]] = None
    fee_categories: Optional[list[str]] = Field(default=None, alias="feeCategories")

    def rows(self, collection: Collection) -> list[dict[str, Any]]:
        return getattr(self, collection.value)


def export_backup(store: EntityStore) -> str:
    """Serialize the full store to a backup document."""
    config = store.config
    document: dict[str, Any] = {
        c.value: [r.to_row() for r in store.get(c)] for c in Collection
    }
    document.update(
        {
            "classes": list(config.classes),
            "feeCategories": list(config.fee_categories),
            "schoolProfile": config.school_profile,
            "userProfile": config.user_profile,
            "settings": config.settings,
        }
    )
    return json.dumps(document, indent=2, ensure_ascii=False)


def parse_backup(text: str | bytes) -> StoreSnapshot:
    """Validate a backup document and build a snapshot from it.

    Raises:
        BackupFormatError: If the document is not a valid backup
    """
    try:
        document = BackupDocument.model_validate_json(text)
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or '<document>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise BackupFormatError("Invalid backup document", errors=problems) from e

    problems: list[str] = []
    collections: dict[Collection, tuple[Record, ...]] = {}
    for collection in Collection:
        records: list[Record] = []
        seen: set[str] = set()
        for index, row in enumerate(document.rows(collection)):
            try:
                record = Record.from_row(row)
            except InvariantViolationError as e:
                problems.append(f"{collection.value}[{index}]: {e.message}")
                continue
            if record.id in seen:
                problems.append(f"{collection.value}[{index}]: duplicate id '{record.id}'")
                continue
            seen.add(record.id)
            records.append(record)
        collections[collection] = tuple(records)

    if problems:
        raise BackupFormatError("Invalid backup document", errors=problems)

    defaults = AppConfig.default()
    config = AppConfig(
        school_profile=document.school_profile,
        user_profile=document.user_profile or defaults.user_profile,
        settings=document.settings,
        classes=document.classes if document.classes is not None else defaults.classes,
        fee_categories=(
            document.fee_categories
            if document.fee_categories is not None
            else defaults.fee_categories
        ),
    )
    return StoreSnapshot(collections=collections, config=config)


def import_backup(store: EntityStore, text: str | bytes) -> StoreSnapshot:
    """Replace the store contents with a backup document.

    Raises:
        BackupFormatError: If the document is rejected (store untouched)
    """
    snapshot = parse_backup(text)
    store.load(snapshot)
    logger.info(
        "Backup imported",
        extra={c.value: len(snapshot.get(c)) for c in Collection},
    )
    return snapshot
