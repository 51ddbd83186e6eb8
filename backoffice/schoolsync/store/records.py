"""
Record types for the SchoolSync Entity Store.

This module defines:
- Collection: the four lifecycle-managed collections
- CollectionSpec: per-collection metadata (label, id scheme, legacy rules)
- Record: the shared shape of students, employees, fee and expense records
- AppConfig: the singular configuration record

Wire format (remote rows and backup documents):
    {
        "id": "ST01",
        "session": "2024-2025",
        "isDeleted": false,
        "deletedAt": null,
        "name": "...",           # domain fields, opaque to the core
    }

Invariants:
    - deleted_at is set if and only if is_deleted is True
    - session is fixed at creation time
    - Records are immutable; every change produces a new Record
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..errors import InvariantViolationError, UnknownCollectionError

BOOKKEEPING_KEYS = frozenset({"id", "session", "isDeleted", "deletedAt"})


class Collection(Enum):
    """Lifecycle-managed collections. Values are remote table names."""

    STUDENTS = "students"
    EMPLOYEES = "employees"
    FEES = "fees"
    EXPENSES = "expenses"

    @classmethod
    def parse(cls, name: str | Collection) -> Collection:
        """Resolve a collection from its table name."""
        if isinstance(name, Collection):
            return name
        try:
            return cls(name)
        except ValueError:
            raise UnknownCollectionError(str(name)) from None

    @property
    def spec(self) -> CollectionSpec:
        return COLLECTION_SPECS[self]


@dataclass(frozen=True)
class CollectionSpec:
    """Static metadata for a collection.

    Attributes:
        label: Singular, human-facing name used in notifications
        id_prefix: Prefix of generated ids
        id_width: Zero-pad width for sequential ids; None selects
            timestamp-derived ids
        allows_sessionless: Records without a session count as part of
            every session (legacy data)
    """

    label: str
    id_prefix: str
    id_width: int | None = None
    allows_sessionless: bool = False


COLLECTION_SPECS: dict[Collection, CollectionSpec] = {
    Collection.STUDENTS: CollectionSpec(
        label="Student", id_prefix="ST", id_width=2, allows_sessionless=True
    ),
    Collection.EMPLOYEES: CollectionSpec(label="Employee", id_prefix="EMP", id_width=3),
    Collection.FEES: CollectionSpec(label="Fee record", id_prefix="FEE-"),
    Collection.EXPENSES: CollectionSpec(label="Expense", id_prefix="EXP-"),
}


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    """Format a timestamp the way the remote store and backups expect."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a wire timestamp into an aware UTC datetime.

    Raises:
        ValueError: If the value is not a recognizable timestamp
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class Record:
    """A lifecycle-managed record.

    Attributes:
        id: Unique within its collection, assigned locally at creation
        session: Academic session active at creation (None for legacy rows)
        is_deleted: Soft-delete flag
        deleted_at: When the record was soft-deleted
        fields: Domain payload (name, amount, date, status, ...)
    """

    id: str
    session: str | None = None
    is_deleted: bool = False
    deleted_at: datetime | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise InvariantViolationError(f"Record id must be a non-empty string, got {self.id!r}")
        if self.is_deleted != (self.deleted_at is not None):
            raise InvariantViolationError(
                f"Record '{self.id}': deletedAt must be set exactly when isDeleted is true",
                record_id=self.id,
            )
        if self.deleted_at is not None and self.deleted_at.tzinfo is None:
            object.__setattr__(self, "deleted_at", self.deleted_at.replace(tzinfo=timezone.utc))
        leaked = BOOKKEEPING_KEYS & self.fields.keys()
        if leaked:
            raise InvariantViolationError(
                f"Record '{self.id}': bookkeeping keys in domain fields: {sorted(leaked)}",
                record_id=self.id,
            )
        object.__setattr__(self, "fields", copy.deepcopy(dict(self.fields)))

    def to_row(self) -> dict[str, Any]:
        """Convert to the remote/backup row format."""
        row = copy.deepcopy(self.fields)
        row.update(
            {
                "id": self.id,
                "session": self.session,
                "isDeleted": self.is_deleted,
                "deletedAt": format_timestamp(self.deleted_at),
            }
        )
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Record:
        """Create from a remote/backup row.

        Raises:
            InvariantViolationError: If the row is malformed
        """
        if not isinstance(row, dict):
            raise InvariantViolationError(f"Row must be an object, got {type(row).__name__}")
        record_id = row.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise InvariantViolationError(f"Row has no usable id: {record_id!r}")
        try:
            deleted_at = parse_timestamp(row.get("deletedAt"))
        except ValueError as e:
            raise InvariantViolationError(
                f"Record '{record_id}': invalid deletedAt: {e}", record_id=record_id
            ) from e
        session = row.get("session")
        return cls(
            id=record_id,
            session=session if session else None,
            is_deleted=bool(row.get("isDeleted", False)),
            deleted_at=deleted_at,
            fields={k: v for k, v in row.items() if k not in BOOKKEEPING_KEYS},
        )

    def with_fields(self, changes: dict[str, Any]) -> Record:
        """Return a copy with domain fields merged in."""
        merged = dict(self.fields)
        merged.update(changes)
        return replace(self, fields=merged)

    def soft_deleted(self, at: datetime) -> Record:
        return replace(self, is_deleted=True, deleted_at=at)

    def restored(self) -> Record:
        return replace(self, is_deleted=False, deleted_at=None)


def _default_school_profile() -> dict[str, Any]:
    return {
        "name": "Education Hills",
        "address": "Mountain View Campus, City Center",
        "contactEmail": "admin@educationhills.edu",
        "motto": "Knowledge is Power",
        "website": "www.educationhills.edu",
        "sessions": ["2024-2025", "2025-2026"],
        "currentSession": "2024-2025",
        "departments": ["Science", "Commerce", "Arts"],
    }


def _default_user_profile() -> dict[str, Any]:
    return {
        "name": "Administrator",
        "role": "Principal",
        "email": "admin@school.com",
        "userId": "ADM-001",
    }


def _default_settings() -> dict[str, Any]:
    return {
        "currency": "INR",
        "enableNotifications": True,
        "enableAutoBackup": True,
        "notificationLimit": 10,
        "enableLateFees": False,
        "lateFeePercentage": 0,
        "lateFeeGracePeriod": 0,
    }


@dataclass(frozen=True)
class AppConfig:
    """The singular configuration record.

    Not lifecycle-managed: it is never soft-deleted or purged.

    Attributes:
        school_profile: School profile, including sessions and currentSession
        user_profile: Administrator profile
        settings: Application settings
        classes: Known class names
        fee_categories: Known fee categories
    """

    school_profile: dict[str, Any] = field(default_factory=_default_school_profile)
    user_profile: dict[str, Any] = field(default_factory=_default_user_profile)
    settings: dict[str, Any] = field(default_factory=_default_settings)
    classes: list[str] = field(default_factory=lambda: ["10-A", "11-B", "12-A"])
    fee_categories: list[str] = field(
        default_factory=lambda: ["Tuition", "Bus", "Books", "Uniform"]
    )

    ROW_ID = 1

    @classmethod
    def default(cls) -> AppConfig:
        return cls()

    @property
    def current_session(self) -> str | None:
        return self.school_profile.get("currentSession")

    @property
    def sessions(self) -> list[str]:
        return list(self.school_profile.get("sessions") or [])

    def with_current_session(self, session: str) -> AppConfig:
        """Return a copy with a different current session."""
        profile = dict(self.school_profile)
        profile["currentSession"] = session
        sessions = list(profile.get("sessions") or [])
        if session not in sessions:
            sessions.append(session)
        profile["sessions"] = sessions
        return replace(self, school_profile=profile)

    def to_row(self, updated_at: datetime | None = None) -> dict[str, Any]:
        """Convert to the remote config table row."""
        return {
            "id": self.ROW_ID,
            "school_profile": copy.deepcopy(self.school_profile),
            "user_profile": copy.deepcopy(self.user_profile),
            "settings": copy.deepcopy(self.settings),
            "classes": list(self.classes),
            "fee_categories": list(self.fee_categories),
            "updated_at": format_timestamp(updated_at or utcnow()),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any], fallback: AppConfig | None = None) -> AppConfig:
        """Create from a remote config row; missing sections use the fallback."""
        base = fallback or cls.default()
        return cls(
            school_profile=row.get("school_profile") or base.school_profile,
            user_profile=row.get("user_profile") or base.user_profile,
            settings=row.get("settings") or base.settings,
            classes=row.get("classes") or base.classes,
            fee_categories=row.get("fee_categories") or base.fee_categories,
        )
