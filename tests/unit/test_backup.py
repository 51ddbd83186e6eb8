"""
Unit tests for backup export/import.

Tests cover:
- Export document shape
- Import of valid documents
- Rejection of incomplete or malformed documents (store untouched)
"""

import json
from datetime import datetime, timezone

import pytest

from backoffice.schoolsync.errors import BackupFormatError
from backoffice.schoolsync.store.backup import export_backup, import_backup, parse_backup
from backoffice.schoolsync.store.entity_store import EntityStore, InsertRecord
from backoffice.schoolsync.store.records import AppConfig, Collection, Record

DELETED_AT = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


def populated_store() -> EntityStore:
    store = EntityStore()
    store.apply(
        Collection.STUDENTS,
        InsertRecord(Record(id="ST01", session="2024-2025", fields={"name": "Asha"})),
    )
    store.apply(
        Collection.FEES,
        InsertRecord(
            Record(
                id="FEE-1",
                session="2024-2025",
                fields={"studentId": "ST01", "amount": 500},
            ).soft_deleted(DELETED_AT)
        ),
    )
    return store


class TestExportBackup:
    """Tests for export_backup."""

    def test_document_sections(self):
        document = json.loads(export_backup(populated_store()))

        assert set(document) == {
            "students",
            "employees",
            "fees",
            "expenses",
            "classes",
            "feeCategories",
            "schoolProfile",
            "userProfile",
            "settings",
        }
        assert document["fees"][0] == {
            "id": "FEE-1",
            "session": "2024-2025",
            "isDeleted": True,
            "deletedAt": "2024-05-01T08:30:00.000Z",
            "studentId": "ST01",
            "amount": 500,
        }

    def test_export_is_deterministic(self):
        store = populated_store()

        assert export_backup(store) == export_backup(store)


class TestImportBackup:
    """Tests for parse_backup / import_backup."""

    def test_import_replaces_store(self):
        text = export_backup(populated_store())
        target = EntityStore()
        target.apply(Collection.EXPENSES, InsertRecord(Record(id="EXP-1")))

        import_backup(target, text)

        assert target.ids(Collection.STUDENTS) == {"ST01"}
        assert target.get(Collection.EXPENSES) == ()
        assert target.find(Collection.FEES, "FEE-1").deleted_at == DELETED_AT

    def test_export_import_export_is_stable(self):
        text = export_backup(populated_store())
        target = EntityStore()

        import_backup(target, text)

        assert export_backup(target) == text

    def test_optional_sections_default(self):
        document = {
            "students": [],
            "employees": [],
            "fees": [],
            "expenses": [],
            "schoolProfile": {"name": "Hill School", "currentSession": "2025-2026"},
            "settings": {"currency": "INR"},
        }

        snapshot = parse_backup(json.dumps(document))

        assert snapshot.config.current_session == "2025-2026"
        assert snapshot.config.classes == AppConfig.default().classes
        assert snapshot.config.user_profile == AppConfig.default().user_profile

    def test_missing_collection_rejected_and_store_untouched(self):
        store = populated_store()
        before = export_backup(store)
        document = json.loads(before)
        del document["students"]

        with pytest.raises(BackupFormatError) as exc_info:
            import_backup(store, json.dumps(document))

        assert any("students" in problem for problem in exc_info.value.errors)
        assert export_backup(store) == before

    def test_missing_school_profile_rejected(self):
        document = json.loads(export_backup(populated_store()))
        del document["schoolProfile"]

        with pytest.raises(BackupFormatError):
            parse_backup(json.dumps(document))

    def test_not_json_rejected(self):
        with pytest.raises(BackupFormatError):
            parse_backup("not a backup")

    def test_bad_row_rejected(self):
        document = json.loads(export_backup(populated_store()))
        document["fees"].append({"id": "FEE-2", "isDeleted": True})

        with pytest.raises(BackupFormatError) as exc_info:
            parse_backup(json.dumps(document))

        assert exc_info.value.errors[0].startswith("fees[1]")

    def test_duplicate_ids_rejected(self):
        document = json.loads(export_backup(populated_store()))
        document["students"].append(dict(document["students"][0]))

        with pytest.raises(BackupFormatError) as exc_info:
            parse_backup(json.dumps(document))

        assert "duplicate id 'ST01'" in exc_info.value.errors[0]
