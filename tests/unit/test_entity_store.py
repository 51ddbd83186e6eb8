"""
Unit tests for the Entity Store.

Tests cover:
- Insert / replace / remove mutations
- Id uniqueness and session immutability
- Wholesale replacement and atomic load
"""

import pytest

from backoffice.schoolsync.errors import (
    DuplicateIdError,
    RecordNotFoundError,
    SessionReassignmentError,
)
from backoffice.schoolsync.store.entity_store import (
    EntityStore,
    InsertRecord,
    RemoveRecords,
    ReplaceRecord,
    StoreSnapshot,
)
from backoffice.schoolsync.store.records import AppConfig, Collection, Record


def student(record_id: str, name: str = "Asha", session: str = "2024-2025") -> Record:
    return Record(id=record_id, session=session, fields={"name": name})


class TestEntityStore:
    """Tests for EntityStore."""

    @pytest.fixture
    def store(self):
        return EntityStore()

    def test_starts_empty_with_default_config(self, store):
        for collection in Collection:
            assert store.get(collection) == ()
        assert store.config == AppConfig.default()

    def test_insert_appends_in_order(self, store):
        store.apply(Collection.STUDENTS, InsertRecord(student("ST01")))
        store.apply(Collection.STUDENTS, InsertRecord(student("ST02")))

        assert [r.id for r in store.get("students")] == ["ST01", "ST02"]

    def test_insert_duplicate_rejected(self, store):
        store.apply(Collection.STUDENTS, InsertRecord(student("ST01")))

        with pytest.raises(DuplicateIdError):
            store.apply(Collection.STUDENTS, InsertRecord(student("ST01", "Other")))

        assert len(store.get(Collection.STUDENTS)) == 1

    def test_same_id_in_different_collections(self, store):
        store.apply(Collection.STUDENTS, InsertRecord(Record(id="X1")))
        store.apply(Collection.FEES, InsertRecord(Record(id="X1")))

        assert store.find(Collection.FEES, "X1") is not None

    def test_replace_keeps_position(self, store):
        for record_id in ("ST01", "ST02", "ST03"):
            store.apply(Collection.STUDENTS, InsertRecord(student(record_id)))

        store.apply(Collection.STUDENTS, ReplaceRecord(student("ST02", "Ravi")))

        records = store.get(Collection.STUDENTS)
        assert [r.id for r in records] == ["ST01", "ST02", "ST03"]
        assert records[1].fields["name"] == "Ravi"

    def test_replace_unknown(self, store):
        with pytest.raises(RecordNotFoundError):
            store.apply(Collection.STUDENTS, ReplaceRecord(student("ST09")))

    def test_replace_cannot_change_session(self, store):
        store.apply(Collection.STUDENTS, InsertRecord(student("ST01")))

        with pytest.raises(SessionReassignmentError):
            store.apply(
                Collection.STUDENTS, ReplaceRecord(student("ST01", session="2025-2026"))
            )

        assert store.find(Collection.STUDENTS, "ST01").session == "2024-2025"

    def test_remove_ignores_unknown_ids(self, store):
        store.apply(Collection.STUDENTS, InsertRecord(student("ST01")))
        store.apply(Collection.STUDENTS, InsertRecord(student("ST02")))

        store.apply(Collection.STUDENTS, RemoveRecords.of(["ST01", "ST99"]))

        assert store.ids(Collection.STUDENTS) == {"ST02"}

    def test_unsupported_mutation(self, store):
        with pytest.raises(TypeError):
            store.apply(Collection.STUDENTS, "drop everything")

    def test_version_bumps_on_write(self, store):
        before = store.version
        store.apply(Collection.FEES, InsertRecord(Record(id="FEE-1")))
        store.set_config(AppConfig.default())

        assert store.version == before + 2

    def test_replace_collection(self, store):
        store.apply(Collection.FEES, InsertRecord(Record(id="FEE-1")))

        store.replace(Collection.FEES, [Record(id="FEE-2"), Record(id="FEE-3")])

        assert store.ids(Collection.FEES) == {"FEE-2", "FEE-3"}

    def test_replace_collection_rejects_duplicates(self, store):
        store.apply(Collection.FEES, InsertRecord(Record(id="FEE-1")))

        with pytest.raises(DuplicateIdError):
            store.replace(Collection.FEES, [Record(id="FEE-2"), Record(id="FEE-2")])

        assert store.ids(Collection.FEES) == {"FEE-1"}

    def test_load_is_atomic(self, store):
        store.apply(Collection.STUDENTS, InsertRecord(student("ST01")))
        bad = StoreSnapshot(
            collections={
                Collection.STUDENTS: (student("ST05"),),
                Collection.FEES: (Record(id="FEE-1"), Record(id="FEE-1")),
            }
        )

        with pytest.raises(DuplicateIdError):
            store.load(bad)

        assert store.ids(Collection.STUDENTS) == {"ST01"}
        assert store.get(Collection.FEES) == ()

    def test_snapshot_then_load_restores_state(self, store):
        store.apply(Collection.STUDENTS, InsertRecord(student("ST01")))
        snapshot = store.snapshot()

        store.apply(Collection.STUDENTS, InsertRecord(student("ST02")))
        store.load(snapshot)

        assert store.ids(Collection.STUDENTS) == {"ST01"}

    def test_reset(self, store):
        store.apply(Collection.EXPENSES, InsertRecord(Record(id="EXP-1")))
        store.set_config(AppConfig.default().with_current_session("2030-2031"))

        store.reset()

        assert store.get(Collection.EXPENSES) == ()
        assert store.config == AppConfig.default()
