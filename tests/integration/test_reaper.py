"""
Integration tests for the Tombstone Reaper.

Tests cover:
- Retention boundary (30 days purged, 29 days kept)
- Remote-before-local ordering and failure handling
- Summary notification
- Periodic loop start/stop
"""

import asyncio
from datetime import timedelta

import pytest

from backoffice.schoolsync.notify import Severity
from backoffice.schoolsync.reaper import TombstoneReaper
from backoffice.schoolsync.store.entity_store import InsertRecord
from backoffice.schoolsync.store.records import Collection, Record


def put(store, remote, collection, record):
    store.apply(collection, InsertRecord(record))
    remote.seed(collection.value, [record.to_row()])


class TestTombstoneReaper:
    """Tests for TombstoneReaper."""

    @pytest.fixture
    def reaper(self, store, gateway, notifications, clock):
        return TombstoneReaper(store, gateway, notifications, clock=clock)

    def test_candidate_boundary(self, reaper, clock):
        now = clock()
        exactly_30 = Record(id="FEE-1").soft_deleted(now - timedelta(days=30))
        just_under = Record(id="FEE-2").soft_deleted(now - timedelta(days=30) + timedelta(seconds=1))
        days_29 = Record(id="FEE-3").soft_deleted(now - timedelta(days=29))

        assert reaper.is_candidate(exactly_30, now)
        assert not reaper.is_candidate(just_under, now)
        assert not reaper.is_candidate(days_29, now)

    def test_active_records_are_never_candidates(self, reaper):
        assert not reaper.is_candidate(Record(id="FEE-1"))

    def test_days_until_purge(self, reaper, clock):
        now = clock()

        fresh = Record(id="A").soft_deleted(now)
        partial = Record(id="B").soft_deleted(now - timedelta(days=29, hours=12))
        expired = Record(id="C").soft_deleted(now - timedelta(days=45))

        assert reaper.days_until_purge(fresh, now) == 30
        assert reaper.days_until_purge(partial, now) == 1
        assert reaper.days_until_purge(expired, now) == 0
        assert reaper.days_until_purge(Record(id="D"), now) is None

    @pytest.mark.asyncio
    async def test_run_purges_expired_only(self, reaper, store, remote, clock, notifications):
        now = clock()
        put(store, remote, Collection.FEES, Record(id="FEE-1").soft_deleted(now - timedelta(days=30)))
        put(store, remote, Collection.FEES, Record(id="FEE-2").soft_deleted(now - timedelta(days=29)))
        put(store, remote, Collection.FEES, Record(id="FEE-3"))
        put(store, remote, Collection.STUDENTS, Record(id="ST01").soft_deleted(now - timedelta(days=90)))

        report = await reaper.run()

        assert report.total == 2
        assert report.purged == {Collection.STUDENTS: ["ST01"], Collection.FEES: ["FEE-1"]}
        assert store.ids(Collection.FEES) == {"FEE-2", "FEE-3"}
        assert store.get(Collection.STUDENTS) == ()
        assert sorted(remote.row_ids("fees")) == ["FEE-2", "FEE-3"]
        assert [n.message for n in notifications.history] == [
            "Auto-cleanup: removed 2 items older than 30 days"
        ]
        assert notifications.history[0].severity is Severity.INFO

    @pytest.mark.asyncio
    async def test_run_with_nothing_to_do_is_silent(self, reaper, store, remote, notifications):
        put(store, remote, Collection.FEES, Record(id="FEE-1"))

        report = await reaper.run()

        assert report.total == 0
        assert notifications.history == []
        assert remote.calls_for("delete") == []

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_local(self, reaper, store, remote, clock):
        old = clock() - timedelta(days=40)
        put(store, remote, Collection.FEES, Record(id="FEE-1").soft_deleted(old))
        put(store, remote, Collection.EXPENSES, Record(id="EXP-1").soft_deleted(old))
        remote.fail_next("fees", "delete", "timeout")

        report = await reaper.run()

        assert report.failed == {Collection.FEES: "timeout"}
        assert report.purged == {Collection.EXPENSES: ["EXP-1"]}
        assert store.ids(Collection.FEES) == {"FEE-1"}
        assert remote.row_ids("fees") == ["FEE-1"]

        retry = await reaper.run()
        assert retry.purged == {Collection.FEES: ["FEE-1"]}

    @pytest.mark.asyncio
    async def test_clock_advance_makes_record_eligible(self, reaper, store, remote, clock):
        put(store, remote, Collection.FEES, Record(id="FEE-1").soft_deleted(clock()))

        assert (await reaper.run()).total == 0

        clock.advance(days=30)

        assert (await reaper.run()).total == 1

    @pytest.mark.asyncio
    async def test_custom_retention(self, store, gateway, remote, notifications, clock):
        reaper = TombstoneReaper(store, gateway, notifications, retention_days=7, clock=clock)
        put(store, remote, Collection.FEES, Record(id="FEE-1").soft_deleted(clock() - timedelta(days=7)))

        await reaper.run()

        assert notifications.history[0].message == "Auto-cleanup: removed 1 items older than 7 days"

    @pytest.mark.asyncio
    async def test_start_and_stop(self, reaper, store, remote, clock):
        put(store, remote, Collection.FEES, Record(id="FEE-1").soft_deleted(clock() - timedelta(days=31)))

        task = asyncio.create_task(reaper.start(0.01))
        for _ in range(100):
            if not store.get(Collection.FEES):
                break
            await asyncio.sleep(0.01)
        await reaper.stop()
        await asyncio.wait_for(task, timeout=1)

        assert store.get(Collection.FEES) == ()
        assert reaper.stats["run_count"] >= 1
        assert not reaper.stats["running"]
