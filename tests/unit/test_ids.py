"""
Unit tests for record id generation.
"""

from backoffice.schoolsync.store.records import Collection
from backoffice.schoolsync.sync.ids import SequentialIdScheme, TimestampIdScheme, scheme_for


class TestSequentialIdScheme:
    """Tests for SequentialIdScheme."""

    def test_first_id(self):
        assert SequentialIdScheme("ST", 2).next_id(set()) == "ST01"

    def test_next_after_highest(self):
        scheme = SequentialIdScheme("EMP", 3)

        assert scheme.next_id({"EMP001", "EMP007", "EMP003"}) == "EMP008"

    def test_width_grows_past_padding(self):
        assert SequentialIdScheme("ST", 2).next_id({"ST99"}) == "ST100"

    def test_ignores_ids_without_digits(self):
        assert SequentialIdScheme("ST", 2).next_id({"legacy"}) == "ST01"

    def test_successive_calls_see_new_ids(self):
        scheme = SequentialIdScheme("ST", 2)
        existing: set = set()

        for _ in range(3):
            existing.add(scheme.next_id(existing))

        assert existing == {"ST01", "ST02", "ST03"}


class TestTimestampIdScheme:
    """Tests for TimestampIdScheme."""

    def test_uses_clock(self):
        scheme = TimestampIdScheme("FEE-", clock_ms=lambda: 1_700_000_000_000)

        assert scheme.next_id(set()) == "FEE-1700000000000"

    def test_same_millisecond_is_bumped(self):
        scheme = TimestampIdScheme("FEE-", clock_ms=lambda: 1000)

        ids = [scheme.next_id(set()) for _ in range(3)]

        assert ids == ["FEE-1000", "FEE-1001", "FEE-1002"]

    def test_skips_existing_ids(self):
        scheme = TimestampIdScheme("EXP-", clock_ms=lambda: 1000)

        assert scheme.next_id({"EXP-1000", "EXP-1001"}) == "EXP-1002"


class TestSchemeFor:
    """Tests for scheme_for."""

    def test_collection_schemes(self):
        assert isinstance(scheme_for(Collection.STUDENTS.spec), SequentialIdScheme)
        assert isinstance(scheme_for(Collection.EMPLOYEES.spec), SequentialIdScheme)
        assert isinstance(scheme_for(Collection.FEES.spec), TimestampIdScheme)
        assert scheme_for(Collection.EXPENSES.spec).next_id(set()).startswith("EXP-")
