"""
Record id generation.

Ids are assigned locally at creation time, before the remote insert is
dispatched, so they can never depend on the outcome of that call.

Two schemes:
- SequentialIdScheme: human-facing ids (ST01, EMP001). Next value is the
  largest trailing integer among every existing id, soft-deleted records
  included, plus one.
- TimestampIdScheme: high write-frequency collections (FEE-<ms>,
  EXP-<ms>). Strictly increasing per scheme instance, so creates issued
  within the same millisecond still get distinct ids.
"""

from __future__ import annotations

import re
import time
from typing import Callable, Collection as Ids, Protocol

from ..store.records import CollectionSpec

_TRAILING_DIGITS = re.compile(r"(\d+)$")


class IdScheme(Protocol):
    def next_id(self, existing: Ids[str]) -> str:
        ...


class SequentialIdScheme:
    """Zero-padded counter derived from existing ids."""

    def __init__(self, prefix: str, width: int) -> None:
        self.prefix = prefix
        self.width = width

    def next_id(self, existing: Ids[str]) -> str:
        highest = 0
        for record_id in existing:
            match = _TRAILING_DIGITS.search(record_id)
            if match:
                highest = max(highest, int(match.group(1)))
        candidate = highest + 1
        new_id = f"{self.prefix}{candidate:0{self.width}d}"
        while new_id in existing:
            candidate += 1
            new_id = f"{self.prefix}{candidate:0{self.width}d}"
        return new_id


class TimestampIdScheme:
    """Millisecond-timestamp ids, bumped past collisions."""

    def __init__(self, prefix: str, clock_ms: Callable[[], int] | None = None) -> None:
        self.prefix = prefix
        self._clock_ms = clock_ms or (lambda: time.time_ns() // 1_000_000)
        self._last = 0

    def next_id(self, existing: Ids[str]) -> str:
        candidate = max(self._clock_ms(), self._last + 1)
        while f"{self.prefix}{candidate}" in existing:
            candidate += 1
        self._last = candidate
        return f"{self.prefix}{candidate}"


def scheme_for(spec: CollectionSpec) -> IdScheme:
    """Build the id scheme a collection uses."""
    if spec.id_width is not None:
        return SequentialIdScheme(spec.id_prefix, spec.id_width)
    return TimestampIdScheme(spec.id_prefix)
