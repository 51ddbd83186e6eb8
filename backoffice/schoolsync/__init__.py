"""
SchoolSync - client-state reconciliation for a school back office.

This package keeps an in-memory working copy of the school's records
(students, employees, fee payments, expenses) in step with a remote
store:

    ┌──────────────┐  optimistic  ┌──────────────┐
    │     Sync     │─────────────▶│ Entity Store │◀──── Bootstrap Loader
    │  Coordinator │    apply     └──────────────┘      (startup load)
    └──────┬───────┘                     ▲
           │ dispatch                    │ local drop
           ▼                             │
    ┌──────────────┐              ┌──────┴───────┐
    │ Persistence  │◀─────────────│  Tombstone   │
    │   Gateway    │ remote purge │    Reaper    │
    └──────┬───────┘              └──────────────┘
           ▼
      remote store (PostgREST)

Invariants:
    - The remote store is authoritative; the Entity Store is a cache that
      is ahead of it only while an operation is in flight
    - Records are soft-deleted first and purged 30 days later
    - Every record carries the academic session it was created in

How to change safely:
    - New collections need a CollectionSpec and a remote table
    - Error text is only ever inspected by sync.classify
"""

from ._version import __version__

__all__ = ["__version__"]
