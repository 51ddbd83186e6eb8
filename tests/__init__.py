"""
SchoolSync Test Suite.

This package contains:
- unit/: Unit tests (no network, no remote store)
- integration/: Coordinator, loader and reaper against the in-memory remote store
"""
