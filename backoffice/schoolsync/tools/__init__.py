"""
CLI tools for SchoolSync administration.

This module provides command-line tools for:
- backup: Export the remote data set to a backup document, or validate one

Invariants:
    - Tools never write to the remote store
"""

from .backup_cli import BackupCLI

__all__ = ["BackupCLI"]
