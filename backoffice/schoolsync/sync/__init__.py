"""
Sync module for SchoolSync - optimistic mutation with remote reconciliation.

This module handles:
- Local id generation for new records
- Classification of remote error text
- The Sync Coordinator (apply, dispatch, reconcile)
"""

from .classify import ErrorKind, classify_remote_error
from .coordinator import OperationOutcome, SyncCoordinator, failure_message
from .ids import IdScheme, SequentialIdScheme, TimestampIdScheme, scheme_for

__all__ = [
    "ErrorKind",
    "IdScheme",
    "OperationOutcome",
    "SequentialIdScheme",
    "SyncCoordinator",
    "TimestampIdScheme",
    "classify_remote_error",
    "failure_message",
    "scheme_for",
]
