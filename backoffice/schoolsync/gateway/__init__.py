"""
Remote persistence for SchoolSync.

This module provides:
- RemoteStoreClient protocol (table-oriented select/insert/upsert/update/delete)
- PersistenceGateway: collection-level operations returning GatewayResult
- Backends: REST (PostgREST / Supabase) and in-memory (for testing)

Invariants:
    - The gateway never raises for remote failures
    - The gateway never classifies error text
"""

from .base import (
    CONFIG_TABLE,
    RemoteConnectionError,
    RemoteResult,
    RemoteStoreClient,
    RemoteStoreError,
    create_remote_client,
)
from .gateway import GatewayResult, PersistenceGateway
from .memory import InMemoryRemoteStore
from .rest import RemoteSettings, RestRemoteStore

__all__ = [
    # Protocol and types
    "RemoteStoreClient",
    "RemoteResult",
    "RemoteStoreError",
    "RemoteConnectionError",
    "CONFIG_TABLE",
    # Factory
    "create_remote_client",
    # Gateway
    "PersistenceGateway",
    "GatewayResult",
    # Implementations
    "InMemoryRemoteStore",
    "RestRemoteStore",
    "RemoteSettings",
]
