"""
Base protocol and types for the remote store client.

This module defines the RemoteStoreClient protocol that every backend must
implement: a table-oriented client exposing select, insert, upsert,
update and delete per named table, each returning either data or a
textual error.

Invariants:
    - Table names are opaque strings (students, employees, fees,
      expenses, config)
    - Rows are JSON-compatible dictionaries keyed by "id"
    - A remote-side rejection is reported as RemoteResult.error, never
      raised; exceptions are reserved for transport failures

How to change safely:
    - Protocol changes require updating all implementations
    - Keep error text raw; classification lives in sync.classify
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)
import logging

if TYPE_CHECKING:
    from ..config import SyncConfig

logger = logging.getLogger(__name__)

CONFIG_TABLE = "config"


class RemoteStoreError(Exception):
    """Base exception for remote store transport failures."""
    pass


class RemoteConnectionError(RemoteStoreError):
    """The remote store could not be reached."""
    pass


@dataclass
class RemoteResult:
    """Outcome of a single remote call.

    Attributes:
        data: Returned rows (for select) or None
        error: Raw error text from the remote store, None on success
    """
    data: Optional[List[Dict[str, Any]]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, message: str) -> RemoteResult:
        return cls(data=None, error=message or "Unknown remote error")


@runtime_checkable
class RemoteStoreClient(Protocol):
    """Protocol for remote store backends.

    Example:
        >>> client = RestRemoteStore(settings)
        >>> await client.connect()
        >>> result = await client.select("students")
        >>> if result.ok:
        ...     print(len(result.data))
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection.

        Raises:
            RemoteConnectionError: If the backend cannot be reached
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""
        ...

    @abstractmethod
    async def select(
        self, table: str, match_ids: Optional[Sequence[Any]] = None
    ) -> RemoteResult:
        """Fetch rows of a table, optionally restricted to ids."""
        ...

    @abstractmethod
    async def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> RemoteResult:
        """Insert new rows. Fails if an id already exists."""
        ...

    @abstractmethod
    async def upsert(self, table: str, rows: Sequence[Dict[str, Any]]) -> RemoteResult:
        """Insert or replace rows by id."""
        ...

    @abstractmethod
    async def update(
        self, table: str, values: Dict[str, Any], match_ids: Sequence[Any]
    ) -> RemoteResult:
        """Set columns on the rows with the given ids."""
        ...

    @abstractmethod
    async def delete(self, table: str, match_ids: Sequence[Any]) -> RemoteResult:
        """Delete the rows with the given ids."""
        ...

    @abstractmethod
    async def delete_all(self, table: str) -> RemoteResult:
        """Delete every row of a table."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the client is connected."""
        ...


def create_remote_client(config: "SyncConfig") -> RemoteStoreClient:
    """Factory function to create a remote store client from configuration.

    Args:
        config: Sync configuration

    Returns:
        Appropriate RemoteStoreClient implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import RemoteBackend
    from .memory import InMemoryRemoteStore
    from .rest import RemoteSettings, RestRemoteStore

    if config.remote.backend == RemoteBackend.REST:
        return RestRemoteStore(RemoteSettings())
    elif config.remote.backend == RemoteBackend.MEMORY:
        return InMemoryRemoteStore()
    else:
        raise ValueError(f"Unsupported remote backend: {config.remote.backend}")
