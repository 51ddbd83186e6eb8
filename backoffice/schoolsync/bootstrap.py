"""
Bootstrap Loader for SchoolSync.

Populates the Entity Store from the remote store at startup:
1. Fetch the four collections concurrently
2. Fetch the configuration row separately (failure tolerated)
3. Install everything that loaded in one atomic store swap
4. Run the Tombstone Reaper once

Failure handling:
    - Transient failures (network, timeouts, unclassified error text) fail
      the attempt; the whole batch is retried after a fixed delay. When the
      retry budget is spent the loader goes OFFLINE: the store keeps its
      defaults and one informational notice is shown.
    - Policy denial and schema mismatch are not retried. The affected
      collection keeps its defaults, the failure kind is kept as a
      persistent diagnostic and one error notification is emitted.

Invariants:
    - A failed attempt never leaves the store partially loaded
    - Exactly one diagnostic notification per load, whatever the number of
      failing collections
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from .gateway.gateway import GatewayResult, PersistenceGateway
from .notify import Notifier, Severity
from .reaper import TombstoneReaper
from .store.entity_store import EntityStore, StoreSnapshot
from .store.records import Collection
from .sync.classify import ErrorKind, classify_remote_error
from .sync.coordinator import failure_message

logger = logging.getLogger(__name__)

OFFLINE_NOTICE = "Offline mode: cloud sync is limited."


class BootstrapStatus(Enum):
    PENDING = "pending"
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class RetryPolicy:
    """Fixed-delay retry budget for the bootstrap batch.

    Attributes:
        max_retries: Retries after the first attempt
        delay_ms: Delay between attempts
        sleep: Async sleep, replaceable in tests
    """

    max_retries: int = 2
    delay_ms: int = 2000
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    async def wait(self) -> None:
        await self.sleep(self.delay_ms / 1000)


@dataclass
class BootstrapResult:
    """Outcome of a bootstrap load.

    Attributes:
        status: ONLINE or OFFLINE
        attempts: Number of attempts made
        diagnostic: Operator-level failure kind, if any collection hit one
        failed: Raw error text per collection left at its defaults
    """

    status: BootstrapStatus
    attempts: int
    diagnostic: Optional[ErrorKind] = None
    failed: dict[Collection, str] = field(default_factory=dict)

    @property
    def online(self) -> bool:
        return self.status is BootstrapStatus.ONLINE


class _TransientFailure(Exception):
    """Attempt-level failure that warrants a retry."""


class BootstrapLoader:
    """Loads the Entity Store from the remote store with retry.

    Example:
        >>> loader = BootstrapLoader(store, gateway, notifier, reaper=reaper)
        >>> result = await loader.load()
        >>> result.status
        <BootstrapStatus.ONLINE: 'online'>
    """

    def __init__(
        self,
        store: EntityStore,
        gateway: PersistenceGateway,
        notifier: Notifier,
        reaper: Optional[TombstoneReaper] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.notifier = notifier
        self.reaper = reaper
        self.retry_policy = retry_policy or RetryPolicy()

        self.status = BootstrapStatus.PENDING
        self.diagnostic: Optional[ErrorKind] = None

    async def load(self) -> BootstrapResult:
        """Run the bootstrap with the configured retry budget."""
        attempts = self.retry_policy.attempts
        for attempt in range(1, attempts + 1):
            try:
                failed = await self._attempt()
            except _TransientFailure as e:
                logger.warning(
                    f"Bootstrap attempt {attempt}/{attempts} failed: {e}",
                    extra={"attempt": attempt},
                )
                if attempt < attempts:
                    await self.retry_policy.wait()
                continue

            self.status = BootstrapStatus.ONLINE
            logger.info(
                "Bootstrap complete",
                extra={
                    "attempt": attempt,
                    "counts": {c.value: len(self.store.get(c)) for c in Collection},
                    "diagnostic": self.diagnostic.value if self.diagnostic else None,
                },
            )
            if self.reaper is not None:
                await self.reaper.run()
            return BootstrapResult(
                status=self.status,
                attempts=attempt,
                diagnostic=self.diagnostic,
                failed=failed,
            )

        self.status = BootstrapStatus.OFFLINE
        logger.warning("Bootstrap gave up; running offline", extra={"attempts": attempts})
        self.notifier(OFFLINE_NOTICE, Severity.INFO)
        return BootstrapResult(status=self.status, attempts=attempts)

    async def _attempt(self) -> dict[Collection, str]:
        """One batch fetch; returns collections left at defaults.

        Raises:
            _TransientFailure: If any part of the batch failed transiently
        """
        connected = await self.gateway.connect()
        if not connected.success:
            raise _TransientFailure(connected.error)

        collections = list(Collection)
        results: list[GatewayResult] = await asyncio.gather(
            *(self.gateway.fetch_all(c) for c in collections)
        )
        config_result = await self.gateway.fetch_config()
        if not config_result.success:
            logger.warning(f"Configuration fetch skipped: {config_result.error}")

        failed: dict[Collection, tuple[ErrorKind, str]] = {}
        for collection, result in zip(collections, results):
            if result.success:
                continue
            kind = classify_remote_error(result.error)
            if result.transport_failure or not kind.requires_operator:
                raise _TransientFailure(f"{collection.value}: {result.error}")
            failed[collection] = (kind, result.error or "")

        current = self.store.snapshot()
        loaded = {
            c: tuple(r.data or []) if r.success else current.get(c)
            for c, r in zip(collections, results)
        }
        config = current.config
        if config_result.success and config_result.data is not None:
            config = config_result.data
        self.store.load(StoreSnapshot(collections=loaded, config=config))

        self._report(failed)
        return {c: error for c, (_, error) in failed.items()}

    def _report(self, failed: dict[Collection, tuple[ErrorKind, str]]) -> None:
        if not failed:
            self.diagnostic = None
            return

        kind, error = next(iter(failed.values()))
        self.diagnostic = kind
        names = ", ".join(c.value for c in failed)
        logger.error(
            f"Bootstrap needs operator attention: {kind.value}",
            extra={"collections": [c.value for c in failed], "error": error},
        )
        self.notifier(failure_message(kind, f"loading {names}", error), Severity.ERROR)
