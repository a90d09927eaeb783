"""Lease renewal.

Keeps a held lease alive by refreshing its TTL on a fixed interval until
the owner stops it. Refresh errors never reach the guarded work: they are
logged and the next tick tries again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from distlock.core.lock.core import LockStore, to_milliseconds, validate_lease
from distlock.utils.metrics import lock_renew_total

logger = logging.getLogger(__name__)


class LeaseRenewer:
    """Background task refreshing one lease.

    ``stop()`` sets the stop event and then awaits the task, so a refresh
    already in flight completes and no refresh is issued after ``stop()``
    returns. Callers must stop the renewer before releasing the lock.
    """

    def __init__(
        self,
        store: LockStore,
        namespace: str,
        *,
        lease_seconds: float,
        renew_interval_seconds: float,
    ):
        validate_lease(lease_seconds, renew_interval_seconds)
        self._store = store
        self._namespace = namespace
        self._lease_seconds = lease_seconds
        self._renew_interval = renew_interval_seconds

        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

        self.refresh_count = 0
        self.failure_count = 0
        self.lost_refreshes = 0

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start refreshing in the running event loop."""
        if self._task is not None:
            raise RuntimeError(f"Renewer for '{self._namespace}' already started")
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._renew_loop(self._stop_event),
            name=f"lease-renewer-{self._namespace}",
        )
        logger.debug(
            f"Lease renewer started for '{self._namespace}' "
            f"(every {self._renew_interval}s, lease {self._lease_seconds}s)"
        )

    async def stop(self) -> None:
        """Signal the loop to exit and wait until it has."""
        if self._task is None or self._stop_event is None:
            return
        self._stop_event.set()
        await self._task
        logger.debug(
            f"Lease renewer stopped for '{self._namespace}' "
            f"after {self.refresh_count} refreshes"
        )

    async def _renew_loop(self, stop_event: asyncio.Event) -> None:
        while True:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._renew_interval)
                return
            except asyncio.TimeoutError:
                pass
            await self._refresh_once()

    async def _refresh_once(self) -> None:
        try:
            refreshed = await self._store.refresh_ttl(self._namespace, self._lease_seconds)
        except Exception as e:
            self.failure_count += 1
            lock_renew_total.labels(outcome="error").inc()
            logger.warning(
                f"Lease refresh failed for '{self._namespace}': {e}",
                extra={"namespace": self._namespace, "outcome": "error"},
            )
            return

        if refreshed:
            self.refresh_count += 1
            lock_renew_total.labels(outcome="refreshed").inc()
            logger.debug(
                f"Lease '{self._namespace}' refreshed",
                extra={
                    "namespace": self._namespace,
                    "lease_ms": to_milliseconds(self._lease_seconds),
                    "outcome": "refreshed",
                },
            )
        else:
            self.lost_refreshes += 1
            lock_renew_total.labels(outcome="missing").inc()
            logger.warning(
                f"Lease '{self._namespace}' no longer exists; it expired before refresh",
                extra={"namespace": self._namespace, "outcome": "missing"},
            )
