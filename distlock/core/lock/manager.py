"""Lock manager and guarded execution.

``LockManager.acquire`` / ``LockManager.release`` are the single-shot lock
primitive. They never renew: a lease taken with ``acquire`` expires after
``lease_seconds`` unless the caller refreshes it with a ``LeaseRenewer`` of
its own (stopped before ``release``) or releases it first.

``LockContext`` and ``LockManager.run_exclusive`` add renewal and
guaranteed cleanup around a unit of work.

Known caveat: refreshes are not token-checked and nothing fences the
protected resource. A holder whose lease expired mid-section (store
unreachable, event loop stalled) can overlap with the next holder, and a
delayed refresh can extend that next holder's lease. Resources that need
strict safety must verify a fencing token of their own.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Optional, Tuple

from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_before_delay,
    wait_fixed,
    wait_random,
)

from distlock.core.config import Settings, get_settings
from distlock.core.errors import LockNotAcquiredError
from distlock.core.lock.backends import RedisLockStore
from distlock.core.lock.core import (
    LockStore,
    RunResult,
    new_token,
    to_milliseconds,
    validate_lease,
    validate_namespace,
    validate_token,
)
from distlock.core.lock.renewer import LeaseRenewer
from distlock.utils.logging import short_token
from distlock.utils.metrics import lock_acquire_total, lock_hold_seconds, lock_release_total

logger = logging.getLogger(__name__)

DEFAULT_ACQUIRE_LEASE_SECONDS = 3.0
DEFAULT_RUN_LEASE_SECONDS = 30.0
DEFAULT_RENEW_INTERVAL_SECONDS = 20.0
RENEW_FRACTION = 2 / 3


class LockManager:
    """Ownership-token lock over a ``LockStore``.

    The manager holds no per-lock state: every acquisition is identified by
    its namespace and token alone.
    """

    def __init__(
        self,
        store: LockStore,
        *,
        acquire_lease_seconds: float = DEFAULT_ACQUIRE_LEASE_SECONDS,
        run_lease_seconds: float = DEFAULT_RUN_LEASE_SECONDS,
        renew_interval_seconds: float = DEFAULT_RENEW_INTERVAL_SECONDS,
    ):
        validate_lease(acquire_lease_seconds)
        validate_lease(run_lease_seconds, renew_interval_seconds)
        self._store = store
        self._acquire_lease = acquire_lease_seconds
        self._run_lease = run_lease_seconds
        self._renew_interval = renew_interval_seconds

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LockManager":
        """Build a Redis-backed manager from ``DISTLOCK_*`` settings."""
        settings = settings or get_settings()
        return cls(
            RedisLockStore.from_settings(settings),
            acquire_lease_seconds=settings.ACQUIRE_LEASE_SECONDS,
            run_lease_seconds=settings.RUN_LEASE_SECONDS,
            renew_interval_seconds=settings.RENEW_INTERVAL_SECONDS,
        )

    @property
    def store(self) -> LockStore:
        return self._store

    @staticmethod
    def new_token() -> str:
        return new_token()

    async def acquire(
        self,
        namespace: str,
        token: Optional[str] = None,
        *,
        lease_seconds: Optional[float] = None,
    ) -> bool:
        """Try once to take the lock.

        Args:
            namespace: Name of the guarded resource
            token: Ownership token; a fresh one is generated when omitted
            lease_seconds: Lease TTL, defaults to the manager's acquire lease

        Returns:
            True if this call created the lock record, False if it is held
        """
        validate_namespace(namespace)
        token = new_token() if token is None else token
        validate_token(token)
        lease = self._acquire_lease if lease_seconds is None else lease_seconds
        validate_lease(lease)

        acquired = await self._store.set_if_absent(namespace, token, lease)
        outcome = "acquired" if acquired else "contended"
        lock_acquire_total.labels(outcome=outcome).inc()
        logger.debug(
            f"Lock '{namespace}' {outcome} by {short_token(token)}",
            extra={
                "namespace": namespace,
                "token": short_token(token),
                "lease_ms": to_milliseconds(lease),
                "outcome": outcome,
            },
        )
        return acquired

    async def acquire_wait(
        self,
        namespace: str,
        token: str,
        *,
        wait_timeout: float,
        lease_seconds: Optional[float] = None,
        poll_interval: float = 0.1,
    ) -> bool:
        """Poll ``acquire`` until it succeeds or ``wait_timeout`` elapses.

        Waiters are not queued; whichever poll lands first after a release
        or expiry wins. No poll starts once the next wait would pass
        ``wait_timeout``. Store errors are not retried.
        """
        retrying = AsyncRetrying(
            stop=stop_before_delay(wait_timeout),
            wait=wait_fixed(poll_interval) + wait_random(0, poll_interval / 2),
            retry=retry_if_result(lambda acquired: not acquired),
            retry_error_callback=lambda retry_state: False,
        )
        acquired = await retrying(self.acquire, namespace, token, lease_seconds=lease_seconds)
        if not acquired:
            logger.info(f"Gave up waiting for lock '{namespace}' after {wait_timeout}s")
        return acquired

    async def release(self, namespace: str, token: str) -> bool:
        """Delete the lock record if it still holds ``token``.

        Returns:
            True if released, False if the record was absent or owned by
            another token (the lease had expired)
        """
        validate_namespace(namespace)
        validate_token(token)

        released = await self._store.compare_and_delete(namespace, token)
        outcome = "released" if released else "not_owner"
        lock_release_total.labels(outcome=outcome).inc()
        if released:
            logger.debug(
                f"Lock '{namespace}' released by {short_token(token)}",
                extra={"namespace": namespace, "token": short_token(token), "outcome": outcome},
            )
        else:
            logger.info(
                f"Lock '{namespace}' not released: not held by {short_token(token)}",
                extra={"namespace": namespace, "token": short_token(token), "outcome": outcome},
            )
        return released

    async def holder(self, namespace: str) -> Optional[str]:
        """Token currently stored for ``namespace`` (diagnostics only)."""
        validate_namespace(namespace)
        return await self._store.get(namespace)

    async def is_locked(self, namespace: str) -> bool:
        return await self.holder(namespace) is not None

    def _renew_timings(
        self,
        lease_seconds: Optional[float],
        renew_interval_seconds: Optional[float],
    ) -> Tuple[float, float]:
        if lease_seconds is None:
            lease_seconds = self._run_lease
            if renew_interval_seconds is None:
                return lease_seconds, self._renew_interval
        if renew_interval_seconds is None:
            renew_interval_seconds = lease_seconds * RENEW_FRACTION
        return lease_seconds, renew_interval_seconds

    def renewer(
        self,
        namespace: str,
        *,
        lease_seconds: Optional[float] = None,
        renew_interval_seconds: Optional[float] = None,
    ) -> LeaseRenewer:
        """Create an unstarted renewer for a lock taken with ``acquire``."""
        lease, interval = self._renew_timings(lease_seconds, renew_interval_seconds)
        return LeaseRenewer(
            self._store,
            namespace,
            lease_seconds=lease,
            renew_interval_seconds=interval,
        )

    def hold(
        self,
        namespace: str,
        *,
        lease_seconds: Optional[float] = None,
        renew_interval_seconds: Optional[float] = None,
        raise_on_failure: bool = True,
    ) -> "LockContext":
        """Scoped acquisition with renewal, for use with ``async with``.

        When only ``lease_seconds`` is given the renew interval defaults to
        two thirds of it.
        """
        lease, interval = self._renew_timings(lease_seconds, renew_interval_seconds)
        return LockContext(
            self,
            namespace,
            lease_seconds=lease,
            renew_interval_seconds=interval,
            raise_on_failure=raise_on_failure,
        )

    async def run_exclusive(
        self,
        namespace: str,
        work: Callable[[], Any],
        *,
        lease_seconds: Optional[float] = None,
        renew_interval_seconds: Optional[float] = None,
    ) -> RunResult:
        """Run ``work`` while holding the lock, or skip it if the lock is held.

        ``work`` may be a coroutine function or a plain callable. Plain
        callables run in a worker thread so blocking work cannot starve the
        renewer. An awaitable returned by a plain callable is awaited on the
        loop. Exceptions from ``work`` propagate after the renewer has stopped
        and release was attempted.

        Returns:
            RunResult(acquired=False) on contention, otherwise
            RunResult(acquired=True, result=<work's return value>)
        """
        context = self.hold(
            namespace,
            lease_seconds=lease_seconds,
            renew_interval_seconds=renew_interval_seconds,
            raise_on_failure=False,
        )
        async with context:
            if not context.acquired:
                return RunResult(acquired=False)
            if inspect.iscoroutinefunction(work):
                result = await work()
            else:
                result = await asyncio.to_thread(work)
            if inspect.isawaitable(result):
                result = await result
        return RunResult(
            acquired=True,
            result=result,
            released=context.released,
            token=context.token,
        )

    async def close(self) -> None:
        """Shut down the underlying store."""
        await self._store.close()

    async def __aenter__(self) -> "LockManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class LockContext:
    """Scoped lock acquisition.

    Entering acquires with a fresh token and starts a renewer. Leaving, on
    any path, stops the renewer and then releases, exactly once.
    """

    def __init__(
        self,
        manager: LockManager,
        namespace: str,
        *,
        lease_seconds: float,
        renew_interval_seconds: float,
        raise_on_failure: bool = True,
    ):
        validate_namespace(namespace)
        validate_lease(lease_seconds, renew_interval_seconds)
        self._manager = manager
        self._namespace = namespace
        self._lease_seconds = lease_seconds
        self._renew_interval = renew_interval_seconds
        self._raise_on_failure = raise_on_failure

        self._token: Optional[str] = None
        self._acquired = False
        self._released: Optional[bool] = None
        self._renewer: Optional[LeaseRenewer] = None
        self._entered = False
        self._exited = False
        self._acquired_at: Optional[float] = None

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def acquired(self) -> bool:
        return self._acquired

    @property
    def released(self) -> Optional[bool]:
        return self._released

    @property
    def renewer(self) -> Optional[LeaseRenewer]:
        return self._renewer

    async def __aenter__(self) -> "LockContext":
        if self._entered:
            raise RuntimeError("LockContext is single-use and cannot be re-entered")
        self._entered = True
        self._token = new_token()
        self._acquired = await self._manager.acquire(
            self._namespace,
            self._token,
            lease_seconds=self._lease_seconds,
        )
        if not self._acquired:
            if self._raise_on_failure:
                raise LockNotAcquiredError(self._namespace)
            return self

        self._acquired_at = time.monotonic()
        self._renewer = self._manager.renewer(
            self._namespace,
            lease_seconds=self._lease_seconds,
            renew_interval_seconds=self._renew_interval,
        )
        try:
            self._renewer.start()
        except BaseException:
            await self._manager.release(self._namespace, self._token)
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._exited or not self._acquired:
            return None
        self._exited = True

        try:
            if self._renewer is not None:
                await self._renewer.stop()
        finally:
            try:
                self._released = await self._manager.release(self._namespace, self._token)
            except Exception as e:
                if exc_type is None:
                    raise
                # Keep the work unit's exception; the lease expires on its own
                logger.error(
                    f"Release of '{self._namespace}' failed after work error: {e}",
                    extra={"namespace": self._namespace, "outcome": "release_error"},
                )
            finally:
                if self._acquired_at is not None:
                    held = time.monotonic() - self._acquired_at
                    lock_hold_seconds.observe(held)
                    logger.debug(
                        f"Lock '{self._namespace}' held for {held:.3f}s",
                        extra={
                            "namespace": self._namespace,
                            "token": short_token(self._token),
                            "elapsed_ms": round(held * 1000, 3),
                            "outcome": "released" if self._released else "not_released",
                        },
                    )
        return None
