"""Lock Store Implementations.

Provides store implementations:
- In-memory store (testing, single process)
- Redis-based store (production)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Dict, Iterator, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from distlock.core.config import Settings, get_settings
from distlock.core.errors import LockStoreError, StoreUnavailableError
from distlock.core.lock.core import LockStore, to_milliseconds
from distlock.utils.redis_client import create_redis

logger = logging.getLogger(__name__)


class InMemoryLockStore(LockStore):
    """In-memory lock store for testing and single-process use."""

    def __init__(self):
        # key -> (value, expires_at on the monotonic clock)
        self._records: Dict[str, Tuple[str, float]] = {}
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        async with self._get_lock():
            self._purge_expired(key)
            if key in self._records:
                return False
            self._records[key] = (value, time.monotonic() + ttl_seconds)
            return True

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        async with self._get_lock():
            self._purge_expired(key)
            record = self._records.get(key)
            if record is None or record[0] != expected:
                return False
            del self._records[key]
            return True

    async def refresh_ttl(self, key: str, ttl_seconds: float) -> bool:
        async with self._get_lock():
            self._purge_expired(key)
            record = self._records.get(key)
            if record is None:
                return False
            self._records[key] = (record[0], time.monotonic() + ttl_seconds)
            return True

    async def get(self, key: str) -> Optional[str]:
        async with self._get_lock():
            self._purge_expired(key)
            record = self._records.get(key)
            return record[0] if record else None

    async def close(self) -> None:
        self._records.clear()

    def _purge_expired(self, key: str) -> None:
        record = self._records.get(key)
        if record is not None and record[1] <= time.monotonic():
            logger.debug(f"Lock record '{key}' expired")
            del self._records[key]


class RedisLockStore(LockStore):
    """Redis-based lock store.

    ``SET NX PX`` creates the record, a Lua script deletes it only for the
    matching token and ``PEXPIRE`` refreshes its TTL.
    """

    RELEASE_SCRIPT = """
    if redis.call('GET', KEYS[1]) == ARGV[1] then
        return redis.call('DEL', KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        key_prefix: str = "",
        owns_client: bool = False,
    ):
        self._redis = redis_client
        self._key_prefix = key_prefix
        self._owns_client = owns_client
        # Script object caches the SHA and falls back to SCRIPT LOAD on NOSCRIPT
        self._release_script = redis_client.register_script(self.RELEASE_SCRIPT)

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "") -> "RedisLockStore":
        client = redis.from_url(url, decode_responses=True)
        return cls(client, key_prefix=key_prefix, owns_client=True)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RedisLockStore":
        settings = settings or get_settings()
        return cls(
            create_redis(settings),
            key_prefix=settings.KEY_PREFIX,
            owns_client=True,
        )

    def _make_key(self, name: str) -> str:
        return f"{self._key_prefix}{name}"

    async def set_if_absent(self, key: str, value: str, ttl_seconds: float) -> bool:
        with _translate_errors("set_if_absent", key):
            result = await self._redis.set(
                self._make_key(key),
                value,
                nx=True,
                px=to_milliseconds(ttl_seconds),
            )
        return bool(result)

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        with _translate_errors("compare_and_delete", key):
            result = await self._release_script(
                keys=[self._make_key(key)],
                args=[expected],
            )
        return result == 1

    async def refresh_ttl(self, key: str, ttl_seconds: float) -> bool:
        with _translate_errors("refresh_ttl", key):
            result = await self._redis.pexpire(
                self._make_key(key),
                to_milliseconds(ttl_seconds),
            )
        return bool(result)

    async def get(self, key: str) -> Optional[str]:
        with _translate_errors("get", key):
            value = await self._redis.get(self._make_key(key))
        if isinstance(value, bytes):
            return value.decode()
        return value

    async def close(self) -> None:
        if self._owns_client:
            await self._redis.aclose()
            logger.debug("Redis lock store closed")


@contextlib.contextmanager
def _translate_errors(operation: str, key: str) -> Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        raise StoreUnavailableError(
            f"Lock store unreachable during {operation}",
            detail=f"key={key}: {e}",
        ) from e
    except RedisError as e:
        raise LockStoreError(
            f"Lock store error during {operation}",
            detail=f"key={key}: {e}",
        ) from e
