import os

import fakeredis
from fakeredis import aioredis as fake_aioredis
import pytest

from distlock.core.config import reset_settings
from distlock.core.lock import InMemoryLockStore, LockManager, RedisLockStore

# List of environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = [
    "DISTLOCK_REDIS_URL",
    "DISTLOCK_REDIS_SOCKET_TIMEOUT",
    "DISTLOCK_KEY_PREFIX",
    "DISTLOCK_ACQUIRE_LEASE_SECONDS",
    "DISTLOCK_RUN_LEASE_SECONDS",
    "DISTLOCK_RENEW_INTERVAL_SECONDS",
    "DISTLOCK_LOG_LEVEL",
    "DISTLOCK_LOG_JSON",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables and cached settings between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    reset_settings()
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
        reset_settings()


@pytest.fixture
def memory_store():
    """Fresh in-memory store per test."""
    return InMemoryLockStore()


@pytest.fixture
def fake_redis():
    """Async fakeredis client on a private server, so tests never share keys."""
    server = fakeredis.FakeServer()
    return fake_aioredis.FakeRedis(server=server, decode_responses=True)


@pytest.fixture
def redis_store(fake_redis):
    return RedisLockStore(fake_redis)


@pytest.fixture
def memory_manager(memory_store):
    return LockManager(memory_store)


@pytest.fixture
def redis_manager(redis_store):
    return LockManager(redis_store)
