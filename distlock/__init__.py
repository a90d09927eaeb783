"""Distributed mutual-exclusion lock over Redis leases."""

from distlock.core.errors import (
    ErrorCode,
    LockConfigurationError,
    LockError,
    LockNotAcquiredError,
    LockStoreError,
    StoreUnavailableError,
)
from distlock.core.lock import (
    InMemoryLockStore,
    LeaseRenewer,
    LockContext,
    LockManager,
    LockStore,
    RedisLockStore,
    RunResult,
    new_token,
)

__version__ = "1.0.0"
__all__ = [
    "ErrorCode",
    "InMemoryLockStore",
    "LeaseRenewer",
    "LockConfigurationError",
    "LockContext",
    "LockError",
    "LockManager",
    "LockNotAcquiredError",
    "LockStore",
    "LockStoreError",
    "RedisLockStore",
    "RunResult",
    "StoreUnavailableError",
    "new_token",
]
