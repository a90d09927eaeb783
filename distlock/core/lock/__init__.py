"""Distributed Lock Module.

Provides distributed locking over a key-value store:
- Ownership-token lock primitive
- Background lease renewal
- Guarded execution with guaranteed release
- In-memory and Redis stores
"""

from distlock.core.lock.core import (
    LockStore,
    RunResult,
    new_token,
)
from distlock.core.lock.backends import (
    InMemoryLockStore,
    RedisLockStore,
)
from distlock.core.lock.renewer import LeaseRenewer
from distlock.core.lock.manager import (
    LockContext,
    LockManager,
)

__all__ = [
    # Core
    "LockStore",
    "RunResult",
    "new_token",
    # Stores
    "InMemoryLockStore",
    "RedisLockStore",
    # Lifecycle
    "LeaseRenewer",
    "LockContext",
    "LockManager",
]
