"""Async Redis client construction."""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis

from distlock.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_redis(settings: Optional[Settings] = None) -> redis.Redis:
    """Build an async client for the configured store.

    Responses are decoded so stored tokens compare as ``str``. No connection
    is opened until the first command.
    """
    settings = settings or get_settings()
    client = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT,
    )
    logger.debug(f"Redis client created for {_redact(settings.REDIS_URL)}")
    return client


def _redact(url: str) -> str:
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.rsplit('@', 1)[1]}"
