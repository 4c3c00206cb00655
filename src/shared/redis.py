# src/shared/redis.py
from __future__ import annotations

from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis

from src.shared.config import Settings
from src.shared.exceptions import ConfigurationError

_client: Optional[Redis] = None


def create_redis(url: str) -> Redis:
    # NOTE: from_url is sync; do NOT await it
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,            # return str instead of bytes
        health_check_interval=30,         # ping occasionally
        socket_connect_timeout=5.0,
        retry_on_timeout=True,
    )


def get_redis(settings: Settings) -> Redis:
    """Lazy process-wide client; raises if REDIS_URL is not configured."""
    global _client
    if _client is None:
        if not settings.redis_url:
            raise ConfigurationError("REDIS_URL is not configured")
        _client = create_redis(settings.redis_url)
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
    _client = None
