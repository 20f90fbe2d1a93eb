"""
Redis Configuration

One connection pool per process, created by the app factory and shared by
the job store and the target registry. ``REDIS_URL`` wins over the discrete
``REDIS_*`` variables when both are set.
"""

import os
from typing import Optional

import redis

from export_engine.infrastructure.redis_repository import (
    RedisConnectionManager,
    RedisRepository,
)


class RedisConfig:
    def __init__(self):
        url = os.getenv("REDIS_URL")
        parsed = redis.connection.parse_url(url) if url else {}

        self.host = parsed.get("host", os.getenv("REDIS_HOST", "localhost"))
        self.port = int(parsed.get("port", os.getenv("REDIS_PORT", 6379)))
        self.db = int(parsed.get("db", os.getenv("REDIS_DB", 0)))
        self.password = parsed.get("password", os.getenv("REDIS_PASSWORD"))
        self.max_connections = int(os.getenv("REDIS_MAX_CONNECTIONS", 20))


_manager: Optional[RedisConnectionManager] = None


def init_redis(config: Optional[RedisConfig] = None) -> RedisConnectionManager:
    """Create the process-wide pool. Connections open lazily on first command."""
    global _manager

    config = config or RedisConfig()
    _manager = RedisConnectionManager(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password,
        max_connections=config.max_connections,
    )
    return _manager


def get_redis_repository(key_prefix: str = "") -> RedisRepository:
    """
    Hand out a key-prefixed repository on the shared pool.

    Raises:
        RuntimeError: ``init_redis`` has not run in this process
    """
    if _manager is None:
        raise RuntimeError("Redis pool is not initialised; call init_redis() first")
    return RedisRepository(_manager.client, key_prefix)


def redis_health_check() -> bool:
    return _manager is not None and _manager.health_check()
