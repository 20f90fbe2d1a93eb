"""
Redis Access Layer

``RedisRepository`` namespaces keys for one store (``export:job:<id>``,
``registry:target:<id>``) and reads and writes the JSON documents kept
under them. The export job store builds its atomic operations as Lua
scripts on top of it.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class RedisRepository:
    def __init__(self, redis_client: redis.Redis, key_prefix: str = ""):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def make_key(self, *parts: str) -> str:
        """``make_key("job", "abc")`` -> ``export:job:abc`` for the ``export`` prefix."""
        return ":".join((self.key_prefix, *parts) if self.key_prefix else parts)

    def register_script(self, lua_script: str):
        # Script objects run by EVALSHA and reload themselves after a SCRIPT FLUSH
        return self.redis.register_script(lua_script)

    def set_json(self, key: str, document: Document) -> bool:
        """Store ``document`` under ``key``; False when it cannot be written."""
        try:
            payload = json.dumps(document)
        except TypeError as e:
            logger.error(f"Document for {key} is not JSON serialisable: {e}")
            return False
        try:
            return bool(self.redis.set(self.make_key(key), payload))
        except RedisConnectionError as e:
            logger.error(f"Redis unavailable while writing {key}: {e}")
            return False

    def get_json(self, key: str) -> Optional[Document]:
        return self.decode(self.redis.get(self.make_key(key)), key)

    def get_many_json(self, keys: List[str]) -> List[Optional[Document]]:
        """MGET the documents for ``keys``; missing or corrupt entries come back as None."""
        if not keys:
            return []
        raw_values = self.redis.mget([self.make_key(key) for key in keys])
        return [self.decode(raw, key) for key, raw in zip(keys, raw_values)]

    @staticmethod
    def decode(raw, key: str = "") -> Optional[Document]:
        if raw is None:
            return None
        try:
            return json.loads(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
        except json.JSONDecodeError as e:
            logger.error(f"Discarding corrupt document at {key}: {e}")
            return None


class RedisConnectionManager:
    """Owns the connection pool shared by every repository in the process."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        max_connections: int = 20,
    ):
        self.connection_pool = redis.ConnectionPool(
            host=host,
            port=port,
            db=db,
            password=password,
            max_connections=max_connections,
            retry_on_timeout=True,
            socket_keepalive=True,
        )
        self.client = redis.Redis(connection_pool=self.connection_pool)

    def health_check(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False
