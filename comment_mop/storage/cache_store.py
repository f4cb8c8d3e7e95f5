"""Key/value stores backing the permission cache."""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from comment_mop.config import RedisConfig

logger = logging.getLogger(__name__)


class RedisCacheStore:
    """Redis implementation of the CacheStore interface."""

    def __init__(self, client: "redis.Redis", key_prefix: str = ""):
        """
        Initialize the store around an existing client.

        Args:
            client: redis.asyncio client created with ``decode_responses=True``
            key_prefix: Optional namespace prepended to every key
        """
        self.client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_config(cls, config: RedisConfig) -> "RedisCacheStore":
        """Create a store with its own connection pool from configuration."""
        client = redis.from_url(config.url, decode_responses=True)
        return cls(client, key_prefix=config.key_prefix)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def ping(self) -> None:
        """Verify the connection, raising ``redis.ConnectionError`` on failure."""
        await self.client.ping()
        logger.info("Connected to Redis permission cache")

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(self._key(key))

    async def set(self, key: str, value: str, expire_at: datetime) -> None:
        await self.client.set(self._key(key), value, exat=int(expire_at.timestamp()))

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryCacheStore:
    """
    Process-local CacheStore for development and tests.

    Entries expire lazily on read, according to the injected clock.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires = entry
        if self.clock() >= expires:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, expire_at: datetime) -> None:
        self._entries[key] = (value, expire_at.timestamp())

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
