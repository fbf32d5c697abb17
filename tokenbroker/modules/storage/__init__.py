"""
Storage Module - Black Box Interface

Purpose: Abstract all data persistence
Interface: connect(), build_storage(), get(), put(), delete(), list()
Hidden: Redis specifics, key namespacing, seal-wrapping

Can be replaced with any storage backend offering atomic single-key
operations without affecting other modules.
"""

import logging
import os
from typing import Optional

import redis.asyncio as redis

from .sealed import SealedStorage
from .storage import KeyValueStorage, MemoryStorage, RedisStorage

logger = logging.getLogger(__name__)


class StorageModule:
    """Black box storage abstraction."""

    def __init__(
        self,
        connection_url: str = None,
        password: Optional[str] = None,
        namespace: str = "tokenbroker",
        seal_key: Optional[str] = None,
    ):
        """Initialize storage with connection URL."""
        self.url = connection_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.password = password
        self.namespace = namespace
        self.seal_key = seal_key
        self._client = None

    async def connect(self) -> redis.Redis:
        """Get storage connection."""
        if not self._client:
            self._client = redis.from_url(
                self.url,
                password=self.password,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def build_storage(self) -> KeyValueStorage:
        """Connect and return the key-value storage used by the engine."""
        client = await self.connect()
        storage: KeyValueStorage = RedisStorage(client, namespace=self.namespace)
        if self.seal_key:
            storage = SealedStorage(storage, self.seal_key)
        else:
            logger.warning("STORAGE_SEAL_KEY not set - credentials are stored unsealed")
        return storage

    async def disconnect(self):
        """Close storage connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


__all__ = [
    "StorageModule",
    "KeyValueStorage",
    "RedisStorage",
    "MemoryStorage",
    "SealedStorage",
]
