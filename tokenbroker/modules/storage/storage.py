import logging
from typing import Dict, List, Optional, Protocol

import redis.asyncio as redis

from ...errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    """Protocol for the durable store shared by connections and the ledger."""

    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None."""
        ...

    async def put(self, key: str, value: str, *, nx: bool = False) -> bool:
        """
        Store value under key.

        Args:
            key: Logical key (e.g. ``token/<id>``)
            value: Serialized entry
            nx: Only write if the key does not exist yet

        Returns:
            True if the value was written, False if nx was set and the key existed
        """
        ...

    async def delete(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""
        ...

    async def list(self, prefix: str) -> List[str]:
        """Return the sorted key suffixes found under prefix."""
        ...


class RedisStorage:
    """
    KeyValueStorage backed by Redis.

    Every logical key lives under ``<namespace>:<key>`` so the broker can
    share a Redis database with other services. Single-key SET/GET/DEL are
    atomic in Redis, which is all the engine relies on.
    """

    def __init__(self, redis_client, namespace: str = "tokenbroker"):
        """
        Initialize Redis storage.

        Args:
            redis_client: Async Redis client (decode_responses=True)
            namespace: Prefix applied to every key
        """
        self.redis = redis_client
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.redis.get(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"failed to read {key}: {e}") from e

        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def put(self, key: str, value: str, *, nx: bool = False) -> bool:
        try:
            if nx:
                # SET NX returns None when the key already exists
                written = await self.redis.set(self._key(key), value, nx=True)
                return bool(written)
            await self.redis.set(self._key(key), value)
            return True
        except redis.RedisError as e:
            raise StorageError(f"failed to write {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"failed to delete {key}: {e}") from e

    async def list(self, prefix: str) -> List[str]:
        full_prefix = self._key(prefix)
        try:
            keys = await self.redis.keys(f"{full_prefix}*")
        except redis.RedisError as e:
            raise StorageError(f"failed to list {prefix}: {e}") from e

        names = []
        for key in keys:
            raw = key.decode() if isinstance(key, bytes) else key
            if raw.startswith(full_prefix):
                names.append(raw[len(full_prefix):])
        return sorted(names)


class MemoryStorage:
    """Dict-backed KeyValueStorage for tests and local runs."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def put(self, key: str, value: str, *, nx: bool = False) -> bool:
        if nx and key in self._data:
            return False
        self._data[key] = value
        return True

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list(self, prefix: str) -> List[str]:
        return sorted(k[len(prefix):] for k in self._data if k.startswith(prefix))
