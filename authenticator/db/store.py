import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet
from redis.asyncio import Redis
from redis.exceptions import RedisError

from authenticator.core import security
from authenticator.core.config import settings
from authenticator.core.exceptions import StorageError
from authenticator.core.redis import redis_client

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """
    Scoped key-value store with atomic get/set/delete of string values.
    Collections are read and written whole; there is no partial update.
    """
    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    async def get_json(self, key: str, default: Any = None) -> Any:
        raw = await self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            raise StorageError(f"Corrupt value stored under {key}")

    async def set_json(self, key: str, value: Any) -> None:
        await self.set(key, json.dumps(value))


class MemoryKeyValueStore(KeyValueStore):
    """
    Process-local store. Useful for tests and headless use.
    """
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data.keys())

    def raw(self, key: str) -> Optional[str]:
        return self._data.get(key)


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed store. Keys are prefixed with the namespace and values are
    Fernet-encrypted when an encryption key is available.
    """
    def __init__(self, redis: Redis, namespace: Optional[str] = None, fernet: Optional[Fernet] = None):
        self.redis = redis
        self.namespace = namespace if namespace is not None else settings.STORAGE_NAMESPACE
        self.fernet = fernet

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    async def get(self, key: str) -> Optional[str]:
        try:
            value = await self.redis.get(self._key(key))
        except RedisError as e:
            logger.error("Storage read failed", extra={"key": key, "error": str(e)})
            raise StorageError(f"Failed to read {key}")
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode()
        if self.fernet:
            return security.decrypt_value(self.fernet, value)
        return value

    async def set(self, key: str, value: str) -> None:
        if self.fernet:
            value = security.encrypt_value(self.fernet, value)
        try:
            await self.redis.set(self._key(key), value)
        except RedisError as e:
            logger.error("Storage write failed", extra={"key": key, "error": str(e)})
            raise StorageError(f"Failed to write {key}")

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(self._key(key))
        except RedisError as e:
            logger.error("Storage delete failed", extra={"key": key, "error": str(e)})
            raise StorageError(f"Failed to delete {key}")


def get_store() -> KeyValueStore:
    """
    Factory function to get the configured key-value store.
    The redis backend requires redis_client.init() to have been called.
    """
    if settings.STORAGE_BACKEND.lower() == "redis":
        return RedisKeyValueStore(redis_client.get_client(), fernet=security.get_storage_fernet())
    return MemoryKeyValueStore()
