import logging
from typing import Optional

from redis.asyncio import Redis

from authenticator.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Process-wide holder for the redis connection backing RedisKeyValueStore.
    """
    _client: Optional[Redis] = None

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._client is not None

    @classmethod
    def get_client(cls) -> Redis:
        if cls._client is None:
            raise StorageError("Redis storage backend selected but the client is not initialized")
        return cls._client

    @classmethod
    def init(cls, url: str):
        cls._client = Redis.from_url(url, encoding="utf-8", decode_responses=True)
        logger.info("Redis storage backend initialized")

    @classmethod
    def use(cls, client: Redis):
        """Adopt an existing connection (e.g. one shared with the host app)."""
        cls._client = client

    @classmethod
    async def close(cls):
        if cls._client:
            await cls._client.aclose()
            cls._client = None

redis_client = RedisClient
