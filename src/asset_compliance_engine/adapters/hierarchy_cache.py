"""Redis-backed hierarchy cache reader.

The inventory jobs store each organization, folder and project asset as a
JSON document under its normalized key. This engine only reads them.
"""

import json
from typing import Any

import redis.asyncio as redis

from asset_compliance_engine.observability import get_logger

logger = get_logger(__name__)


class RedisHierarchyCache:
    """Read cached asset documents from Redis.

    Args:
        client: An async Redis client.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, redis_url: str, timeout_s: float | None = None) -> "RedisHierarchyCache":
        """Build a cache reader from a Redis URL.

        Args:
            redis_url: Redis connection URL.
            timeout_s: Connect and read timeout of the socket. None waits forever.
        """
        return cls(redis.from_url(redis_url, socket_timeout=timeout_s, socket_connect_timeout=timeout_s))

    async def lookup(self, key: str) -> tuple[dict[str, Any] | None, bool]:
        """Read one document.

        A missing key is a miss. A value that is not a JSON object is logged
        and reported as found but empty, leaving shape checks to the caller.

        Raises:
            redis.RedisError: On transport errors.
        """
        raw = await self._redis.get(key)
        if raw is None:
            return None, False
        try:
            document = json.loads(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Hierarchy cache document is not JSON", cache_key=key, error=str(exc))
            return {}, True
        if not isinstance(document, dict):
            return {}, True
        return document, True

    async def close(self) -> None:
        await self._redis.aclose()
