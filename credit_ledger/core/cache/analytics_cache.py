"""
AnalyticsCache: short-lived Redis memo for analytics snapshots

Purpose
-------
Memoise computed analytics snapshots in Redis for a few seconds so repeated
dashboard reads do not re-page through a user's ledger.

Responsibilities
----------------
- Own an optional `redis.asyncio` client built from `Config.REDIS_URL`
- JSON-encode payloads under namespaced keys with a TTL
- Treat every Redis failure as a cache miss (log and bypass)

Non-Responsibilities
--------------------
- Computing analytics (AnalyticsAggregator)
- Invalidation on writes: entries expire after `ANALYTICS_CACHE_TTL_SECONDS`

Configuration Keys
------------------
- REDIS_URL                   : str (empty disables the cache)
- REDIS_SOCKET_TIMEOUT        : int seconds
- ANALYTICS_CACHE_TTL_SECONDS : int seconds (default 30)
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from credit_ledger.core.config.config import Config
from credit_ledger.core.logging.logger import get_logger

logger = get_logger(__name__)


class AnalyticsCache:
    """
    TTL memo over an async Redis client.

    A cache built without a client is disabled: `get` always misses and `set`
    is a no-op.
    """

    KEY_PREFIX = "credit_ledger:analytics"

    def __init__(self, client: Optional[AsyncRedis], ttl_seconds: int = 30) -> None:
        self._client = client
        self._ttl_seconds = ttl_seconds
        self.hits = 0
        self.misses = 0
        self.errors = 0

    @classmethod
    def from_config(cls) -> "AnalyticsCache":
        if not Config.REDIS_URL:
            logger.info("Analytics cache disabled (REDIS_URL not set)")
            return cls.disabled()

        client: AsyncRedis = AsyncRedis.from_url(
            Config.REDIS_URL,
            socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
            encoding="utf-8",
            decode_responses=True,
            retry_on_timeout=False,
        )
        logger.info(
            "Analytics cache enabled",
            extra={
                "url_scheme": Config.REDIS_URL.split("://")[0],
                "ttl_seconds": Config.ANALYTICS_CACHE_TTL_SECONDS,
            },
        )
        return cls(client, ttl_seconds=Config.ANALYTICS_CACHE_TTL_SECONDS)

    @classmethod
    def disabled(cls) -> "AnalyticsCache":
        return cls(None)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def make_key(self, *parts: Any) -> str:
        return ":".join([self.KEY_PREFIX, *(str(p) for p in parts)])

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        if self._client is None:
            return None

        try:
            raw = await self._client.get(key)
        except (RedisError, OSError) as exc:
            self.errors += 1
            logger.warning(
                "Analytics cache read failed, bypassing",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None

        if raw is None:
            self.misses += 1
            return None

        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as exc:
            self.errors += 1
            logger.warning(
                "Discarding undecodable analytics cache entry",
                extra={"key": key, "error": str(exc)},
            )
            return None

        self.hits += 1
        return value

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        if self._client is None:
            return

        payload = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        try:
            await self._client.set(key, payload, ex=self._ttl_seconds)
        except (RedisError, OSError) as exc:
            self.errors += 1
            logger.warning(
                "Analytics cache write failed, bypassing",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            await client.aclose()
        except (RedisError, OSError) as exc:
            logger.warning(
                "Error closing analytics cache client",
                extra={"error": str(exc)},
            )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "ttl_seconds": self._ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
        }
