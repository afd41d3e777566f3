"""Redis-backed cache of calculation results.

Entries are keyed by ``{operation}:{x}:{y}`` and expire after a TTL.
Writes are unconditional (last writer wins); concurrent misses for the
same key write identical values.
"""

import logging
from datetime import timedelta

from redis.asyncio import Redis
from redis.exceptions import RedisError

from calculator_service.config import Settings
from calculator_service.models.calculation import CalculationRequest, Operation

logger = logging.getLogger(__name__)


def format_operand(value: float) -> str:
    """Render an operand with the shortest round-tripping decimal form."""
    return repr(float(value))


def cache_key(operation: Operation, x: float, y: float) -> str:
    """Derive the cache key for an operation and its operands.

    Every read and write goes through this function so that identical
    operands always produce the same key.
    """
    return f"{operation.value}:{format_operand(x)}:{format_operand(y)}"


def request_cache_key(request: CalculationRequest) -> str:
    if request.operation is None or request.x is None or request.y is None:
        raise ValueError("Cache keys require an operation and both operands")
    return cache_key(request.operation, request.x, request.y)


class CacheStore:
    """Keyed get/set of calculation results against Redis."""

    def __init__(self, client: Redis, settings: Settings) -> None:
        """Initialize the store.

        Args:
            client: Redis client (``decode_responses`` may be on or off)
            settings: Application settings providing the default TTL
        """
        self._client = client
        self.default_ttl = timedelta(seconds=settings.CACHE_TTL_SECONDS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheStore":
        client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
        return cls(client, settings)

    async def get(self, request: CalculationRequest) -> float | None:
        """Return the cached result, or None on miss.

        Unparsable values and read failures are reported as a miss.
        """
        key = request_cache_key(request)
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            logger.warning(
                "Cache read failed, treating as miss",
                extra={"key": key, "error": str(e)},
            )
            return None

        if raw is None or raw == "" or raw == b"":
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        try:
            return float(raw)
        except ValueError:
            logger.warning(
                "Unparsable cached value, treating as miss",
                extra={"key": key, "value": raw},
            )
            return None

    async def set(
        self,
        request: CalculationRequest,
        result: float,
        ttl: timedelta | None = None,
    ) -> None:
        """Store ``result`` for ``request`` with a TTL.

        Raises:
            RedisError: If the store rejects or cannot receive the write
        """
        key = request_cache_key(request)
        expiry = ttl or self.default_ttl
        await self._client.set(key, repr(float(result)), ex=expiry)
        logger.debug(
            "Cached calculation result",
            extra={"key": key, "ttl_seconds": expiry.total_seconds()},
        )

    async def exists(self, key: str) -> bool:
        """Check whether a key is present. Diagnostics only."""
        return bool(await self._client.exists(key))

    async def close(self) -> None:
        await self._client.aclose()
