"""Redis connection wrapper with retry logic and health checking."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from blob_mirror.config import RedisConfig
from blob_mirror.errors import StoreError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT = (RedisConnectionError, RedisTimeoutError, OSError)


class RedisConnection:
    """Manages a connection to Redis with retry logic.

    Uses the ``redis.asyncio`` client. All commands go through ``execute``
    which retries connection failures with exponential backoff.
    """

    def __init__(self, config: RedisConfig | None = None, client: Any = None) -> None:
        self._config = config or RedisConfig()
        self._client: Any = client

    async def connect(self) -> None:
        """Establish connection to Redis with exponential backoff."""
        last_exc: Exception | None = None
        for attempt in range(self._config.max_retries):
            try:
                self._client = redis.Redis(
                    host=self._config.host,
                    port=self._config.port,
                    db=self._config.db,
                    password=self._config.password,
                    decode_responses=True,
                )
                await self._client.ping()
                logger.info(
                    "Connected to Redis at %s:%d db=%d",
                    self._config.host,
                    self._config.port,
                    self._config.db,
                )
                return
            except _TRANSIENT as exc:
                last_exc = exc
                delay = self._config.retry_base_delay * (2**attempt)
                logger.warning(
                    "Redis connection attempt %d/%d failed: %s (retry in %.1fs)",
                    attempt + 1,
                    self._config.max_retries,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)

        msg = f"Failed to connect to Redis after {self._config.max_retries} attempts"
        raise StoreError(msg) from last_exc

    async def client(self) -> Any:
        """Return the Redis client, connecting if needed."""
        if self._client is None:
            await self.connect()
        return self._client

    async def execute(
        self,
        command: Callable[[Any], Awaitable[T]],
        *,
        idempotent: bool = True,
    ) -> T:
        """Run *command* against the client with retry on transient failures.

        Non-idempotent commands are attempted once: a lost reply may hide a
        write that was applied.
        """
        attempts = self._config.max_retries if idempotent else 1
        last_exc: Exception | None = None
        for attempt in range(attempts):
            try:
                return await command(await self.client())
            except _TRANSIENT as exc:
                last_exc = exc
                if attempt < attempts - 1:
                    delay = self._config.retry_base_delay * (2**attempt)
                    logger.warning(
                        "Redis command attempt %d/%d failed: %s",
                        attempt + 1,
                        attempts,
                        exc,
                    )
                    await asyncio.sleep(delay)

        msg = f"Redis command failed after {attempts} attempt(s)"
        raise StoreError(msg) from last_exc

    async def health_check(self) -> bool:
        """Check if the connection is alive."""
        try:
            client = await self.client()
            return bool(await client.ping())
        except (StoreError, *_TRANSIENT):
            return False

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
        self._client = None
        logger.info("Redis connection closed")
