"""Redis-backed content store.

Sets, lists and scalars map one-to-one onto Redis commands. Leases use
``SET NX PX`` to acquire and small Lua scripts to renew or release only
while the caller's owner token still holds the key.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from blob_mirror.memory.redis_connection import RedisConnection

logger = logging.getLogger(__name__)

_RENEW_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("PEXPIRE", KEYS[1], ARGV[2])
end
return 0
"""

_RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class RedisContentStore:
    """Implements the ``ContentStore`` protocol on top of ``RedisConnection``."""

    def __init__(self, connection: RedisConnection) -> None:
        self._conn = connection

    async def sadd(self, key: str, member: str) -> bool:
        added = await self._conn.execute(lambda c: c.sadd(key, member))
        return bool(added)

    async def srem(self, key: str, member: str) -> bool:
        removed = await self._conn.execute(lambda c: c.srem(key, member))
        return bool(removed)

    async def smembers(self, key: str) -> set[str]:
        members = await self._conn.execute(lambda c: c.smembers(key))
        return set(members)

    async def sismember(self, key: str, member: str) -> bool:
        found = await self._conn.execute(lambda c: c.sismember(key, member))
        return bool(found)

    async def get(self, key: str) -> str | None:
        return await self._conn.execute(lambda c: c.get(key))

    async def set(self, key: str, value: str) -> None:
        await self._conn.execute(lambda c: c.set(key, value))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._conn.execute(lambda c: c.delete(*keys)))

    async def lrange(self, key: str) -> list[str]:
        items = await self._conn.execute(lambda c: c.lrange(key, 0, -1))
        return list(items)

    async def rpush(self, key: str, value: str) -> int:
        return int(await self._conn.execute(lambda c: c.rpush(key, value), idempotent=False))

    async def lrem(self, key: str, value: str) -> int:
        return int(await self._conn.execute(lambda c: c.lrem(key, 0, value)))

    async def lset(self, key: str, index: int, value: str) -> None:
        await self._conn.execute(lambda c: c.lset(key, index, value))

    async def acquire_lease(self, key: str, token: str, ttl_ms: int) -> bool:
        acquired = await self._conn.execute(
            lambda c: c.set(key, token, nx=True, px=ttl_ms), idempotent=False
        )
        return bool(acquired)

    async def renew_lease(self, key: str, token: str, ttl_ms: int) -> bool:
        result = await self._eval(_RENEW_SCRIPT, key, token, str(ttl_ms))
        return bool(result)

    async def release_lease(self, key: str, token: str) -> bool:
        result = await self._eval(_RELEASE_SCRIPT, key, token)
        if not result:
            logger.warning("Lease %s was no longer held by %s on release", key, token)
        return bool(result)

    async def _eval(self, script: str, key: str, *args: str) -> Any:
        return await self._conn.execute(lambda c: c.eval(script, 1, key, *args))
