"""Content store protocol and in-memory implementation.

The registry and the target lock only need a small subset of a Redis-like
key-value store: sets, ordered lists, scalars and owner-token leases.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class ContentStore(Protocol):
    """Protocol for durable key-value backends."""

    async def sadd(self, key: str, member: str) -> bool: ...

    async def srem(self, key: str, member: str) -> bool: ...

    async def smembers(self, key: str) -> set[str]: ...

    async def sismember(self, key: str, member: str) -> bool: ...

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def lrange(self, key: str) -> list[str]: ...

    async def rpush(self, key: str, value: str) -> int: ...

    async def lrem(self, key: str, value: str) -> int: ...

    async def lset(self, key: str, index: int, value: str) -> None: ...

    async def acquire_lease(self, key: str, token: str, ttl_ms: int) -> bool: ...

    async def renew_lease(self, key: str, token: str, ttl_ms: int) -> bool: ...

    async def release_lease(self, key: str, token: str) -> bool: ...


class InMemoryContentStore:
    """Dict-backed store for tests and single-process deployments.

    Leases expire against ``time.monotonic`` so an abandoned holder never
    wedges a key.
    """

    def __init__(self) -> None:
        self._sets: dict[str, set[str]] = {}
        self._lists: dict[str, list[str]] = {}
        self._scalars: dict[str, str] = {}
        self._leases: dict[str, tuple[str, float]] = {}

    # ------------------------------------------------------------------
    # Sets
    # ------------------------------------------------------------------

    async def sadd(self, key: str, member: str) -> bool:
        members = self._sets.setdefault(key, set())
        if member in members:
            return False
        members.add(member)
        return True

    async def srem(self, key: str, member: str) -> bool:
        members = self._sets.get(key)
        if not members or member not in members:
            return False
        members.remove(member)
        if not members:
            del self._sets[key]
        return True

    async def smembers(self, key: str) -> set[str]:
        return set(self._sets.get(key, ()))

    async def sismember(self, key: str, member: str) -> bool:
        return member in self._sets.get(key, ())

    # ------------------------------------------------------------------
    # Scalars
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        return self._scalars.get(key)

    async def set(self, key: str, value: str) -> None:
        self._scalars[key] = value

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            for bucket in (self._sets, self._lists, self._scalars):
                if key in bucket:
                    del bucket[key]
                    removed += 1
        return removed

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    async def lrange(self, key: str) -> list[str]:
        return list(self._lists.get(key, ()))

    async def rpush(self, key: str, value: str) -> int:
        items = self._lists.setdefault(key, [])
        items.append(value)
        return len(items)

    async def lrem(self, key: str, value: str) -> int:
        items = self._lists.get(key)
        if not items:
            return 0
        kept = [item for item in items if item != value]
        removed = len(items) - len(kept)
        if kept:
            self._lists[key] = kept
        else:
            del self._lists[key]
        return removed

    async def lset(self, key: str, index: int, value: str) -> None:
        items = self._lists.get(key)
        if items is None or not -len(items) <= index < len(items):
            raise IndexError(f"index {index} out of range for {key}")
        items[index] = value

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    def _live_owner(self, key: str) -> str | None:
        lease = self._leases.get(key)
        if lease is None:
            return None
        owner, expires_at = lease
        if expires_at <= time.monotonic():
            del self._leases[key]
            return None
        return owner

    async def acquire_lease(self, key: str, token: str, ttl_ms: int) -> bool:
        if self._live_owner(key) is not None:
            return False
        self._leases[key] = (token, time.monotonic() + ttl_ms / 1000)
        return True

    async def renew_lease(self, key: str, token: str, ttl_ms: int) -> bool:
        if self._live_owner(key) != token:
            return False
        self._leases[key] = (token, time.monotonic() + ttl_ms / 1000)
        return True

    async def release_lease(self, key: str, token: str) -> bool:
        if self._live_owner(key) != token:
            return False
        del self._leases[key]
        return True
