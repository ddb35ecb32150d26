"""Per-target mutual exclusion for reconciliations.

Exclusion is a lease in the content store (``target-lock:{id}``) holding a
random owner token, so processes sharing one store never reconcile the same
target at once. While held, the lease is renewed in the background; if the
holder dies the lease expires and another process can take over. A holder
that can no longer renew is cancelled before its lease runs out.

Within one process, callers for the same target first queue on an
``asyncio.Lock`` so they do not poll the store against each other.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
import weakref
from typing import TYPE_CHECKING, Any, TypeVar

from blob_mirror.errors import LockUnavailableError, StoreError
from blob_mirror.sync.registry import lock_key

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from blob_mirror.memory.content_store import ContentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MirrorCoordinator:
    """Serializes work per mirror target; different targets run in parallel.

    Args:
        store: Content store holding the leases.
        ttl_ms: Lease duration. Renewed every third of it while held.
        timeout: Seconds to wait before raising ``LockUnavailableError``.
        poll_interval: Seconds between acquisition attempts.
    """

    def __init__(
        self,
        store: ContentStore,
        ttl_ms: int = 30_000,
        timeout: float = 60.0,
        poll_interval: float = 0.1,
    ) -> None:
        self._store = store
        self._ttl_ms = ttl_ms
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._local: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _local_lock(self, target_id: str) -> asyncio.Lock:
        lock = self._local.get(target_id)
        if lock is None:
            lock = asyncio.Lock()
            self._local[target_id] = lock
        return lock

    @contextlib.asynccontextmanager
    async def exclusive(self, target_id: str) -> AsyncIterator[None]:
        """Hold the exclusion for *target_id* for the duration of the block.

        If the lease cannot be renewed before it expires, the block is
        cancelled at its next suspension point and ``LockUnavailableError``
        is raised from it, so no further writes happen without the lock.

        Raises:
            LockUnavailableError: If the lease cannot be acquired in time or
                is lost while the block runs.
        """
        deadline = time.monotonic() + self._timeout
        local = self._local_lock(target_id)
        try:
            await asyncio.wait_for(local.acquire(), timeout=self._timeout)
        except TimeoutError as e:
            raise LockUnavailableError(target_id, self._timeout) from e

        try:
            token = uuid.uuid4().hex
            acquired_at = await self._acquire_lease(target_id, token, deadline)
            holder = asyncio.current_task()
            assert holder is not None
            lost = asyncio.Event()
            renewer = asyncio.create_task(
                self._keep_alive(target_id, token, acquired_at, holder, lost)
            )
            try:
                yield
            except asyncio.CancelledError:
                if not lost.is_set():
                    raise
                holder.uncancel()
                raise LockUnavailableError(target_id, self._timeout, lost=True) from None
            finally:
                renewer.cancel()
                try:
                    await asyncio.wait([renewer])
                except asyncio.CancelledError:
                    # Lease lapsed after the block had already finished.
                    if not lost.is_set():
                        raise
                    holder.uncancel()
                await self._release_lease(target_id, token)
        finally:
            local.release()

    async def with_exclusive_access(
        self,
        target_id: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run ``await fn(*args, **kwargs)`` while holding *target_id*'s exclusion."""
        async with self.exclusive(target_id):
            return await fn(*args, **kwargs)

    async def _acquire_lease(self, target_id: str, token: str, deadline: float) -> float:
        """Poll until the lease is ours; return the monotonic time of the winning attempt."""
        key = lock_key(target_id)
        while True:
            attempted_at = time.monotonic()
            if await self._store.acquire_lease(key, token, self._ttl_ms):
                logger.debug("Acquired lease on %s", target_id)
                return attempted_at
            if time.monotonic() >= deadline:
                logger.warning("Timed out waiting for lease on %s", target_id)
                raise LockUnavailableError(target_id, self._timeout)
            await asyncio.sleep(self._poll_interval)

    async def _release_lease(self, target_id: str, token: str) -> None:
        try:
            await self._store.release_lease(lock_key(target_id), token)
        except StoreError:
            logger.warning("Could not release lease on %s, it expires in %dms", target_id, self._ttl_ms)

    async def _keep_alive(
        self,
        target_id: str,
        token: str,
        acquired_at: float,
        holder: asyncio.Task[Any],
        lost: asyncio.Event,
    ) -> None:
        """Renew the lease every third of its TTL; cancel *holder* once it is gone.

        Store errors are retried until the lease is about to expire. Expiry is
        counted from before each store call, so it is never later than the
        store's own.
        """
        key = lock_key(target_id)
        ttl = self._ttl_ms / 1000
        interval = ttl / 3
        expires_at = acquired_at + ttl
        delay = interval
        while True:
            await asyncio.sleep(delay)
            attempted_at = time.monotonic()
            try:
                renewed = await self._store.renew_lease(key, token, self._ttl_ms)
            except StoreError as e:
                delay = min(self._poll_interval, interval)
                # Leave one retry interval of margin for a late wakeup.
                if time.monotonic() + 2 * delay < expires_at:
                    logger.warning("Renewing lease on %s failed, retrying: %s", target_id, e)
                    continue
                logger.error("Lease on %s is expiring after repeated renewal failures", target_id)
                renewed = False

            if not renewed:
                logger.error("Lost lease on %s, stopping its reconciliation", target_id)
                lost.set()
                holder.cancel()
                return

            expires_at = attempted_at + ttl
            delay = interval
