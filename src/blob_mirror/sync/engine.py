"""Reconcile a mirror target's chat messages with new file content.

The engine aligns the target's posted sequence with the new chunks by
position:

* a position present on both sides is edited (unconditionally; the store
  keeps no per-message content to compare against),
* surplus old positions are deleted, last first,
* surplus new positions are created, first first.

Every chat operation is persisted in the registry before the next one is
attempted. A failure stops the run with ``PartialFailureError``; retrying
re-reads the posted sequence, so finished steps are never planned again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from blob_mirror.entities.mirror import OperationKind, PlannedOperation, ReconcileReport
from blob_mirror.errors import (
    GatewayError,
    MessageNotFoundError,
    PartialFailureError,
    StoreError,
    TransientGatewayError,
)
from blob_mirror.sync.chunker import cap_chunks, chunk

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from blob_mirror.entities.mirror import MirrorTarget
    from blob_mirror.gateway.base import ChatGateway
    from blob_mirror.sync.registry import MirrorRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def plan_operations(posted: Sequence[str], chunks: Sequence[str]) -> list[PlannedOperation]:
    """Derive the ordered operations that turn *posted* into *chunks*.

    Edits come first in position order, followed by creates in position
    order or deletes in reverse position order.
    """
    overlap = min(len(posted), len(chunks))
    plan = [
        PlannedOperation(kind=OperationKind.EDIT, position=i, message_id=posted[i], content=chunks[i])
        for i in range(overlap)
    ]
    plan.extend(
        PlannedOperation(kind=OperationKind.CREATE, position=i, content=chunks[i])
        for i in range(overlap, len(chunks))
    )
    plan.extend(
        PlannedOperation(kind=OperationKind.DELETE, position=i, message_id=posted[i])
        for i in reversed(range(overlap, len(posted)))
    )
    return plan


class SyncEngine:
    """Apply reconciliation plans through a chat gateway.

    Args:
        registry: Mirror registry holding posted sequences.
        gateway: Chat platform gateway.
        max_length: Maximum characters per message.
        max_messages: Optional cap on messages per target.
        gateway_retries: Attempts per chat call on transient errors.
        retry_base_delay: Exponential backoff base in seconds.
    """

    def __init__(
        self,
        registry: MirrorRegistry,
        gateway: ChatGateway,
        max_length: int = 2000,
        max_messages: int | None = None,
        gateway_retries: int = 3,
        retry_base_delay: float = 1.0,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.max_length = max_length
        self.max_messages = max_messages
        self.gateway_retries = max(1, gateway_retries)
        self.retry_base_delay = retry_base_delay

    def chunk_content(self, content: str, source_url: str | None = None) -> list[str]:
        """Chunk *content*, applying the message cap if one is configured."""
        chunks = chunk(content, self.max_length)
        if self.max_messages is not None:
            where = f"<{source_url}>" if source_url else "the repository"
            chunks = cap_chunks(
                chunks, self.max_messages, self.max_length, f"…\nSee {where} for more"
            )
        return chunks

    async def reconcile(
        self, target_id: str, content: str, *, source_url: str | None = None
    ) -> ReconcileReport:
        """Bring the target's messages in line with *content*.

        Must run under the target's exclusive lock.

        Raises:
            NotFoundError: If the target does not exist.
            PartialFailureError: If a chat call or registry write failed.
        """
        target = await self.registry.get_target(target_id)
        chunks = self.chunk_content(content, source_url)
        plan = plan_operations(target.posted_sequence, chunks)

        counts = {kind: 0 for kind in OperationKind}
        recreated = 0
        for done, op in enumerate(plan):
            try:
                if await self._apply(target, op):
                    recreated += 1
                else:
                    counts[op.kind] += 1
            except (GatewayError, StoreError) as e:
                logger.warning(
                    "Reconciliation of %s stopped at %s #%d: %s",
                    target_id,
                    op.kind,
                    op.position,
                    e,
                )
                raise PartialFailureError(target_id, done, len(plan) - done) from e

        final = await self.registry.get_target(target_id)
        report = ReconcileReport(
            target_id=target_id,
            created=counts[OperationKind.CREATE],
            edited=counts[OperationKind.EDIT],
            deleted=counts[OperationKind.DELETE],
            recreated=recreated,
            posted_sequence=final.posted_sequence,
        )
        logger.info(
            "Reconciled %s (%s): %d edited, %d created, %d deleted, %d recreated",
            target_id,
            target.path_spec,
            report.edited,
            report.created,
            report.deleted,
            report.recreated,
        )
        return report

    async def _apply(self, target: MirrorTarget, op: PlannedOperation) -> bool:
        """Apply one operation. Returns True if an edit fell back to a create."""
        channel = target.channel_id

        if op.kind is OperationKind.CREATE:
            assert op.content is not None
            message_id = await self._call(self.gateway.create_message, channel, op.content)
            await self._persist_new(target, message_id, self.registry.append_message, target.id, message_id)
            return False

        assert op.message_id is not None
        if op.kind is OperationKind.EDIT:
            assert op.content is not None
            try:
                await self._call(self.gateway.edit_message, channel, op.message_id, op.content)
                return False
            except MessageNotFoundError:
                logger.warning(
                    "Message %s of %s was deleted out of band, recreating position %d",
                    op.message_id,
                    target.id,
                    op.position,
                )
            message_id = await self._call(self.gateway.create_message, channel, op.content)
            await self._persist_new(
                target,
                message_id,
                self.registry.replace_message,
                target.id,
                op.position,
                op.message_id,
                message_id,
            )
            return True

        try:
            await self._call(self.gateway.delete_message, channel, op.message_id)
        except MessageNotFoundError:
            logger.warning("Message %s of %s was already deleted", op.message_id, target.id)
        await self.registry.remove_message(target.id, op.message_id)
        return False

    async def _persist_new(
        self,
        target: MirrorTarget,
        message_id: str,
        write: Callable[..., Awaitable[None]],
        *args: Any,
    ) -> None:
        """Record a freshly created message, deleting it again if that fails.

        If the posted sequence already lists the message, only its reverse
        entry is missing; the message is kept so the sequence never points at
        a deleted message, and ``check_consistency(repair=True)`` restores
        the entry.
        """
        try:
            await write(*args)
        except StoreError:
            try:
                recorded = await self.registry.has_message(target.id, message_id)
            except StoreError:
                logger.exception(
                    "Could not tell whether message %s of %s was recorded, keeping it",
                    message_id,
                    target.id,
                )
                raise
            if recorded:
                logger.error(
                    "Message %s of %s is recorded but its reverse entry is missing; "
                    "run check_consistency with repair",
                    message_id,
                    target.id,
                )
                raise
            logger.error(
                "Could not record message %s for %s, removing it from channel %s",
                message_id,
                target.id,
                target.channel_id,
            )
            try:
                await self.gateway.delete_message(target.channel_id, message_id)
            except (GatewayError, MessageNotFoundError):
                logger.exception("Message %s in channel %s is now orphaned", message_id, target.channel_id)
            raise

    async def _call(self, fn: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Call the gateway, retrying transient failures with backoff."""
        for attempt in range(self.gateway_retries):
            try:
                return await fn(*args)
            except TransientGatewayError as e:
                if attempt == self.gateway_retries - 1:
                    raise
                delay = max(self.retry_base_delay * (2**attempt), e.retry_after or 0.0)
                logger.warning(
                    "Chat call attempt %d/%d failed: %s (retry in %.1fs)",
                    attempt + 1,
                    self.gateway_retries,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")
