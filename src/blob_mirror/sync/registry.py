"""Registry of mirror targets backed by a content store.

Key layout::

    seen                        set of tracked repository IDs
    targets                     set of every live target ID
    repo:{repo_id}:targets      set of target IDs for a repository
    target:{id}:repo            owning repository ID
    target:{id}:path            "branch/path" of the mirrored file
    target:{id}:channel         destination channel ID
    target:{id}:messages        list of message IDs, top to bottom
    target-owner:{message_id}   reverse index: owning target ID

The forward list and the reverse entry are two writes. The forward write
always goes first and the reverse write is retried until it reads back as
expected; a dangling reverse entry is repaired by ``lookup_owner`` while a
missing one would never be noticed.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from blob_mirror.entities.mirror import MirrorTarget
from blob_mirror.errors import NotFoundError, PreconditionFailedError, StoreError

if TYPE_CHECKING:
    from collections.abc import Callable

    from blob_mirror.memory.content_store import ContentStore

logger = logging.getLogger(__name__)

SEEN_KEY = "seen"
TARGETS_KEY = "targets"

_ID_ALPHABET = string.ascii_letters + string.digits
_ID_LENGTH = 16
_MAX_ID_ATTEMPTS = 8


def repo_targets_key(repository_id: str) -> str:
    return f"repo:{repository_id}:targets"


def target_key(target_id: str, field: str) -> str:
    return f"target:{target_id}:{field}"


def owner_key(message_id: str) -> str:
    return f"target-owner:{message_id}"


def lock_key(target_id: str) -> str:
    return f"target-lock:{target_id}"


def new_target_id() -> str:
    """Random 16 character alphanumeric identifier."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))


class IssueKind(StrEnum):
    """Inconsistencies ``check_consistency`` can report."""

    MISSING_REVERSE = "missing_reverse"
    FOREIGN_REVERSE = "foreign_reverse"
    SHARED_MESSAGE = "shared_message"
    DUPLICATE_MESSAGE = "duplicate_message"


class IndexIssue(BaseModel):
    """One inconsistency between the forward lists and the reverse index."""

    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    target_id: str
    message_id: str
    detail: str = ""
    repaired: bool = False


class MirrorRegistry:
    """Forward and reverse mappings between mirror targets and chat messages.

    The registry is the only writer of these keys. Message mutations are
    expected to run under the target's exclusive lock.
    """

    def __init__(
        self,
        store: ContentStore,
        reverse_index_retries: int = 5,
        id_factory: Callable[[], str] = new_target_id,
    ) -> None:
        self._store = store
        self._reverse_retries = reverse_index_retries
        self._id_factory = id_factory

    @property
    def store(self) -> ContentStore:
        return self._store

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    async def mark_seen(self, repository_id: str) -> bool:
        """Mark a repository as tracked. Returns True if it was not before."""
        return await self._store.sadd(SEEN_KEY, repository_id)

    async def mark_unseen(self, repository_id: str) -> bool:
        """Stop tracking a repository. Returns True if it was tracked."""
        return await self._store.srem(SEEN_KEY, repository_id)

    async def is_seen(self, repository_id: str) -> bool:
        return await self._store.sismember(SEEN_KEY, repository_id)

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    async def list_targets(self, repository_id: str) -> set[str]:
        """Return the IDs of every target mirroring a file of *repository_id*."""
        return await self._store.smembers(repo_targets_key(repository_id))

    async def all_targets(self) -> set[str]:
        return await self._store.smembers(TARGETS_KEY)

    async def get_target(self, target_id: str) -> MirrorTarget:
        """Load a target with its current posted sequence.

        Raises:
            NotFoundError: If the target does not exist.
        """
        repository_id, path_spec, channel_id, messages = await asyncio.gather(
            self._store.get(target_key(target_id, "repo")),
            self._store.get(target_key(target_id, "path")),
            self._store.get(target_key(target_id, "channel")),
            self._store.lrange(target_key(target_id, "messages")),
        )
        if repository_id is None or path_spec is None or channel_id is None:
            raise NotFoundError(f"Mirror target {target_id} does not exist")

        return MirrorTarget(
            id=target_id,
            repository_id=repository_id,
            path_spec=path_spec,
            channel_id=channel_id,
            posted_sequence=tuple(messages),
        )

    async def targets_for_repository(self, repository_id: str) -> list[MirrorTarget]:
        """Load every target of a repository, sorted by path spec then ID.

        Targets destroyed between listing and loading are skipped.
        """
        ids = sorted(await self.list_targets(repository_id))
        results = await asyncio.gather(
            *(self.get_target(tid) for tid in ids), return_exceptions=True
        )
        targets: list[MirrorTarget] = []
        for tid, result in zip(ids, results, strict=True):
            if isinstance(result, NotFoundError):
                logger.debug("Target %s vanished while listing %s", tid, repository_id)
                continue
            if isinstance(result, BaseException):
                raise result
            targets.append(result)
        return sorted(targets, key=lambda t: (t.path_spec, t.id))

    async def find_targets(self, repository_id: str, path_spec: str) -> list[MirrorTarget]:
        """Targets of *repository_id* whose path spec equals *path_spec*."""
        targets = await self.targets_for_repository(repository_id)
        return [t for t in targets if t.path_spec == path_spec]

    async def create_target(self, repository_id: str, path_spec: str, channel_id: str) -> str:
        """Register a new mirror target with an empty posted sequence.

        The ID is claimed atomically in the ``targets`` set; on collision a
        new ID is generated.
        """
        for _ in range(_MAX_ID_ATTEMPTS):
            target_id = self._id_factory()
            if await self._store.sadd(TARGETS_KEY, target_id):
                break
            logger.warning("Target ID collision on %s, regenerating", target_id)
        else:
            raise StoreError(f"Could not allocate a unique target ID in {_MAX_ID_ATTEMPTS} attempts")

        await asyncio.gather(
            self._store.set(target_key(target_id, "repo"), repository_id),
            self._store.set(target_key(target_id, "path"), path_spec),
            self._store.set(target_key(target_id, "channel"), channel_id),
        )
        await self._store.sadd(repo_targets_key(repository_id), target_id)

        logger.info(
            "Created mirror target %s for repo %s path %s in channel %s",
            target_id,
            repository_id,
            path_spec,
            channel_id,
        )
        return target_id

    async def destroy_target(self, target_id: str) -> None:
        """Remove a target whose posted sequence is already empty.

        Raises:
            NotFoundError: If the target does not exist.
            PreconditionFailedError: If the target still owns messages.
        """
        target = await self.get_target(target_id)
        if target.posted_sequence:
            msg = (
                f"Mirror target {target_id} still has {len(target.posted_sequence)} "
                "message(s); delete them first"
            )
            raise PreconditionFailedError(msg)

        await self._store.srem(repo_targets_key(target.repository_id), target_id)
        await self._store.delete(
            target_key(target_id, "repo"),
            target_key(target_id, "path"),
            target_key(target_id, "channel"),
            target_key(target_id, "messages"),
        )
        await self._store.srem(TARGETS_KEY, target_id)
        logger.info("Destroyed mirror target %s", target_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def append_message(self, target_id: str, message_id: str) -> None:
        """Append *message_id* to the posted sequence and index its owner."""
        await self._store.rpush(target_key(target_id, "messages"), message_id)
        await self._claim_owner(message_id, target_id)

    async def remove_message(self, target_id: str, message_id: str) -> None:
        """Remove *message_id* from the posted sequence and drop its owner entry."""
        await self._store.lrem(target_key(target_id, "messages"), message_id)
        await self._release_owner(message_id, target_id)

    async def replace_message(
        self, target_id: str, position: int, old_message_id: str, new_message_id: str
    ) -> None:
        """Put *new_message_id* at *position* in place of *old_message_id*."""
        key = target_key(target_id, "messages")
        messages = await self._store.lrange(key)
        if position >= len(messages) or messages[position] != old_message_id:
            msg = f"Message {old_message_id} is not at position {position} of target {target_id}"
            raise StoreError(msg)

        await self._store.lset(key, position, new_message_id)
        await self._claim_owner(new_message_id, target_id)
        await self._release_owner(old_message_id, target_id)

    async def has_message(self, target_id: str, message_id: str) -> bool:
        """True if *message_id* is in the posted sequence of *target_id*."""
        return message_id in await self._store.lrange(target_key(target_id, "messages"))

    async def lookup_owner(self, message_id: str) -> str:
        """Return the target that owns *message_id*.

        A reverse entry whose target no longer lists the message is stale;
        it is deleted and the message reported as untracked.

        Raises:
            NotFoundError: If the message is not part of any mirror.
        """
        target_id = await self._store.get(owner_key(message_id))
        if target_id is None:
            raise NotFoundError(f"Message {message_id} is not mirrored")

        messages = await self._store.lrange(target_key(target_id, "messages"))
        if message_id not in messages:
            logger.warning(
                "Dropping stale reverse entry %s -> %s", message_id, target_id
            )
            await self._release_owner(message_id, target_id)
            raise NotFoundError(f"Message {message_id} is not mirrored")
        return target_id

    async def _claim_owner(self, message_id: str, target_id: str) -> None:
        key = owner_key(message_id)
        last_exc: Exception | None = None
        for attempt in range(self._reverse_retries):
            try:
                await self._store.set(key, target_id)
                if await self._store.get(key) == target_id:
                    return
            except StoreError as exc:
                last_exc = exc
            logger.warning(
                "Reverse entry %s -> %s did not persist (attempt %d/%d)",
                message_id,
                target_id,
                attempt + 1,
                self._reverse_retries,
            )
        msg = f"Could not index message {message_id} for target {target_id}"
        raise StoreError(msg) from last_exc

    async def _release_owner(self, message_id: str, target_id: str) -> None:
        key = owner_key(message_id)
        last_exc: Exception | None = None
        for attempt in range(self._reverse_retries):
            try:
                if await self._store.get(key) != target_id:
                    return
                await self._store.delete(key)
            except StoreError as exc:
                last_exc = exc
            logger.debug("Retrying removal of reverse entry %s (attempt %d)", message_id, attempt + 1)
        msg = f"Could not drop reverse entry for message {message_id}"
        raise StoreError(msg) from last_exc

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    async def check_consistency(
        self, repository_id: str | None = None, *, repair: bool = False
    ) -> list[IndexIssue]:
        """Compare forward lists against the reverse index.

        With ``repair=True`` missing reverse entries are written back. Shared
        and foreign entries need an operator decision and are only reported.
        """
        if repository_id is None:
            target_ids = sorted(await self.all_targets())
        else:
            target_ids = sorted(await self.list_targets(repository_id))

        issues: list[IndexIssue] = []
        first_owner: dict[str, str] = {}
        for target_id in target_ids:
            messages = await self._store.lrange(target_key(target_id, "messages"))
            seen_here: set[str] = set()
            for message_id in messages:
                if message_id in seen_here:
                    issues.append(IndexIssue(
                        kind=IssueKind.DUPLICATE_MESSAGE,
                        target_id=target_id,
                        message_id=message_id,
                    ))
                    continue
                seen_here.add(message_id)

                if message_id in first_owner:
                    issues.append(IndexIssue(
                        kind=IssueKind.SHARED_MESSAGE,
                        target_id=target_id,
                        message_id=message_id,
                        detail=f"also listed by {first_owner[message_id]}",
                    ))
                else:
                    first_owner[message_id] = target_id

                owner = await self._store.get(owner_key(message_id))
                if owner is None:
                    if repair:
                        await self._claim_owner(message_id, target_id)
                    issues.append(IndexIssue(
                        kind=IssueKind.MISSING_REVERSE,
                        target_id=target_id,
                        message_id=message_id,
                        repaired=repair,
                    ))
                elif owner != target_id:
                    issues.append(IndexIssue(
                        kind=IssueKind.FOREIGN_REVERSE,
                        target_id=target_id,
                        message_id=message_id,
                        detail=f"reverse entry points to {owner}",
                    ))

        if issues:
            logger.warning("Index check found %d issue(s)", len(issues))
        return issues
