"""Mirror manager that turns repository changes into chat reconciliations."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from blob_mirror.entities.mirror import MirrorRegistration, join_path_spec
from blob_mirror.errors import (
    MirrorError,
    NotFoundError,
    PartialFailureError,
    RegistrationIncompleteError,
)
from blob_mirror.sync.coordinator import MirrorCoordinator
from blob_mirror.sync.engine import SyncEngine
from blob_mirror.sync.github import parse_mirror_url
from blob_mirror.sync.registry import MirrorRegistry

if TYPE_CHECKING:
    from blob_mirror.config import MirrorConfig
    from blob_mirror.entities.events import PushEvent
    from blob_mirror.entities.mirror import MirrorTarget, ReconcileReport
    from blob_mirror.gateway.base import ChatGateway
    from blob_mirror.memory.content_store import ContentStore
    from blob_mirror.sync.github import GitHubClient

logger = logging.getLogger(__name__)

# Configure logging to stderr
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

SyncOutcome = dict[str, "ReconcileReport | Exception"]


class MirrorManager:
    """Manages mirrors for tracked repositories.

    Orchestrates:
    - Resolving changed files to the mirror targets that show them
    - Per-target exclusive reconciliation with bounded retries
    - Registration and removal of mirrors
    - Tracking which repositories have the GitHub App installed
    """

    def __init__(
        self,
        config: MirrorConfig,
        store: ContentStore,
        gateway: ChatGateway,
        github: GitHubClient,
    ) -> None:
        """Initialize mirror manager.

        Args:
            config: Mirror configuration.
            store: Content store shared with every other blob-mirror process.
            gateway: Chat platform gateway.
            github: GitHub client for downloading mirrored files.
        """
        self._config = config
        self._github = github
        self.registry = MirrorRegistry(store, reverse_index_retries=config.reverse_index_retries)
        self.coordinator = MirrorCoordinator(
            store,
            ttl_ms=config.lock_ttl_ms,
            timeout=config.lock_timeout,
            poll_interval=config.lock_poll_interval,
        )
        self.engine = SyncEngine(
            self.registry,
            gateway,
            max_length=config.message_max_length,
            max_messages=config.max_messages,
            gateway_retries=config.gateway_retries,
            retry_base_delay=config.gateway_retry_base_delay,
        )
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    async def on_file_changed(
        self,
        repository_id: str,
        branch: str,
        path: str,
        content: str,
        *,
        source_url: str | None = None,
    ) -> SyncOutcome:
        """Reconcile every target mirroring ``branch/path`` of a repository.

        Targets are reconciled concurrently. Per-target failures are
        returned in the outcome rather than raised.
        """
        path_spec = join_path_spec(branch, path)
        targets = await self.registry.find_targets(repository_id, path_spec)
        if not targets:
            logger.debug("No mirrors for %s in repo %s", path_spec, repository_id)
            return {}

        results = await asyncio.gather(
            *(self._sync_target(t.id, content, source_url) for t in targets),
            return_exceptions=True,
        )
        outcome: SyncOutcome = {}
        for target, result in zip(targets, results, strict=True):
            if isinstance(result, MirrorError):
                logger.error("Mirror %s (%s) not updated: %s", target.id, path_spec, result)
            elif isinstance(result, BaseException):
                raise result
            outcome[target.id] = result
        return outcome

    async def _sync_target(
        self, target_id: str, content: str, source_url: str | None
    ) -> ReconcileReport:
        async with self.coordinator.exclusive(target_id):
            return await self._reconcile_with_retry(target_id, content, source_url)

    async def _reconcile_with_retry(
        self, target_id: str, content: str, source_url: str | None
    ) -> ReconcileReport:
        """Retry partially failed reconciliations. Caller holds the lock."""
        attempts = self._config.sync_retries + 1
        for attempt in range(attempts):
            try:
                return await self.engine.reconcile(target_id, content, source_url=source_url)
            except PartialFailureError as e:
                if attempt == attempts - 1:
                    raise
                logger.warning(
                    "Retrying %s after partial failure (%d/%d): %s",
                    target_id,
                    attempt + 1,
                    attempts - 1,
                    e,
                )
        raise AssertionError("unreachable")

    async def process_push(self, event: PushEvent) -> SyncOutcome:
        """Reconcile the mirrors affected by a push.

        Files removed by the push are mirrored as empty content. When the
        payload lists no files, every mirror on the pushed branch is
        refreshed. A file that cannot be fetched is reported against each of
        its targets without holding up the other files.
        """
        branch = event.branch
        if branch is None:
            logger.debug("Ignoring non-branch ref %s", event.ref)
            return {}

        repository_id = str(event.repository.id)
        prefix = f"{branch}/"
        targets = await self.registry.targets_for_repository(repository_id)
        by_path: dict[str, list[str]] = {}
        for target in targets:
            if target.path_spec.startswith(prefix):
                by_path.setdefault(target.path_spec.removeprefix(prefix), []).append(target.id)
        paths = sorted(by_path)

        updated, removed = event.changed_paths()
        if updated or removed:
            paths = [p for p in paths if p in updated or p in removed]
        if not paths:
            return {}

        logger.info(
            "Push to %s@%s touches %d mirrored file(s)",
            event.repository.full_name,
            branch,
            len(paths),
        )
        results = await asyncio.gather(
            *(
                self._refresh_path(event.repository.full_name, repository_id, branch, p, p in removed)
                for p in paths
            ),
            return_exceptions=True,
        )
        outcome: SyncOutcome = {}
        for path, result in zip(paths, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error("Could not refresh mirrors of %s@%s: %s", path, branch, result)
                outcome.update(dict.fromkeys(by_path[path], result))
            else:
                outcome.update(result)
        return outcome

    async def _refresh_path(
        self, full_name: str, repository_id: str, branch: str, path: str, removed: bool
    ) -> SyncOutcome:
        path_spec = join_path_spec(branch, path)
        source_url = self._github.raw_url(full_name, path_spec)
        content = ""
        if not removed:
            try:
                content = await self._github.fetch_file(full_name, path_spec)
            except NotFoundError:
                logger.warning("%s no longer exists, clearing its mirrors", source_url)
        return await self.on_file_changed(repository_id, branch, path, content, source_url=source_url)

    async def handle_push(self, event: PushEvent) -> None:
        """Webhook callback: process the push in the background."""
        task = asyncio.create_task(self._process_push_logged(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_push_logged(self, event: PushEvent) -> None:
        try:
            await self.process_push(event)
        except Exception:
            logger.exception("Failed to process push to %s", event.repository.full_name)

    async def wait_idle(self) -> None:
        """Wait for background push processing to finish."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def set_seen(self, repository_ids: list[str], seen: bool) -> None:
        """Webhook callback: the GitHub App was (un)installed for repositories."""
        for repository_id in repository_ids:
            if seen:
                await self.registry.mark_seen(repository_id)
            else:
                await self.registry.mark_unseen(repository_id)
        logger.info("Marked %d repo(s) as %s", len(repository_ids), "seen" if seen else "unseen")

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def register_mirror(self, url: str, channel_id: str) -> MirrorRegistration:
        """Start mirroring the file at *url* into *channel_id*.

        The file is downloaded before the target is created so a bad URL
        leaves nothing behind.

        Raises:
            RegistrationIncompleteError: If the target was created but its
                first reconciliation failed. The error carries the target ID.
        """
        parsed = parse_mirror_url(url)
        repository_id = await self._github.get_repository_id(parsed.owner, parsed.repo)
        content = await self._github.fetch_file(parsed.full_name, parsed.path_spec)

        target_id = await self.registry.create_target(repository_id, parsed.path_spec, channel_id)
        try:
            report = await self._sync_target(
                target_id, content, self._github.raw_url(parsed.full_name, parsed.path_spec)
            )
        except MirrorError as e:
            logger.error("Mirror %s created but first sync failed: %s", target_id, e)
            raise RegistrationIncompleteError(target_id, e) from e

        seen = await self.registry.is_seen(repository_id)
        if not seen:
            logger.warning(
                "Mirror %s registered for %s, which has not installed the GitHub App",
                target_id,
                parsed.full_name,
            )
        return MirrorRegistration(
            target_id=target_id,
            repository_id=repository_id,
            path_spec=parsed.path_spec,
            channel_id=channel_id,
            repository_seen=seen,
            report=report,
        )

    async def resync_mirror(self, target_id: str) -> ReconcileReport:
        """Download the mirrored file again and reconcile the target."""
        target = await self.registry.get_target(target_id)
        full_name = await self._github.get_repository_name(target.repository_id)
        content = await self._github.fetch_file(full_name, target.path_spec)
        return await self._sync_target(
            target_id, content, self._github.raw_url(full_name, target.path_spec)
        )

    async def unregister_mirror(self, target_id: str) -> ReconcileReport:
        """Delete every message of a target, then the target itself."""
        async with self.coordinator.exclusive(target_id):
            report = await self._reconcile_with_retry(target_id, "", None)
            await self.registry.destroy_target(target_id)
        return report

    async def list_mirrors(self, repository_id: str) -> list[MirrorTarget]:
        return await self.registry.targets_for_repository(repository_id)

    async def get_mirror(self, target_id: str) -> MirrorTarget:
        return await self.registry.get_target(target_id)
