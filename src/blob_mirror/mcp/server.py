"""FastMCP server exposing mirror administration tools."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import TYPE_CHECKING

import httpx
from fastmcp import FastMCP

from blob_mirror.config import load_config
from blob_mirror.errors import MirrorError, RegistrationIncompleteError
from blob_mirror.mcp.schemas import (
    CheckIndexInput,
    CheckIndexResult,
    DestroyMirrorInput,
    DestroyMirrorResult,
    IndexIssueInfo,
    ListMirrorsInput,
    ListMirrorsResult,
    MirrorInfo,
    ReconcileSummary,
    RegisterMirrorInput,
    RegisterMirrorResult,
    ResyncMirrorInput,
    ResyncMirrorResult,
)
from blob_mirror.service import open_manager

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from blob_mirror.entities.mirror import MirrorTarget, ReconcileReport
    from blob_mirror.sync.manager import MirrorManager

# Configure logging to stderr (CRITICAL: never print to stdout for MCP)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

# Global state (lazy initialized)
_manager: MirrorManager | None = None
_resources = contextlib.AsyncExitStack()
_init_lock = asyncio.Lock()


@contextlib.asynccontextmanager
async def lifespan(_server: FastMCP) -> AsyncIterator[None]:
    """Close the store and HTTP clients when the server shuts down."""
    try:
        yield
    finally:
        await close_manager()


# Create FastMCP server instance
mcp = FastMCP("blob-mirror", lifespan=lifespan)


async def get_manager() -> MirrorManager:
    """Get or initialize the mirror manager."""
    global _manager

    async with _init_lock:
        if _manager is None:
            logger.info("Connecting mirror backends...")
            _manager = await _resources.enter_async_context(open_manager(load_config()))
            logger.info("Mirror manager initialized")

        return _manager


async def close_manager() -> None:
    """Release the backends opened by ``get_manager``."""
    global _manager

    async with _init_lock:
        if _manager is not None:
            logger.info("Closing mirror backends")
        await _resources.aclose()
        _manager = None


def mirror_info(target: MirrorTarget) -> MirrorInfo:
    return MirrorInfo(
        target_id=target.id,
        repository_id=target.repository_id,
        path_spec=target.path_spec,
        channel_id=target.channel_id,
        message_ids=list(target.posted_sequence),
    )


def reconcile_summary(report: ReconcileReport) -> ReconcileSummary:
    return ReconcileSummary(
        target_id=report.target_id,
        edited=report.edited,
        created=report.created,
        deleted=report.deleted,
        recreated=report.recreated,
        message_count=len(report.posted_sequence),
    )


async def register_result(manager: MirrorManager, url: str, channel_id: str) -> RegisterMirrorResult:
    """Register a mirror and describe the outcome as a tool result."""
    try:
        registration = await manager.register_mirror(url, channel_id)
    except RegistrationIncompleteError as e:
        logger.warning("Mirror %s of %s registered with errors: %s", e.target_id, url, e)
        return RegisterMirrorResult(target_id=e.target_id, errors=[str(e)])
    except (MirrorError, httpx.HTTPError) as e:
        logger.warning("Registering %s failed: %s", url, e)
        return RegisterMirrorResult(errors=[str(e)])

    target = await manager.get_mirror(registration.target_id)
    warnings: list[str] = []
    if not registration.repository_seen:
        warnings.append(
            "I have never heard from this repo. Install the blob-mirror GitHub App "
            "for it, otherwise the mirror will not be updated."
        )
    return RegisterMirrorResult(target_id=target.id, mirror=mirror_info(target), warnings=warnings)


@mcp.tool
async def register_mirror(input: RegisterMirrorInput) -> RegisterMirrorResult:
    """Mirror a GitHub file into a channel."""
    return await register_result(await get_manager(), input.url, input.channel_id)


@mcp.tool
async def list_mirrors(input: ListMirrorsInput) -> ListMirrorsResult:
    """List mirrors of a repository."""
    manager = await get_manager()
    targets = await manager.list_mirrors(input.repository_id)
    seen = await manager.registry.is_seen(input.repository_id)
    return ListMirrorsResult(mirrors=[mirror_info(t) for t in targets], repository_seen=seen)


@mcp.tool
async def destroy_mirror(input: DestroyMirrorInput) -> DestroyMirrorResult:
    """Delete a mirror and its messages."""
    manager = await get_manager()
    try:
        report = await manager.unregister_mirror(input.target_id)
    except MirrorError as e:
        logger.warning("Destroying %s failed: %s", input.target_id, e)
        return DestroyMirrorResult(target_id=input.target_id, errors=[str(e)])

    return DestroyMirrorResult(
        target_id=input.target_id,
        destroyed=True,
        deleted_messages=report.deleted,
    )


@mcp.tool
async def resync_mirror(input: ResyncMirrorInput) -> ResyncMirrorResult:
    """Refresh a mirror from GitHub now."""
    manager = await get_manager()
    try:
        report = await manager.resync_mirror(input.target_id)
    except (MirrorError, httpx.HTTPError) as e:
        logger.warning("Resyncing %s failed: %s", input.target_id, e)
        return ResyncMirrorResult(errors=[str(e)])

    return ResyncMirrorResult(summary=reconcile_summary(report))


@mcp.tool
async def check_mirror_index(input: CheckIndexInput) -> CheckIndexResult:
    """Check message index consistency."""
    manager = await get_manager()
    issues = await manager.registry.check_consistency(input.repository_id, repair=input.repair)
    return CheckIndexResult(
        issues=[IndexIssueInfo(**issue.model_dump(mode="json")) for issue in issues],
        repaired=sum(1 for issue in issues if issue.repaired),
    )


def main() -> None:
    """Run the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
