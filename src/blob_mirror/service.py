"""Process entry points: wire concrete backends and run the webhook receiver."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from typing import TYPE_CHECKING

from blob_mirror.config import load_config
from blob_mirror.gateway.discord import DiscordGateway
from blob_mirror.memory.redis_connection import RedisConnection
from blob_mirror.memory.redis_store import RedisContentStore
from blob_mirror.sync.github import GitHubClient
from blob_mirror.sync.manager import MirrorManager
from blob_mirror.sync.webhook import WebhookServer

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from blob_mirror.config import MirrorConfig

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def open_manager(config: MirrorConfig) -> AsyncIterator[MirrorManager]:
    """Connect to Redis, Discord and GitHub and yield a ready manager."""
    connection = RedisConnection(config.redis)
    await connection.connect()
    gateway = DiscordGateway(config.discord)
    github = GitHubClient(config.github)
    try:
        yield MirrorManager(config, RedisContentStore(connection), gateway, github)
    finally:
        await github.close()
        await gateway.close()
        await connection.close()


async def serve(config: MirrorConfig) -> None:
    """Run the webhook receiver until cancelled."""
    async with open_manager(config) as manager:
        server = WebhookServer(config, on_push=manager.handle_push, on_seen=manager.set_seen)
        try:
            await server.run_forever()
        finally:
            await manager.wait_idle()


def main() -> None:
    """Console entry point for the webhook receiver."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    config = load_config()
    if config.discord.client_id is not None:
        logger.info(
            "Invite link: https://discord.com/oauth2/authorize?client_id=%d&scope=bot",
            config.discord.client_id,
        )
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
