"""Webhook server for receiving GitHub App events."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
import sys
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from aiohttp import web
from pydantic import ValidationError

from blob_mirror.entities.events import (
    InstallationEvent,
    InstallationRepositoriesEvent,
    PushEvent,
    RepositoryEvent,
)

if TYPE_CHECKING:
    from blob_mirror.config import MirrorConfig

logger = logging.getLogger(__name__)

# Configure logging to stderr
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

PushCallback = Callable[[PushEvent], Coroutine[Any, Any, None]]
SeenCallback = Callable[[list[str], bool], Coroutine[Any, Any, None]]


def verify_signature(secret: str | None, payload: bytes, signature: str) -> bool:
    """Verify a GitHub ``X-Hub-Signature-256`` header against *payload*."""
    if not secret:
        # No secret configured, skip verification
        return True

    if not signature.startswith("sha256="):
        logger.warning("Invalid signature format: %s", signature)
        return False

    computed = hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, signature.removeprefix("sha256="))


class WebhookServer:
    """HTTP server for GitHub App webhook events.

    Push events are handed to ``on_push``; installation and repository
    lifecycle events update which repositories are tracked via ``on_seen``.
    """

    def __init__(
        self,
        config: MirrorConfig,
        on_push: PushCallback | None = None,
        on_seen: SeenCallback | None = None,
    ) -> None:
        """Initialize webhook server.

        Args:
            config: Mirror configuration with webhook settings.
            on_push: Async callback for push events.
            on_seen: Async callback for (repository IDs, seen) updates.
        """
        self._config = config
        self._on_push = on_push
        self._on_seen = on_seen
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/webhook", self._handle_webhook)
        app.router.add_get("/health", self._handle_health)
        return app

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        """Handle incoming webhook request."""
        try:
            payload = await request.read()
        except Exception:
            logger.exception("Failed to read webhook payload")
            return web.Response(text="Bad Request", status=400)

        signature = request.headers.get("X-Hub-Signature-256", "")
        if not verify_signature(self._config.github.webhook_secret, payload, signature):
            logger.warning("Webhook signature verification failed")
            return web.Response(text="Forbidden", status=403)

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.exception("Failed to parse webhook JSON")
            return web.Response(text="Bad Request", status=400)

        event_type = request.headers.get("X-GitHub-Event", "")
        try:
            await self._dispatch(event_type, data)
        except ValidationError as e:
            logger.warning("Malformed %s event: %s", event_type, e)
            return web.Response(text="Bad Request", status=400)
        except Exception:
            logger.exception("Handling %s event failed", event_type)
            # Don't fail the webhook response
            return web.Response(text="ERROR", status=200)

        return web.Response(text="OK", status=200)

    async def _dispatch(self, event_type: str, data: dict[str, Any]) -> None:
        if event_type == "ping":
            logger.info("Received ping (zen: %s)", data.get("zen"))
        elif event_type == "push":
            event = PushEvent.model_validate(data)
            logger.info(
                "Received push event for %s (%s)", event.repository.full_name, event.ref
            )
            if self._on_push:
                await self._on_push(event)
        elif event_type == "installation":
            installation = InstallationEvent.model_validate(data)
            ids = [str(repo.id) for repo in installation.repositories]
            await self._set_seen(ids, installation.action.seen())
        elif event_type == "installation_repositories":
            change = InstallationRepositoriesEvent.model_validate(data)
            await self._set_seen([str(r.id) for r in change.repositories_added], True)
            await self._set_seen([str(r.id) for r in change.repositories_removed], False)
        elif event_type == "repository":
            repo_event = RepositoryEvent.model_validate(data)
            seen = repo_event.action.seen()
            if seen is not None:
                await self._set_seen([str(repo_event.repository.id)], seen)
        else:
            logger.debug("Ignoring %s event", event_type)

    async def _set_seen(self, repository_ids: list[str], seen: bool) -> None:
        if repository_ids and self._on_seen:
            await self._on_seen(repository_ids, seen)

    async def _handle_health(self, _request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.Response(text="OK", status=200)

    async def start(self) -> None:
        """Start the webhook server."""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self._config.webhook_host, self._config.webhook_port)
        await self._site.start()

        logger.info("Webhook server started on port %d", self._config.webhook_port)

    async def stop(self) -> None:
        """Stop the webhook server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()

        logger.info("Webhook server stopped")

    async def run_forever(self) -> None:
        """Start server and run until cancelled."""
        await self.start()
        try:
            while True:
                await asyncio.sleep(3600)  # Sleep indefinitely
        except asyncio.CancelledError:
            await self.stop()
