"""Discord REST gateway for creating, editing and deleting mirror messages."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from blob_mirror.errors import GatewayError, MessageNotFoundError, TransientGatewayError

if TYPE_CHECKING:
    from blob_mirror.config import DiscordConfig

logger = logging.getLogger(__name__)

# Mirrored files must never ping anyone
_NO_MENTIONS: dict[str, Any] = {"parse": []}


class DiscordGateway:
    """Talks to the Discord REST API with a bot token.

    Owns its ``httpx.AsyncClient`` unless one is injected (tests pass a
    client built on ``httpx.MockTransport``).
    """

    def __init__(self, config: DiscordConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.api_base,
            headers={
                "Authorization": f"Bot {config.token}",
                "User-Agent": "DiscordBot (https://github.com/SOF3/blob-mirror, 0.1)",
            },
            timeout=httpx.Timeout(15.0),
        )

    async def create_message(self, channel_id: str, text: str) -> str:
        response = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            json={"content": text, "allowed_mentions": _NO_MENTIONS},
        )
        self._raise_for_status(response, channel_id, None)
        return str(response.json()["id"])

    async def edit_message(self, channel_id: str, message_id: str, text: str) -> None:
        response = await self._request(
            "PATCH",
            f"/channels/{channel_id}/messages/{message_id}",
            json={"content": text, "allowed_mentions": _NO_MENTIONS},
        )
        self._raise_for_status(response, channel_id, message_id)

    async def delete_message(self, channel_id: str, message_id: str) -> None:
        response = await self._request("DELETE", f"/channels/{channel_id}/messages/{message_id}")
        self._raise_for_status(response, channel_id, message_id)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise TransientGatewayError(f"Discord request {method} {url} failed: {e}") from e

    @staticmethod
    def _raise_for_status(
        response: httpx.Response, channel_id: str, message_id: str | None
    ) -> None:
        if response.is_success:
            return

        status = response.status_code
        if status == 404 and message_id is not None:
            raise MessageNotFoundError(channel_id, message_id)

        if status == 429:
            retry_after: float | None = None
            try:
                retry_after = float(response.json().get("retry_after"))
            except (ValueError, TypeError):
                header = response.headers.get("Retry-After")
                retry_after = float(header) if header else None
            logger.warning("Discord rate limited %s (retry after %s)", response.url, retry_after)
            raise TransientGatewayError("Discord rate limit exceeded", retry_after=retry_after)

        if status >= 500:
            raise TransientGatewayError(f"Discord server error {status} for {response.url}")

        raise GatewayError(f"Discord rejected {response.request.method} {response.url}: {status} {response.text}")
