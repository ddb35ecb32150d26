"""Chat gateway protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ChatGateway(Protocol):
    """Operations the sync engine needs from a chat platform.

    ``edit_message`` and ``delete_message`` raise ``MessageNotFoundError``
    when the message was deleted out of band, ``TransientGatewayError`` on
    network or rate-limit failures and ``GatewayError`` otherwise.
    """

    async def create_message(self, channel_id: str, text: str) -> str: ...

    async def edit_message(self, channel_id: str, message_id: str, text: str) -> None: ...

    async def delete_message(self, channel_id: str, message_id: str) -> None: ...
