"""Chat platform gateways."""

from blob_mirror.gateway.base import ChatGateway
from blob_mirror.gateway.discord import DiscordGateway

__all__ = ["ChatGateway", "DiscordGateway"]
