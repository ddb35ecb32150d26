"""Pydantic input/output models for MCP tool handlers."""

from __future__ import annotations

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Input models (keep descriptions under 10 words)
# ---------------------------------------------------------------------------


class RegisterMirrorInput(BaseModel):
    """Input for register_mirror tool."""

    url: str = Field(description="GitHub blob or raw file URL")
    channel_id: str = Field(description="Discord channel ID")


class ListMirrorsInput(BaseModel):
    """Input for list_mirrors tool."""

    repository_id: str = Field(description="GitHub repository ID")


class DestroyMirrorInput(BaseModel):
    """Input for destroy_mirror tool."""

    target_id: str = Field(description="Mirror target ID")


class ResyncMirrorInput(BaseModel):
    """Input for resync_mirror tool."""

    target_id: str = Field(description="Mirror target ID")


class CheckIndexInput(BaseModel):
    """Input for check_mirror_index tool."""

    repository_id: str | None = Field(default=None, description="Limit to one repository")
    repair: bool = Field(default=False, description="Rewrite missing reverse entries")


# ---------------------------------------------------------------------------
# Output models
# ---------------------------------------------------------------------------


class MirrorInfo(BaseModel):
    """A registered mirror target."""

    target_id: str
    repository_id: str
    path_spec: str = Field(description="branch/path of the mirrored file")
    channel_id: str
    message_ids: list[str] = Field(default_factory=list, description="Messages, top to bottom")


class RegisterMirrorResult(BaseModel):
    """Output of register_mirror tool."""

    target_id: str | None = Field(
        default=None, description="Set whenever a target was created, even if posting failed"
    )
    mirror: MirrorInfo | None = None
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class ListMirrorsResult(BaseModel):
    """Output of list_mirrors tool."""

    mirrors: list[MirrorInfo] = Field(default_factory=list)
    repository_seen: bool = Field(default=False, description="GitHub App installed for repo")


class ReconcileSummary(BaseModel):
    """Chat operations applied by one reconciliation."""

    target_id: str
    edited: int = 0
    created: int = 0
    deleted: int = 0
    recreated: int = 0
    message_count: int = 0


class DestroyMirrorResult(BaseModel):
    """Output of destroy_mirror tool."""

    target_id: str
    destroyed: bool = False
    deleted_messages: int = 0
    errors: list[str] = Field(default_factory=list)


class ResyncMirrorResult(BaseModel):
    """Output of resync_mirror tool."""

    summary: ReconcileSummary | None = None
    errors: list[str] = Field(default_factory=list)


class IndexIssueInfo(BaseModel):
    """One forward/reverse index inconsistency."""

    kind: str
    target_id: str
    message_id: str
    detail: str = ""
    repaired: bool = False


class CheckIndexResult(BaseModel):
    """Output of check_mirror_index tool."""

    issues: list[IndexIssueInfo] = Field(default_factory=list)
    repaired: int = 0
