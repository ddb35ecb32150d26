"""Domain models for mirror targets and reconciliation plans."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


def join_path_spec(branch: str, path: str) -> str:
    """Build the ``branch/path`` string a mirror target is keyed by."""
    return f"{branch}/{path.lstrip('/')}"


class MirrorTarget(BaseModel):
    """A (repository, path, channel) binding projected into chat messages.

    ``posted_sequence`` holds message IDs in top-to-bottom document order.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    repository_id: str
    path_spec: str
    channel_id: str
    posted_sequence: tuple[str, ...] = ()


class OperationKind(StrEnum):
    """Chat operations a reconciliation can issue."""

    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


class PlannedOperation(BaseModel):
    """One step of a reconciliation plan, bound to a chunk position."""

    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    position: int
    message_id: str | None = None
    content: str | None = None


class ReconcileReport(BaseModel):
    """Outcome of a successful reconciliation."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    created: int = 0
    edited: int = 0
    deleted: int = 0
    recreated: int = Field(default=0, description="Edits replaced by a create after an out-of-band delete")
    posted_sequence: tuple[str, ...] = ()

    @property
    def applied(self) -> int:
        """Number of chat operations that were applied."""
        return self.created + self.edited + self.deleted + self.recreated


class MirrorRegistration(BaseModel):
    """Result of registering a new mirror."""

    model_config = ConfigDict(frozen=True)

    target_id: str
    repository_id: str
    path_spec: str
    channel_id: str
    repository_seen: bool
    report: ReconcileReport
