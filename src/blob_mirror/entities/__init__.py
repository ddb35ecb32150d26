"""Entity models for the blob-mirror domain layer."""

from blob_mirror.entities.events import (
    InstallationEvent,
    InstallationRepositoriesEvent,
    PushEvent,
    RepositoryEvent,
)
from blob_mirror.entities.mirror import (
    MirrorRegistration,
    MirrorTarget,
    OperationKind,
    PlannedOperation,
    ReconcileReport,
    join_path_spec,
)

__all__ = [
    "InstallationEvent",
    "InstallationRepositoriesEvent",
    "MirrorRegistration",
    "MirrorTarget",
    "OperationKind",
    "PlannedOperation",
    "PushEvent",
    "ReconcileReport",
    "RepositoryEvent",
    "join_path_spec",
]
