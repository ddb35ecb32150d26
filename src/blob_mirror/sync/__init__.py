"""Mirror synchronization: chunking, reconciliation, locking and ingestion."""

from blob_mirror.sync.chunker import cap_chunks, chunk
from blob_mirror.sync.coordinator import MirrorCoordinator
from blob_mirror.sync.engine import SyncEngine, plan_operations
from blob_mirror.sync.github import GitHubClient, MirrorUrl, parse_mirror_url
from blob_mirror.sync.manager import MirrorManager
from blob_mirror.sync.registry import IndexIssue, IssueKind, MirrorRegistry
from blob_mirror.sync.webhook import WebhookServer, verify_signature

__all__ = [
    "GitHubClient",
    "IndexIssue",
    "IssueKind",
    "MirrorCoordinator",
    "MirrorManager",
    "MirrorRegistry",
    "MirrorUrl",
    "SyncEngine",
    "WebhookServer",
    "cap_chunks",
    "chunk",
    "parse_mirror_url",
    "plan_operations",
    "verify_signature",
]
