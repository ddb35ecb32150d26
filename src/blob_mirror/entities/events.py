"""GitHub webhook payload models.

Only the fields blob-mirror acts on are declared; everything else in the
payload is ignored.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class Repo(BaseModel):
    id: int
    full_name: str


class Installation(BaseModel):
    id: int


class Commit(BaseModel):
    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


class PushEvent(BaseModel):
    """A ``push`` event."""

    repository: Repo
    ref: str
    commits: list[Commit] = Field(default_factory=list)
    head_commit: Commit | None = None

    @property
    def branch(self) -> str | None:
        """Branch name, or None for tag pushes."""
        prefix = "refs/heads/"
        if not self.ref.startswith(prefix):
            return None
        return self.ref[len(prefix):]

    def changed_paths(self) -> tuple[set[str], set[str]]:
        """Return ``(updated, removed)`` file paths across all commits.

        A path removed by one commit and re-added by a later one counts as
        updated.
        """
        updated: set[str] = set()
        removed: set[str] = set()
        commits = self.commits or ([self.head_commit] if self.head_commit else [])
        for commit in commits:
            for path in (*commit.added, *commit.modified):
                updated.add(path)
                removed.discard(path)
            for path in commit.removed:
                removed.add(path)
                updated.discard(path)
        return updated, removed


class InstallationAction(StrEnum):
    CREATED = "created"
    DELETED = "deleted"
    SUSPEND = "suspend"
    UNSUSPEND = "unsuspend"
    NEW_PERMISSIONS_ACCEPTED = "new_permissions_accepted"

    def seen(self) -> bool:
        return self in (
            InstallationAction.CREATED,
            InstallationAction.UNSUSPEND,
            InstallationAction.NEW_PERMISSIONS_ACCEPTED,
        )


class InstallationEvent(BaseModel):
    """An ``installation`` event."""

    action: InstallationAction
    repositories: list[Repo] = Field(default_factory=list)


class InstallationRepositoriesAction(StrEnum):
    ADDED = "added"
    REMOVED = "removed"


class InstallationRepositoriesEvent(BaseModel):
    """An ``installation_repositories`` event."""

    action: InstallationRepositoriesAction
    repositories_added: list[Repo] = Field(default_factory=list)
    repositories_removed: list[Repo] = Field(default_factory=list)


class RepositoryAction(StrEnum):
    CREATED = "created"
    DELETED = "deleted"
    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"
    EDITED = "edited"
    RENAMED = "renamed"
    TRANSFERRED = "transferred"
    PUBLICIZED = "publicized"
    PRIVATIZED = "privatized"

    def seen(self) -> bool | None:
        """Seen state implied by the action; None when it says nothing."""
        if self is RepositoryAction.TRANSFERRED:
            return None
        return self not in (
            RepositoryAction.DELETED,
            RepositoryAction.ARCHIVED,
            RepositoryAction.PRIVATIZED,
        )


class RepositoryEvent(BaseModel):
    """A ``repository`` event."""

    action: RepositoryAction
    repository: Repo
