"""Tests for entity models: webhook payloads and mirror records."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from blob_mirror.entities import (
    InstallationEvent,
    MirrorTarget,
    PushEvent,
    ReconcileReport,
    RepositoryEvent,
    join_path_spec,
)
from blob_mirror.entities.events import InstallationAction, RepositoryAction

REPO = {"id": 42, "full_name": "octo/docs"}


class TestPushEvent:
    def test_branch_from_ref(self) -> None:
        event = PushEvent(repository=REPO, ref="refs/heads/feature/x")  # type: ignore[arg-type]
        assert event.branch == "feature/x"

    def test_tag_has_no_branch(self) -> None:
        event = PushEvent(repository=REPO, ref="refs/tags/v1.0")  # type: ignore[arg-type]
        assert event.branch is None

    def test_changed_paths_later_commit_wins(self) -> None:
        event = PushEvent.model_validate({
            "repository": REPO,
            "ref": "refs/heads/main",
            "commits": [
                {"added": ["a.md"], "removed": ["b.md"]},
                {"removed": ["a.md"], "added": ["b.md"], "modified": ["c.md"]},
            ],
        })
        updated, removed = event.changed_paths()
        assert updated == {"b.md", "c.md"}
        assert removed == {"a.md"}

    def test_head_commit_used_without_commits(self) -> None:
        event = PushEvent.model_validate({
            "repository": REPO,
            "ref": "refs/heads/main",
            "head_commit": {"modified": ["README.md"]},
        })
        assert event.changed_paths() == ({"README.md"}, set())

    def test_extra_fields_ignored(self) -> None:
        event = PushEvent.model_validate({
            "repository": {**REPO, "private": False},
            "ref": "refs/heads/main",
            "pusher": {"name": "octocat"},
        })
        assert event.repository.full_name == "octo/docs"

    def test_missing_repository_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PushEvent.model_validate({"ref": "refs/heads/main"})


class TestLifecycleActions:
    """Installation and repository actions map to the seen flag."""

    @pytest.mark.parametrize(
        ("action", "seen"),
        [("created", True), ("unsuspend", True), ("deleted", False), ("suspend", False)],
    )
    def test_installation(self, action: str, seen: bool) -> None:
        event = InstallationEvent.model_validate({"action": action, "repositories": [REPO]})
        assert event.action.seen() is seen

    def test_installation_new_permissions(self) -> None:
        assert InstallationAction.NEW_PERMISSIONS_ACCEPTED.seen()

    @pytest.mark.parametrize(
        ("action", "seen"),
        [
            ("created", True),
            ("unarchived", True),
            ("publicized", True),
            ("deleted", False),
            ("archived", False),
            ("privatized", False),
            ("transferred", None),
        ],
    )
    def test_repository(self, action: str, seen: bool | None) -> None:
        event = RepositoryEvent.model_validate({"action": action, "repository": REPO})
        assert event.action.seen() is seen

    def test_renamed_keeps_seen(self) -> None:
        assert RepositoryAction.RENAMED.seen() is True


class TestMirrorModels:
    def test_join_path_spec(self) -> None:
        assert join_path_spec("main", "/docs/a.md") == "main/docs/a.md"

    def test_target_is_frozen(self) -> None:
        target = MirrorTarget(id="t", repository_id="42", path_spec="main/a.md", channel_id="c")
        with pytest.raises(ValidationError):
            target.channel_id = "other"  # type: ignore[misc]

    def test_report_applied(self) -> None:
        report = ReconcileReport(target_id="t", created=1, edited=2, deleted=3, recreated=1)
        assert report.applied == 7
