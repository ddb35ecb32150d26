"""Tests for the GitHub webhook receiver."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from typing import Any

from aiohttp import test_utils

from blob_mirror.config import GitHubConfig, MirrorConfig
from blob_mirror.entities.events import PushEvent
from blob_mirror.sync.webhook import WebhookServer, verify_signature

SECRET = "s3cret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class Recorder:
    """Collects webhook callbacks."""

    def __init__(self, fail: bool = False) -> None:
        self.pushes: list[PushEvent] = []
        self.seen: list[tuple[list[str], bool]] = []
        self.fail = fail

    async def on_push(self, event: PushEvent) -> None:
        if self.fail:
            raise RuntimeError("downstream broke")
        self.pushes.append(event)

    async def on_seen(self, repository_ids: list[str], seen: bool) -> None:
        self.seen.append((repository_ids, seen))


def _post(
    recorder: Recorder,
    event: str,
    payload: dict[str, Any] | bytes,
    *,
    secret: str | None = SECRET,
    signature: str | None = None,
) -> tuple[int, str]:
    config = MirrorConfig(github=GitHubConfig(webhook_secret=secret))
    server = WebhookServer(config, on_push=recorder.on_push, on_seen=recorder.on_seen)
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    headers = {"X-GitHub-Event": event, "Content-Type": "application/json"}
    if secret is not None:
        headers["X-Hub-Signature-256"] = signature or _sign(body)

    async def run() -> tuple[int, str]:
        async with test_utils.TestClient(test_utils.TestServer(server.build_app())) as client:
            resp = await client.post("/webhook", data=body, headers=headers)
            return resp.status, await resp.text()

    return asyncio.run(run())


REPO = {"id": 42, "full_name": "octo/docs"}


class TestVerifySignature:
    def test_valid(self) -> None:
        assert verify_signature(SECRET, b"{}", _sign(b"{}"))

    def test_wrong_secret(self) -> None:
        assert not verify_signature(SECRET, b"{}", _sign(b"{}", "other"))

    def test_bad_format(self) -> None:
        assert not verify_signature(SECRET, b"{}", "md5=abc")

    def test_no_secret_skips_check(self) -> None:
        assert verify_signature(None, b"{}", "")


class TestWebhookServer:
    """Request handling and event dispatch."""

    def test_ping(self) -> None:
        assert _post(Recorder(), "ping", {"zen": "Keep it simple."}) == (200, "OK")

    def test_bad_signature_rejected(self) -> None:
        recorder = Recorder()
        status, _ = _post(recorder, "push", {"ref": "refs/heads/main"}, signature="sha256=00")
        assert status == 403
        assert recorder.pushes == []

    def test_invalid_json(self) -> None:
        status, _ = _post(Recorder(), "push", b"not json")
        assert status == 400

    def test_push_dispatched(self) -> None:
        recorder = Recorder()
        payload = {
            "ref": "refs/heads/main",
            "repository": REPO,
            "commits": [{"added": [], "modified": ["README.md"], "removed": []}],
        }
        assert _post(recorder, "push", payload) == (200, "OK")
        assert len(recorder.pushes) == 1
        event = recorder.pushes[0]
        assert event.branch == "main"
        assert event.repository.id == 42
        assert event.changed_paths() == ({"README.md"}, set())

    def test_malformed_push(self) -> None:
        status, _ = _post(Recorder(), "push", {"ref": "refs/heads/main"})
        assert status == 400

    def test_callback_failure_still_acknowledged(self) -> None:
        payload = {"ref": "refs/heads/main", "repository": REPO}
        assert _post(Recorder(fail=True), "push", payload) == (200, "ERROR")

    def test_installation_created(self) -> None:
        recorder = Recorder()
        payload = {"action": "created", "repositories": [REPO, {"id": 7, "full_name": "octo/x"}]}
        _post(recorder, "installation", payload)
        assert recorder.seen == [(["42", "7"], True)]

    def test_installation_deleted(self) -> None:
        recorder = Recorder()
        _post(recorder, "installation", {"action": "deleted", "repositories": [REPO]})
        assert recorder.seen == [(["42"], False)]

    def test_installation_repositories(self) -> None:
        recorder = Recorder()
        payload = {
            "action": "added",
            "repositories_added": [REPO],
            "repositories_removed": [{"id": 7, "full_name": "octo/x"}],
        }
        _post(recorder, "installation_repositories", payload)
        assert recorder.seen == [(["42"], True), (["7"], False)]

    def test_repository_archived(self) -> None:
        recorder = Recorder()
        _post(recorder, "repository", {"action": "archived", "repository": REPO})
        assert recorder.seen == [(["42"], False)]

    def test_repository_transferred_ignored(self) -> None:
        recorder = Recorder()
        _post(recorder, "repository", {"action": "transferred", "repository": REPO})
        assert recorder.seen == []

    def test_unknown_event_ignored(self) -> None:
        recorder = Recorder()
        assert _post(recorder, "star", {"action": "created"}) == (200, "OK")
        assert recorder.pushes == []
        assert recorder.seen == []

    def test_unsigned_when_no_secret(self) -> None:
        assert _post(Recorder(), "ping", {}, secret=None) == (200, "OK")

    def test_health(self) -> None:
        server = WebhookServer(MirrorConfig())

        async def run() -> int:
            async with test_utils.TestClient(test_utils.TestServer(server.build_app())) as client:
                resp = await client.get("/health")
                return resp.status

        assert asyncio.run(run()) == 200
