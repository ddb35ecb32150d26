"""Shared test fixtures for blob-mirror."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from blob_mirror.config import GitHubConfig, MirrorConfig
from blob_mirror.memory.content_store import InMemoryContentStore
from blob_mirror.sync.engine import SyncEngine
from blob_mirror.sync.github import GitHubClient
from blob_mirror.sync.registry import MirrorRegistry

from fakes import FakeGateway

REPO_ID = "42"
REPO_NAME = "octo/docs"


@pytest.fixture
def store() -> InMemoryContentStore:
    return InMemoryContentStore()


@pytest.fixture
def registry(store: InMemoryContentStore) -> MirrorRegistry:
    return MirrorRegistry(store)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def engine(registry: MirrorRegistry, gateway: FakeGateway) -> SyncEngine:
    return SyncEngine(registry, gateway, max_length=10, retry_base_delay=0.0)


@pytest.fixture
def mirror_config() -> MirrorConfig:
    return MirrorConfig(
        message_max_length=10,
        gateway_retry_base_delay=0.0,
        lock_poll_interval=0.001,
        lock_timeout=5.0,
    )


@pytest.fixture
def github_files() -> dict[str, str]:
    """Raw files served by the mock GitHub, keyed by ``owner/repo/branch/path``."""
    return {}


def github_handler(files: dict[str, str]) -> Callable[[httpx.Request], httpx.Response]:
    repo = {"id": int(REPO_ID), "full_name": REPO_NAME}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "raw.githubusercontent.com":
            key = request.url.path.lstrip("/")
            if key in files:
                return httpx.Response(200, text=files[key])
            return httpx.Response(404, text="404: Not Found")
        if request.url.path in (f"/repos/{REPO_NAME}", f"/repositories/{REPO_ID}"):
            return httpx.Response(200, json=repo)
        return httpx.Response(404, json={"message": "Not Found"})

    return handler


@pytest.fixture
def github(github_files: dict[str, str]) -> GitHubClient:
    transport = httpx.MockTransport(github_handler(github_files))
    return GitHubClient(GitHubConfig(), client=httpx.AsyncClient(transport=transport))
