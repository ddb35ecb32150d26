"""Tests for mirror URL parsing and the GitHub client."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from blob_mirror.errors import InvalidMirrorUrlError, NotFoundError
from blob_mirror.sync.github import GitHubClient, parse_mirror_url


class TestParseMirrorUrl:
    """Blob and raw URLs resolve to owner, repo and ``branch/path``."""

    def test_blob_url(self) -> None:
        parsed = parse_mirror_url("https://github.com/octo/docs/blob/main/docs/guide.md")
        assert (parsed.owner, parsed.repo, parsed.path_spec) == ("octo", "docs", "main/docs/guide.md")
        assert parsed.full_name == "octo/docs"

    def test_raw_url(self) -> None:
        parsed = parse_mirror_url("https://raw.githubusercontent.com/octo/docs/dev/README.md")
        assert parsed.path_spec == "dev/README.md"

    def test_angle_brackets_and_fragment_stripped(self) -> None:
        parsed = parse_mirror_url("<https://github.com/octo/docs/blob/main/README.md#L10>")
        assert parsed.path_spec == "main/README.md"

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/octo/docs/blob/main/README.md",
            "https://github.com/octo/docs",
            "https://github.com/octo/docs/tree/main/docs",
            "https://github.com/octo/docs/blob/main",
            "not a url",
        ],
    )
    def test_rejected(self, url: str) -> None:
        with pytest.raises(InvalidMirrorUrlError):
            parse_mirror_url(url)


class TestGitHubClient:
    """Downloads and repository lookups through a mocked transport."""

    def test_raw_url(self, github: GitHubClient) -> None:
        assert github.raw_url("octo/docs", "main/a.md") == (
            "https://raw.githubusercontent.com/octo/docs/main/a.md"
        )

    def test_fetch_file(self, github: GitHubClient, github_files: dict[str, str]) -> None:
        github_files["octo/docs/main/a.md"] = "# Title\n"
        assert asyncio.run(github.fetch_file("octo/docs", "main/a.md")) == "# Title\n"

    def test_fetch_missing_file(self, github: GitHubClient) -> None:
        with pytest.raises(NotFoundError):
            asyncio.run(github.fetch_file("octo/docs", "main/missing.md"))

    def test_repository_lookups(self, github: GitHubClient) -> None:
        assert asyncio.run(github.get_repository_id("octo", "docs")) == "42"
        assert asyncio.run(github.get_repository_name("42")) == "octo/docs"

    def test_unknown_repository(self, github: GitHubClient) -> None:
        with pytest.raises(NotFoundError):
            asyncio.run(github.get_repository_id("octo", "nope"))

    def test_server_error_raises(self) -> None:
        from blob_mirror.config import GitHubConfig

        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        client = GitHubClient(GitHubConfig(), client=httpx.AsyncClient(transport=transport))
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(client.fetch_file("octo/docs", "main/a.md"))
