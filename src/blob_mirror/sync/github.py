"""GitHub access: mirror URL parsing, raw file download and repository lookup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, NamedTuple

import httpx

from blob_mirror.errors import InvalidMirrorUrlError, NotFoundError

if TYPE_CHECKING:
    from blob_mirror.config import GitHubConfig

logger = logging.getLogger(__name__)


class MirrorUrl(NamedTuple):
    owner: str
    repo: str
    path_spec: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_mirror_url(url: str) -> MirrorUrl:
    """Parse a GitHub blob or raw URL into owner, repo and ``branch/path``.

    Accepted forms::

        https://github.com/{owner}/{repo}/blob/{branch}/{path}
        https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{path}
    """
    url = url.strip().strip("<>").split("#", 1)[0].split("?", 1)[0]

    if url.startswith("https://github.com/"):
        parts = url.removeprefix("https://github.com/").split("/", 3)
        if len(parts) == 4 and parts[2] == "blob":
            owner, repo, _, path_spec = parts
            if owner and repo and "/" in path_spec:
                return MirrorUrl(owner, repo, path_spec)
    elif url.startswith("https://raw.githubusercontent.com/"):
        parts = url.removeprefix("https://raw.githubusercontent.com/").split("/", 2)
        if len(parts) == 3:
            owner, repo, path_spec = parts
            if owner and repo and "/" in path_spec:
                return MirrorUrl(owner, repo, path_spec)

    raise InvalidMirrorUrlError(f"The URL must be a file on a GitHub repo: {url}")


class GitHubClient:
    """Thin async client over GitHub's REST API and raw content host."""

    def __init__(self, config: GitHubConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_client = client is None
        headers = {"User-Agent": config.user_agent}
        self._client = client or httpx.AsyncClient(headers=headers, timeout=httpx.Timeout(30.0))

    def raw_url(self, full_name: str, path_spec: str) -> str:
        return f"{self._config.raw_base}/{full_name}/{path_spec}"

    async def fetch_file(self, full_name: str, path_spec: str) -> str:
        """Download a file as text.

        Raises:
            NotFoundError: If the file does not exist on that branch.
            httpx.HTTPError: On any other failure.
        """
        url = self.raw_url(full_name, path_spec)
        logger.debug("Fetching %s", url)
        response = await self._client.get(url)
        if response.status_code == 404:
            raise NotFoundError(f"File not found: {url}")
        response.raise_for_status()
        return response.text

    async def get_repository_id(self, owner: str, repo: str) -> str:
        """Look up the stable numeric ID of ``owner/repo``."""
        data = await self._api_get(f"/repos/{owner}/{repo}", f"{owner}/{repo}")
        return str(data["id"])

    async def get_repository_name(self, repository_id: str) -> str:
        """Look up the current ``owner/repo`` of a repository ID.

        Follows renames and transfers, which is why mirrors store the ID.
        """
        data = await self._api_get(f"/repositories/{repository_id}", repository_id)
        return str(data["full_name"])

    async def _api_get(self, path: str, label: str) -> dict[str, Any]:
        headers = {"Accept": "application/vnd.github+json"}
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"

        response = await self._client.get(f"{self._config.api_base}{path}", headers=headers)
        if response.status_code == 404:
            raise NotFoundError(f"Repository {label} not found")
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
