"""
GitHub数据源 - repository commits, tree and file content over the REST API
"""
from datetime import datetime
from typing import Any, List, Optional
from urllib.parse import quote

import httpx

from codeshot.core.config import Settings, get_settings
from codeshot.core.errors import (
    RepositorySourceError,
    SourceNotFoundError,
    SourceRateLimitedError,
    SourceTransientError,
)
from codeshot.core.logging import get_logger
from codeshot.models.snippets import CommitInfo, FileEntry

logger = get_logger(__name__)


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class GitHubDataSource:
    """GitHub REST client implementing ``RepositoryDataSource``."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        self.client = client or httpx.AsyncClient(
            base_url=self.settings.github_api_url.rstrip("/"),
            timeout=httpx.Timeout(self.settings.github_timeout),
            headers=headers,
        )

    async def _get(self, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.get(path, **kwargs)
        except httpx.TransportError as e:
            logger.warning("github_transport_error", path=path, error=str(e))
            raise SourceTransientError(f"GitHub request failed: {e}", path=path)

        if response.status_code < 400:
            return response

        status = response.status_code
        if status == 404:
            raise SourceNotFoundError(f"GitHub resource not found: {path}", path=path)
        if status == 429 or (status == 403 and response.headers.get("x-ratelimit-remaining") == "0"):
            raise SourceRateLimitedError("GitHub rate limit exceeded", path=path)
        if status >= 500:
            raise SourceTransientError(f"GitHub returned {status}", path=path)

        logger.error("github_request_rejected", path=path, status_code=status, detail=response.text[:200])
        raise RepositorySourceError(f"GitHub request rejected with {status}", path=path)

    def _json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            path = response.request.url.path
            logger.warning("github_malformed_response", path=path, error=str(e))
            raise SourceTransientError(f"GitHub returned malformed JSON: {e}", path=path)

    async def fetch_commit_history(self, owner: str, repo: str, limit: int) -> List[CommitInfo]:
        path = f"/repos/{owner}/{repo}/commits"
        response = await self._get(path, params={"per_page": min(limit, 100)})
        commits = []
        try:
            for item in self._json(response)[:limit]:
                commit = item.get("commit") or {}
                author = commit.get("author") or {}
                commits.append(CommitInfo(
                    sha=item["sha"],
                    message=commit.get("message", ""),
                    date=_parse_date(author.get("date")),
                ))
        except (KeyError, TypeError, AttributeError) as e:
            raise SourceTransientError(f"Unexpected commit payload: {e!r}", path=path)
        return commits

    async def fetch_file_tree(self, owner: str, repo: str, depth: int) -> List[FileEntry]:
        """Recursive tree of the default branch, limited to ``depth`` directory levels."""
        response = await self._get(f"/repos/{owner}/{repo}/git/trees/HEAD", params={"recursive": "1"})
        data = self._json(response)
        if not isinstance(data, dict):
            raise SourceTransientError("Unexpected tree payload", path=response.request.url.path)
        if data.get("truncated"):
            logger.warning("github_tree_truncated", owner=owner, repo=repo)

        entries = []
        for item in data.get("tree", []):
            path = item.get("path", "")
            if path.count("/") >= depth:
                continue
            entries.append(FileEntry(
                path=path,
                type="file" if item.get("type") == "blob" else "dir",
                size=int(item.get("size") or 0),
            ))
        return entries

    async def fetch_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        response = await self._get(
            f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}",
            params={"ref": ref},
            headers={"Accept": "application/vnd.github.raw"},
        )
        return response.text

    async def aclose(self) -> None:
        await self.client.aclose()
