"""Interfaces of the external systems the snapshot pipeline talks to."""
from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from codeshot.models.snippets import CommitInfo, FileEntry


@runtime_checkable
class RepositoryDataSource(Protocol):
    """Repository host client.

    Implementations raise ``SourceNotFoundError``, ``SourceRateLimitedError``
    or ``SourceTransientError`` so callers can tell failure kinds apart.
    """

    async def fetch_commit_history(self, owner: str, repo: str, limit: int) -> List[CommitInfo]: ...

    async def fetch_file_tree(self, owner: str, repo: str, depth: int) -> List[FileEntry]: ...

    async def fetch_file_content(self, owner: str, repo: str, path: str, ref: str) -> str: ...

    async def aclose(self) -> None: ...


@runtime_checkable
class ScoringBackend(Protocol):
    """Model endpoint that turns a prompt into raw response text."""

    async def score(self, prompt: str) -> str: ...


@runtime_checkable
class Renderer(Protocol):
    """Turns source text into image bytes."""

    async def render(
        self,
        code: str,
        language: str,
        file_path: str,
        theme: str,
        show_line_numbers: bool = False,
        font_size: int = 14,
    ) -> bytes: ...


@runtime_checkable
class ObjectStorage(Protocol):
    """Durable storage for rendered images."""

    async def upload(self, image: bytes, user_id: str, repository_id: str) -> str: ...

    async def delete(self, url: str) -> None: ...
