"""Storage gateway for repositories, project analyses and code snapshots."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import delete, update
from sqlmodel import select

from codeshot.db import get_session
from codeshot.db.models import CodeSnapshot, ProjectAnalysis, RepositoryRecord
from codeshot.services.base_service import BaseService, singleton


# ---------------------------------------------------------------------------
# Data payloads
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class RepositoryCreate:
    user_id: str
    name: str
    full_name: str
    description: Optional[str] = None


@dataclass(slots=True)
class SnapshotCreate:
    repository_id: str
    analysis_id: str
    user_id: str
    file_path: str
    start_line: int
    end_line: int
    function_name: Optional[str]
    language: str
    lines_of_code: int
    selection_score: int
    selection_reason: str
    image_url: str
    image_size: int
    image_width: int
    image_height: int
    theme: str
    show_line_numbers: bool
    font_size: int
    last_commit_sha: str


# ---------------------------------------------------------------------------
# Gateway implementation
# ---------------------------------------------------------------------------


@singleton
class SnapshotStore(BaseService):
    """Coordinates relational persistence for the snapshot pipeline."""

    async def create_repository(self, payload: RepositoryCreate) -> RepositoryRecord:
        async with get_session() as session:
            repository = RepositoryRecord(
                user_id=payload.user_id,
                name=payload.name,
                full_name=payload.full_name,
                description=payload.description,
            )
            session.add(repository)
            await session.flush()
            return repository

    async def get_repository(self, repository_id: str) -> Optional[RepositoryRecord]:
        async with get_session() as session:
            return await session.get(RepositoryRecord, repository_id)

    async def create_analysis(self, repository_id: str, summary: str) -> ProjectAnalysis:
        async with get_session() as session:
            analysis = ProjectAnalysis(repository_id=repository_id, summary=summary)
            session.add(analysis)
            await session.flush()
            return analysis

    async def get_latest_analysis(self, repository_id: str) -> Optional[ProjectAnalysis]:
        async with get_session() as session:
            stmt = (
                select(ProjectAnalysis)
                .where(ProjectAnalysis.repository_id == repository_id)
                .order_by(ProjectAnalysis.created_at.desc())
                .limit(1)
            )
            result = await session.exec(stmt)
            return result.first()

    async def create_snapshot(self, payload: SnapshotCreate) -> CodeSnapshot:
        async with get_session() as session:
            snapshot = CodeSnapshot(
                repository_id=payload.repository_id,
                analysis_id=payload.analysis_id,
                user_id=payload.user_id,
                file_path=payload.file_path,
                start_line=payload.start_line,
                end_line=payload.end_line,
                function_name=payload.function_name,
                language=payload.language,
                lines_of_code=payload.lines_of_code,
                selection_score=payload.selection_score,
                selection_reason=payload.selection_reason,
                image_url=payload.image_url,
                image_size=payload.image_size,
                image_width=payload.image_width,
                image_height=payload.image_height,
                theme=payload.theme,
                show_line_numbers=payload.show_line_numbers,
                font_size=payload.font_size,
                is_stale=False,
                last_commit_sha=payload.last_commit_sha,
            )
            session.add(snapshot)
            await session.flush()
            return snapshot

    async def find_fresh_snapshots(self, repository_id: str, user_id: str) -> List[CodeSnapshot]:
        """Non-stale snapshots of a repository owned by ``user_id``, best score first."""
        async with get_session() as session:
            stmt = (
                select(CodeSnapshot)
                .where(
                    CodeSnapshot.repository_id == repository_id,
                    CodeSnapshot.user_id == user_id,
                    CodeSnapshot.is_stale == False,  # noqa: E712
                )
                .order_by(CodeSnapshot.selection_score.desc(), CodeSnapshot.created_at)
            )
            result = await session.exec(stmt)
            return list(result.all())

    async def list_repository_snapshots(self, repository_id: str) -> List[CodeSnapshot]:
        """All snapshots of a repository regardless of owner or staleness."""
        async with get_session() as session:
            stmt = (
                select(CodeSnapshot)
                .where(CodeSnapshot.repository_id == repository_id)
                .order_by(CodeSnapshot.created_at)
            )
            result = await session.exec(stmt)
            return list(result.all())

    async def mark_stale(self, repository_id: str, new_sha: str) -> int:
        """
        Flag fresh snapshots produced at another commit as stale.

        A single filtered UPDATE touching only ``is_stale``; snapshots that
        are already stale or match ``new_sha`` are not selected.
        """
        async with get_session() as session:
            stmt = (
                update(CodeSnapshot)
                .where(
                    CodeSnapshot.repository_id == repository_id,
                    CodeSnapshot.is_stale == False,  # noqa: E712
                    CodeSnapshot.last_commit_sha != new_sha,
                )
                .values(is_stale=True)
            )
            result = await session.exec(stmt)
            return result.rowcount or 0

    async def get_snapshot(self, snapshot_id: str) -> Optional[CodeSnapshot]:
        async with get_session() as session:
            return await session.get(CodeSnapshot, snapshot_id)

    async def delete_snapshot(self, snapshot_id: str) -> bool:
        async with get_session() as session:
            result = await session.exec(delete(CodeSnapshot).where(CodeSnapshot.id == snapshot_id))
            return bool(result.rowcount)
