"""Database models for repositories, project analyses and code snapshots."""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import Column, Index, Text
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return uuid4().hex


# ---------------------------------------------------------------------------
# Repositories and analyses
# ---------------------------------------------------------------------------


class RepositoryRecord(SQLModel, table=True):
    """A repository connected by a user."""

    __tablename__ = "repository"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    user_id: str = Field(nullable=False, index=True, max_length=64)
    name: str = Field(max_length=255)
    full_name: str = Field(max_length=255, description="owner/repo")
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)

    @property
    def owner_and_name(self) -> tuple[str, str]:
        owner, _, repo = self.full_name.partition("/")
        return owner, repo


class ProjectAnalysis(SQLModel, table=True):
    """Natural-language project summary produced by the analysis generator."""

    __tablename__ = "project_analysis"

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    repository_id: str = Field(foreign_key="repository.id", nullable=False, index=True)
    summary: str = Field(default="", sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class CodeSnapshot(SQLModel, table=True):
    """A rendered code excerpt persisted after a successful render and upload."""

    __tablename__ = "code_snapshot"
    __table_args__ = (
        Index("ix_snapshot_repo_stale_score", "repository_id", "is_stale", "selection_score"),
        Index("ix_snapshot_user_repo_stale", "user_id", "repository_id", "is_stale"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=64)
    repository_id: str = Field(foreign_key="repository.id", nullable=False, index=True)
    analysis_id: str = Field(foreign_key="project_analysis.id", nullable=False, index=True)
    user_id: str = Field(nullable=False, index=True, max_length=64)

    # Snippet metadata
    file_path: str = Field(max_length=1024)
    start_line: int = Field(ge=1)
    end_line: int = Field(ge=1)
    function_name: Optional[str] = Field(default=None, max_length=255)
    language: str = Field(max_length=64)
    lines_of_code: int = Field(ge=1)

    # Selection scoring
    selection_score: int = Field(ge=0, le=100)
    selection_reason: str = Field(sa_column=Column(Text, nullable=False))

    # Image data
    image_url: str = Field(max_length=2048)
    image_size: int = Field(ge=0)
    image_width: int = Field(ge=1)
    image_height: int = Field(ge=1)

    # Render options
    theme: str = Field(default="nord", max_length=64)
    show_line_numbers: bool = Field(default=False)
    font_size: int = Field(default=14, ge=8, le=24)

    # Staleness
    is_stale: bool = Field(default=False, nullable=False, index=True)
    last_commit_sha: str = Field(max_length=64, nullable=False)

    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


__all__ = [
    "RepositoryRecord",
    "ProjectAnalysis",
    "CodeSnapshot",
]
