"""Snapshot generation, listing, deletion and invalidation APIs."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from codeshot.api.deps import get_access_token, get_current_user_id, get_snapshot_pipeline
from codeshot.core.logging import get_logger
from codeshot.db.models import CodeSnapshot
from codeshot.models.snippets import GenerationOptions
from codeshot.services.snapshot_pipeline import SnapshotPipeline

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/snapshots", tags=["Snapshots"])


class GenerateRequest(BaseModel):
    repository_id: str = Field(min_length=1, max_length=64)
    options: GenerationOptions = Field(default_factory=GenerationOptions)


class InvalidateRequest(BaseModel):
    head_sha: str = Field(min_length=1, max_length=64)


class SnapshotResponse(BaseModel):
    id: str
    repository_id: str
    analysis_id: str
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
    is_stale: bool
    last_commit_sha: str
    created_at: datetime

    @classmethod
    def from_model(cls, snapshot: CodeSnapshot) -> "SnapshotResponse":
        return cls(
            id=snapshot.id,
            repository_id=snapshot.repository_id,
            analysis_id=snapshot.analysis_id,
            file_path=snapshot.file_path,
            start_line=snapshot.start_line,
            end_line=snapshot.end_line,
            function_name=snapshot.function_name,
            language=snapshot.language,
            lines_of_code=snapshot.lines_of_code,
            selection_score=snapshot.selection_score,
            selection_reason=snapshot.selection_reason,
            image_url=snapshot.image_url,
            image_size=snapshot.image_size,
            image_width=snapshot.image_width,
            image_height=snapshot.image_height,
            theme=snapshot.theme,
            show_line_numbers=snapshot.show_line_numbers,
            font_size=snapshot.font_size,
            is_stale=snapshot.is_stale,
            last_commit_sha=snapshot.last_commit_sha,
            created_at=snapshot.created_at,
        )


class SnapshotListResponse(BaseModel):
    items: List[SnapshotResponse]
    count: int

    @classmethod
    def from_models(cls, snapshots: List[CodeSnapshot]) -> "SnapshotListResponse":
        return cls(items=[SnapshotResponse.from_model(item) for item in snapshots], count=len(snapshots))


class InvalidateResponse(BaseModel):
    repository_id: str
    marked_stale: int


@router.post("/generate", response_model=SnapshotListResponse, summary="Generate snapshots for a repository")
async def generate_snapshots(
    payload: GenerateRequest,
    user_id: str = Depends(get_current_user_id),
    access_token: Optional[str] = Depends(get_access_token),
    pipeline: SnapshotPipeline = Depends(get_snapshot_pipeline),
) -> SnapshotListResponse:
    snapshots = await pipeline.generate_snapshots(payload.repository_id, user_id, access_token, payload.options)
    return SnapshotListResponse.from_models(snapshots)


@router.get("/snapshot/{snapshot_id}", response_model=SnapshotResponse, summary="Get one snapshot")
async def get_snapshot(
    snapshot_id: str,
    user_id: str = Depends(get_current_user_id),
    pipeline: SnapshotPipeline = Depends(get_snapshot_pipeline),
) -> SnapshotResponse:
    snapshot = await pipeline.get_snapshot(snapshot_id, user_id)
    return SnapshotResponse.from_model(snapshot)


@router.delete("/snapshot/{snapshot_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a snapshot")
async def delete_snapshot(
    snapshot_id: str,
    user_id: str = Depends(get_current_user_id),
    pipeline: SnapshotPipeline = Depends(get_snapshot_pipeline),
) -> None:
    await pipeline.delete_snapshot(snapshot_id, user_id)


@router.get("/{repository_id}", response_model=SnapshotListResponse, summary="List fresh snapshots")
async def list_snapshots(
    repository_id: str,
    user_id: str = Depends(get_current_user_id),
    pipeline: SnapshotPipeline = Depends(get_snapshot_pipeline),
) -> SnapshotListResponse:
    snapshots = await pipeline.list_fresh_snapshots(repository_id, user_id)
    return SnapshotListResponse.from_models(snapshots)


@router.post("/{repository_id}/invalidate", response_model=InvalidateResponse, summary="Mark outdated snapshots stale")
async def invalidate_snapshots(
    repository_id: str,
    payload: InvalidateRequest,
    user_id: str = Depends(get_current_user_id),
    pipeline: SnapshotPipeline = Depends(get_snapshot_pipeline),
) -> InvalidateResponse:
    logger.info("invalidation_requested", repository_id=repository_id, user_id=user_id, head_sha=payload.head_sha)
    await pipeline.get_owned_repository(repository_id, user_id)
    count = await pipeline.invalidate_on_new_commit(repository_id, payload.head_sha)
    return InvalidateResponse(repository_id=repository_id, marked_stale=count)
