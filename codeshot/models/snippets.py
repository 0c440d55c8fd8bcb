"""Snippet data model: candidates, scored snippets and run context."""
from __future__ import annotations

import hashlib
import math
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StringConstraints,
    field_validator,
)

Level = Literal["low", "medium", "high"]
NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

SCORE_MIN = 0
SCORE_MAX = 100
HEURISTIC_REASON = "heuristic analysis (AI unavailable)"


# ---------------------------------------------------------------------------
# Repository data
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileEntry:
    """One entry of a repository file tree."""

    path: str
    type: str = "file"
    size: int = 0


@dataclass(frozen=True, slots=True)
class CommitInfo:
    """A commit as returned by the repository data source."""

    sha: str
    message: str
    date: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class RepositoryContext:
    """Read-only view of a repository shared by every scoring call in a run."""

    repo_name: str
    repo_description: str
    primary_language: str
    recent_commits: Sequence[CommitInfo] = ()
    file_tree: Sequence[FileEntry] = ()

    @property
    def recent_commit_messages(self) -> List[str]:
        return [commit.message for commit in self.recent_commits]


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Candidate:
    """A proposed code excerpt. ``content`` holds the whole file once fetched."""

    file_path: str
    start_line: int
    end_line: int
    language: str
    lines_of_code: int
    file_size: int = 0
    function_name: Optional[str] = None
    content: Optional[str] = None
    last_modified: Optional[datetime] = None
    commit_mentions: int = 0

    def with_content(self, content: str) -> "Candidate":
        return replace(self, content=content)

    def content_hash(self) -> str:
        """SHA-256 over the caching identity ``(file_path, start, end, content)``."""
        identity = f"{self.file_path}:{self.start_line}:{self.end_line}:{self.content or ''}"
        return hashlib.sha256(identity.encode("utf-8")).hexdigest()

    def extract_lines(self) -> str:
        """Return the 1-based inclusive line range from the fetched content."""
        if not self.content:
            return ""
        lines = self.content.split("\n")
        return "\n".join(lines[self.start_line - 1:self.end_line])

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_modified"] = self.last_modified.isoformat() if self.last_modified else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        values = dict(data)
        if values.get("last_modified"):
            values["last_modified"] = datetime.fromisoformat(values["last_modified"])
        return cls(**values)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class ScoreSource(str, Enum):
    """Provenance of a selection score."""

    AI = "ai"
    HEURISTIC = "heuristic"


class AIAnalysis(BaseModel):
    """Validated scoring fields returned by the AI backend.

    Accepts the camelCase keys the prompt asks for as well as the snake_case
    field names used when the analysis is read back from the cache.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    selection_score: Union[StrictInt, StrictFloat] = Field(alias="selectionScore")
    selection_reason: NonEmptyStr = Field(alias="selectionReason")
    complexity: Level
    significance: Level
    is_core_functionality: StrictBool = Field(alias="isCoreFunctionality")
    is_recently_changed: StrictBool = Field(alias="isRecentlyChanged")
    technical_interest: NonEmptyStr = Field(alias="technicalInterest")

    @field_validator("selection_score")
    @classmethod
    def _clamp_score(cls, value: Union[int, float]) -> int:
        if not math.isfinite(value):
            raise ValueError("selection score must be finite")
        return int(round(max(SCORE_MIN, min(SCORE_MAX, value))))


@dataclass(frozen=True, slots=True)
class ScoredSnippet:
    """A candidate with its selection score and rationale."""

    candidate: Candidate
    selection_score: int
    selection_reason: str
    source: ScoreSource = ScoreSource.HEURISTIC
    complexity: Optional[Level] = None
    significance: Optional[Level] = None
    is_core_functionality: Optional[bool] = None
    is_recently_changed: Optional[bool] = None
    technical_interest: Optional[str] = None

    @classmethod
    def from_analysis(cls, candidate: Candidate, analysis: AIAnalysis) -> "ScoredSnippet":
        return cls(
            candidate=candidate,
            selection_score=int(analysis.selection_score),
            selection_reason=analysis.selection_reason,
            source=ScoreSource.AI,
            complexity=analysis.complexity,
            significance=analysis.significance,
            is_core_functionality=analysis.is_core_functionality,
            is_recently_changed=analysis.is_recently_changed,
            technical_interest=analysis.technical_interest,
        )

    @classmethod
    def heuristic(cls, candidate: Candidate, score: int) -> "ScoredSnippet":
        return cls(
            candidate=candidate,
            selection_score=max(SCORE_MIN, min(SCORE_MAX, int(score))),
            selection_reason=HEURISTIC_REASON,
            source=ScoreSource.HEURISTIC,
        )

    @property
    def file_path(self) -> str:
        return self.candidate.file_path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidate": self.candidate.to_dict(),
            "selection_score": self.selection_score,
            "selection_reason": self.selection_reason,
            "source": self.source.value,
            "complexity": self.complexity,
            "significance": self.significance,
            "is_core_functionality": self.is_core_functionality,
            "is_recently_changed": self.is_recently_changed,
            "technical_interest": self.technical_interest,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoredSnippet":
        return cls(
            candidate=Candidate.from_dict(data["candidate"]),
            selection_score=int(data["selection_score"]),
            selection_reason=data["selection_reason"],
            source=ScoreSource(data.get("source", ScoreSource.HEURISTIC.value)),
            complexity=data.get("complexity"),
            significance=data.get("significance"),
            is_core_functionality=data.get("is_core_functionality"),
            is_recently_changed=data.get("is_recently_changed"),
            technical_interest=data.get("technical_interest"),
        )


# ---------------------------------------------------------------------------
# Generation options
# ---------------------------------------------------------------------------


class GenerationOptions(BaseModel):
    """Caller-supplied knobs for a snapshot generation run."""

    max_snippets: Optional[int] = Field(default=None, ge=1, le=20)
    theme: Optional[str] = Field(default=None, max_length=64)
    show_line_numbers: Optional[bool] = None
    font_size: Optional[int] = Field(default=None, ge=8, le=24)
    force_regenerate: bool = False


@dataclass(slots=True)
class ImageDimensions:
    width: int
    height: int


@dataclass(slots=True)
class RenderOptions:
    theme: str
    show_line_numbers: bool
    font_size: int
