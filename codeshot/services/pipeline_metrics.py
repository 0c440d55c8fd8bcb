"""Per-run metrics for the snapshot pipeline."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from codeshot.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StageMetrics:
    """Metrics for a single pipeline stage."""
    name: str
    started_at: float = field(default_factory=time.perf_counter)
    execution_time: float = 0.0
    candidate_count_before: int = 0
    candidate_count_after: int = 0
    api_calls: int = 0
    cache_hits: int = 0
    cache_misses: int = 0

    @property
    def reduction_rate(self) -> float:
        """Share of candidates dropped by this stage."""
        if self.candidate_count_before == 0:
            return 0.0
        return 1.0 - (self.candidate_count_after / self.candidate_count_before)


@dataclass
class PipelineMetrics:
    """Aggregated metrics for one snapshot generation run."""
    run_id: str
    start_time: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None
    stages: Dict[str, StageMetrics] = field(default_factory=dict)

    def start_stage(self, name: str, candidate_count: int = 0) -> StageMetrics:
        stage = StageMetrics(name=name, candidate_count_before=candidate_count)
        self.stages[name] = stage
        return stage

    def end_stage(
        self,
        name: str,
        candidate_count: int,
        api_calls: int = 0,
        cache_hits: int = 0,
        cache_misses: int = 0,
    ) -> None:
        stage = self.stages.get(name)
        if stage is None:
            return
        stage.execution_time = time.perf_counter() - stage.started_at
        stage.candidate_count_after = candidate_count
        stage.api_calls = api_calls
        stage.cache_hits = cache_hits
        stage.cache_misses = cache_misses

    @property
    def total_execution_time(self) -> float:
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    @property
    def total_api_calls(self) -> int:
        return sum(stage.api_calls for stage in self.stages.values())

    @property
    def total_cache_hits(self) -> int:
        return sum(stage.cache_hits for stage in self.stages.values())

    @property
    def total_cache_misses(self) -> int:
        return sum(stage.cache_misses for stage in self.stages.values())

    def finish(self) -> "PipelineMetrics":
        self.end_time = time.perf_counter()
        logger.info("pipeline_metrics", **self.to_dict())
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for reporting."""
        return {
            "run_id": self.run_id,
            "total_execution_time": round(self.total_execution_time, 3),
            "total_api_calls": self.total_api_calls,
            "total_cache_hits": self.total_cache_hits,
            "total_cache_misses": self.total_cache_misses,
            "stages": {
                name: {
                    "execution_time": round(stage.execution_time, 3),
                    "candidates_before": stage.candidate_count_before,
                    "candidates_after": stage.candidate_count_after,
                    "reduction_rate": round(stage.reduction_rate, 3),
                    "api_calls": stage.api_calls,
                    "cache_hits": stage.cache_hits,
                    "cache_misses": stage.cache_misses,
                }
                for name, stage in self.stages.items()
            },
        }
