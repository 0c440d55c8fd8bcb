"""Tests for codeshot/services/pipeline_metrics.py"""

from __future__ import annotations

from codeshot.services.pipeline_metrics import PipelineMetrics


def test_pipeline_metrics_aggregate_stages() -> None:
    metrics = PipelineMetrics(run_id="run-1")
    metrics.start_stage("filter", 10)
    metrics.end_stage("filter", 4)
    metrics.start_stage("score", 4)
    metrics.end_stage("score", 4, api_calls=3, cache_hits=1, cache_misses=3)
    metrics.end_stage("unknown", 1)

    report = metrics.finish().to_dict()

    assert report["run_id"] == "run-1"
    assert report["total_api_calls"] == 3
    assert report["total_cache_hits"] == 1
    assert report["stages"]["filter"]["reduction_rate"] == 0.6
    assert set(report["stages"]) == {"filter", "score"}
