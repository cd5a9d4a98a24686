"""
Unit tests for src/reporting/metrics.py.

Covers:
- aggregate_chunk_metrics: verdict counts, averages over parsable
  confidences only, None for empty buckets.
- combine_metrics: count-weighted recombination of averages.
"""

from __future__ import annotations

import pytest

from src.matcher.models import ClassificationResult
from src.reporting.metrics import aggregate_chunk_metrics, combine_metrics, empty_metrics


def _result(row: int, verdict: str, notes: str) -> ClassificationResult:
    score = {"SAME": 1, "DIFFERENT": 0, "UNSURE": 2}[verdict]
    return ClassificationResult(row_index=row, verdict=verdict, match_score=score, notes=notes)


class TestAggregateChunkMetrics:
    """Single-chunk metrics."""

    def test_counts_and_averages(self):
        results = [
            _result(2, "SAME", "confidence=0.90; a"),
            _result(3, "SAME", "confidence=0.70; b"),
            _result(4, "DIFFERENT", "confidence=0.60; c"),
            _result(5, "UNSURE", "confidence=0.50; Fallback UNSURE due to error: x"),
        ]
        metrics = aggregate_chunk_metrics(results, duration_ms=1234)
        assert metrics["count_same"] == 2
        assert metrics["count_diff"] == 1
        assert metrics["count_unsure"] == 1
        assert metrics["avg_conf_same"] == pytest.approx(0.8)
        assert metrics["avg_conf_diff"] == pytest.approx(0.6)
        assert metrics["avg_conf_unsure"] == pytest.approx(0.5)
        assert metrics["duration_ms"] == 1234

    def test_unparsable_confidence_counted_but_not_averaged(self):
        results = [
            _result(2, "SAME", "confidence=0.80; a"),
            _result(3, "SAME", "no confidence given"),
        ]
        metrics = aggregate_chunk_metrics(results, duration_ms=0)
        assert metrics["count_same"] == 2
        assert metrics["avg_conf_same"] == pytest.approx(0.8)

    def test_empty_bucket_average_is_none(self):
        metrics = aggregate_chunk_metrics([_result(2, "SAME", "confidence=0.9; a")], 10)
        assert metrics["avg_conf_diff"] is None
        assert metrics["avg_conf_unsure"] is None

    def test_no_results(self):
        assert aggregate_chunk_metrics([], 0) == empty_metrics()


class TestCombineMetrics:
    """Recombination across chunks."""

    def test_weighted_by_bucket_count(self):
        part_a = {**empty_metrics(), "count_same": 2, "avg_conf_same": 0.9, "duration_ms": 100}
        part_b = {**empty_metrics(), "count_same": 3, "avg_conf_same": 0.7, "duration_ms": 250}
        combined = combine_metrics([part_a, part_b])
        assert combined["count_same"] == 5
        assert combined["avg_conf_same"] == pytest.approx(0.78)
        assert combined["duration_ms"] == 350

    def test_parts_without_average_do_not_dilute(self):
        part_a = {**empty_metrics(), "count_diff": 4, "avg_conf_diff": None}
        part_b = {**empty_metrics(), "count_diff": 1, "avg_conf_diff": 0.6}
        combined = combine_metrics([part_a, part_b])
        assert combined["count_diff"] == 5
        assert combined["avg_conf_diff"] == pytest.approx(0.6)

    def test_all_empty_is_none(self):
        combined = combine_metrics([empty_metrics(), empty_metrics()])
        assert combined["avg_conf_same"] is None
        assert combined["count_same"] == 0

    def test_no_parts(self):
        assert combine_metrics([]) == empty_metrics()
