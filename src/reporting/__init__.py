"""
src/reporting - Metrics and read-side views over results and run logs.

Module layout
-------------
metrics.py       - per-chunk verdict counts / mean confidence, recombination
logical_runs.py  - merge consecutive run-log rows into logical runs
accuracy.py      - testing-mode accuracy against ground-truth labels
review.py        - human review queue of UNSURE and low-confidence rows

Public interface
----------------
    aggregate_chunk_metrics(results, duration_ms)
    combine_metrics(parts)
    group_logical_runs(entries, gap_ms)
    compute_testing_accuracy(dataset_df)
    build_review_queue(dataset_df, max_confidence)
"""

from .accuracy import compute_testing_accuracy, wilson_confidence_interval
from .logical_runs import group_logical_runs
from .metrics import aggregate_chunk_metrics, combine_metrics, empty_metrics
from .review import build_review_queue

__all__ = [
    "empty_metrics",
    "aggregate_chunk_metrics",
    "combine_metrics",
    "group_logical_runs",
    "compute_testing_accuracy",
    "wilson_confidence_interval",
    "build_review_queue",
]
