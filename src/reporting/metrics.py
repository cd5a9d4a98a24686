"""
Per-chunk verdict metrics and their recombination across chunks.

A chunk's metrics are counts per verdict plus, per verdict bucket, the
mean confidence over only the results whose confidence parsed.  An empty
bucket averages to ``None``, never 0 or NaN.

Recombination (used by the client-side run loop and by logical-run
reconstruction) sums counts and durations and recombines averages as
``Σ(avg_i × n_i) / Σ(n_i)`` over the parts with ``n_i > 0`` and a
non-null average.
"""

from __future__ import annotations

from typing import Iterable

from src.matcher.models import DIFFERENT, SAME, UNSURE, ClassificationResult
from src.matcher.parser import parse_confidence

# verdict → (count column, average column)
BUCKETS: dict[str, tuple[str, str]] = {
    SAME: ("count_same", "avg_conf_same"),
    DIFFERENT: ("count_diff", "avg_conf_diff"),
    UNSURE: ("count_unsure", "avg_conf_unsure"),
}

METRIC_KEYS: list[str] = [
    "count_same",
    "count_diff",
    "count_unsure",
    "avg_conf_same",
    "avg_conf_diff",
    "avg_conf_unsure",
    "duration_ms",
]


def empty_metrics() -> dict:
    """Metrics for a chunk that processed nothing."""
    return {
        "count_same": 0,
        "count_diff": 0,
        "count_unsure": 0,
        "avg_conf_same": None,
        "avg_conf_diff": None,
        "avg_conf_unsure": None,
        "duration_ms": 0,
    }


def aggregate_chunk_metrics(
    results: Iterable[ClassificationResult],
    duration_ms: int,
) -> dict:
    """
    Count verdicts and average the parsable confidences per bucket.

    Args:
        results: Classification results of one chunk.
        duration_ms: Wall-clock duration of the chunk's dispatch.

    Returns:
        Dict with the keys in ``METRIC_KEYS``.
    """
    counts = {verdict: 0 for verdict in BUCKETS}
    conf_sums = {verdict: 0.0 for verdict in BUCKETS}
    conf_ns = {verdict: 0 for verdict in BUCKETS}

    for result in results:
        if result.verdict not in BUCKETS:
            continue
        counts[result.verdict] += 1
        confidence = parse_confidence(result.notes)
        if confidence is not None:
            conf_sums[result.verdict] += confidence
            conf_ns[result.verdict] += 1

    metrics = empty_metrics()
    for verdict, (count_key, avg_key) in BUCKETS.items():
        metrics[count_key] = counts[verdict]
        metrics[avg_key] = conf_sums[verdict] / conf_ns[verdict] if conf_ns[verdict] else None
    metrics["duration_ms"] = int(duration_ms)
    return metrics


def combine_metrics(parts: Iterable[dict]) -> dict:
    """
    Recombine several chunks' metrics into one.

    Each part's average is weighted by its bucket count.  Parts whose
    average is ``None`` or whose count is 0 contribute to the counts but
    not to the average.

    Args:
        parts: Metric dicts (chunk metrics or flattened run-log rows).

    Returns:
        Combined metric dict with the keys in ``METRIC_KEYS``.
    """
    combined = empty_metrics()
    weighted = {avg_key: 0.0 for _, avg_key in BUCKETS.values()}
    weights = {avg_key: 0 for _, avg_key in BUCKETS.values()}

    for part in parts:
        for count_key, avg_key in BUCKETS.values():
            n = int(part.get(count_key) or 0)
            combined[count_key] += n
            avg = part.get(avg_key)
            if avg is not None and n > 0:
                weighted[avg_key] += float(avg) * n
                weights[avg_key] += n
        combined["duration_ms"] += int(part.get("duration_ms") or 0)

    for avg_key, total_n in weights.items():
        combined[avg_key] = weighted[avg_key] / total_n if total_n else None

    return combined
