"""
Client-side run loop: drives repeated chunk invocations until the work
or the caller's limit runs out.

The loop keeps no state the store does not also hold.  Stopping it at
any point (or crashing between chunks) loses nothing; the next run picks
up the remaining pending rows.
"""

from __future__ import annotations

from typing import Callable

from src.matcher.config import MAX_CHUNK_CALLS
from src.reporting.metrics import combine_metrics, empty_metrics


def run_until_complete(
    run_chunk_fn: Callable[[int | None], dict],
    limit: int | None = None,
    max_calls: int = MAX_CHUNK_CALLS,
) -> dict:
    """
    Invoke ``run_chunk_fn`` until no work remains.

    Each call receives the rows still allowed by ``limit`` (or ``None``
    when uncapped).  The loop stops when a chunk processes nothing, when
    the remaining limit reaches 0, when a chunk processed everything it
    saw pending, or after ``max_calls`` invocations.

    Args:
        run_chunk_fn: Callable taking the remaining limit and returning a
            chunk response dict (see :func:`src.pipeline.batch.run_chunk`).
        limit: Maximum rows for the whole logical run; ``None`` or
            non-positive means uncapped.
        max_calls: Safety cap on the number of chunk invocations.

    Returns:
        The last chunk response with ``total_pending_before`` from the
        first call, summed ``processed``, recombined ``metrics`` and a
        ``chunks`` count of invocations that processed rows.
    """
    remaining = limit if limit is not None and limit > 0 else None

    chunk_metrics: list[dict] = []
    total_processed = 0
    first_pending_before: int | None = None
    last_response: dict | None = None

    for _ in range(max_calls):
        response = run_chunk_fn(remaining)
        if first_pending_before is None:
            first_pending_before = response["total_pending_before"]
        last_response = response

        processed = response.get("processed") or 0
        if processed <= 0:
            break

        total_processed += processed
        chunk_metrics.append(response["metrics"])

        if remaining is not None:
            remaining -= processed
            if remaining <= 0:
                break

        if processed >= response["total_pending_before"]:
            break

    if last_response is None:
        return {
            "total_pending_before": 0,
            "processed": 0,
            "metrics": empty_metrics(),
            "chunks": 0,
        }

    aggregated = dict(last_response)
    aggregated["total_pending_before"] = first_pending_before
    aggregated["processed"] = total_processed
    aggregated["metrics"] = combine_metrics(chunk_metrics)
    aggregated["chunks"] = len(chunk_metrics)
    return aggregated
