"""
Chunk planning, the bounded-concurrency batch dispatcher, and the
single-invocation pipeline ``run_chunk``.

One chunk invocation:
  1. reads the Config tab snapshot,
  2. selects pending records (rows with no score and no verdict),
  3. caps them by the caller's remaining limit and BATCH_SIZE,
  4. classifies them with ``parallel`` worker threads,
  5. writes all results back in one store write,
  6. appends one run-log row.

Nothing is carried between invocations: the store is the only state, so
calling ``run_chunk`` again continues wherever the previous call
stopped.
"""

from __future__ import annotations

import random
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable

from config.run_params import DEFAULT_CHUNK_SIZE, DEFAULT_PARALLEL
from src.matcher.client import (
    ClassifierClient,
    fallback_result,
    request_classification,
    result_from_outcome,
)
from src.matcher.config import FAILED_ROWS_LOG, resolve_chunk_size, resolve_model
from src.matcher.models import ClassificationResult, PendingRecord
from src.matcher.parser import Fallback
from src.matcher.retry import APIError, log_failed_row
from src.reporting.accuracy import compute_testing_accuracy
from src.reporting.metrics import aggregate_chunk_metrics, empty_metrics
from src.store.dataset import read_dataset_frame, read_pending_records, write_results
from src.store.run_log import append_run_log, build_run_log_entry, run_log_tab
from src.store.workbook import CsvWorkbook

SAMPLE_UPDATES = 5


# ---------------------------------------------------------------------------
# Chunk Planner
# ---------------------------------------------------------------------------

def plan_chunk(
    pending: list[PendingRecord],
    limit: int | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> list[PendingRecord]:
    """
    Bound the records handed to one dispatcher invocation.

    Returns the prefix of ``pending`` of length
    ``min(len(pending), limit, chunk_size)``.  ``limit=None`` means no
    caller cap.  A non-positive ``chunk_size`` falls back to the default.

    Args:
        pending: All currently pending records, in sheet order.
        limit: Rows remaining in the caller's logical run, if capped.
        chunk_size: Per-invocation row cap (from BATCH_SIZE).

    Returns:
        The records to process in this invocation.
    """
    if not chunk_size or chunk_size <= 0:
        chunk_size = DEFAULT_CHUNK_SIZE

    bound = min(len(pending), chunk_size)
    if limit is not None:
        bound = min(bound, max(0, int(limit)))
    return pending[:bound]


# ---------------------------------------------------------------------------
# Batch Dispatcher
# ---------------------------------------------------------------------------

class RecordCursor:
    """Hands out record positions; no position is ever claimed twice."""

    def __init__(self, total: int) -> None:
        self._total = total
        self._next = 0
        self._lock = threading.Lock()

    def claim(self) -> int | None:
        with self._lock:
            if self._next >= self._total:
                return None
            position = self._next
            self._next += 1
            return position


def _audit_failure(
    record: PendingRecord,
    store_id: str,
    tab_name: str,
    category: str,
    message: str,
    failed_log_path: Path,
) -> None:
    # The audit log is diagnostic; an unwritable log must not cost the row its result
    try:
        log_failed_row(record.row_index, store_id, tab_name, category, message, failed_log_path)
    except OSError as exc:
        print(f"  Row {record.row_index}: could not write failed-row log ({exc})")


def classify_with_fallback(
    client: ClassifierClient,
    record: PendingRecord,
    config: dict[str, str],
    store_id: str = "",
    tab_name: str = "",
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
    failed_log_path: Path = FAILED_ROWS_LOG,
) -> ClassificationResult:
    """
    Classify one record, converting any row-level failure into UNSURE.

    Exhausted retries, unretryable service errors and unparseable output
    all yield the synthetic fallback result and an audit-log line; none
    of them propagate, and neither does a failure to write the log.
    """
    try:
        outcome = request_classification(client, record, config, sleep=sleep, rng=rng)
    except Exception as exc:
        category, message = APIError.categorize(exc)
        print(f"  Row {record.row_index}: fallback UNSURE [{category}]")
        _audit_failure(record, store_id, tab_name, category, message, failed_log_path)
        return fallback_result(record, message)

    if isinstance(outcome, Fallback):
        print(f"  Row {record.row_index}: fallback UNSURE [{APIError.INVALID_RESPONSE}]")
        _audit_failure(
            record, store_id, tab_name,
            APIError.INVALID_RESPONSE, outcome.reason, failed_log_path,
        )
    return result_from_outcome(record, outcome)


def dispatch_batch(
    records: list[PendingRecord],
    client: ClassifierClient,
    config: dict[str, str],
    parallel: int = DEFAULT_PARALLEL,
    store_id: str = "",
    tab_name: str = "",
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
    failed_log_path: Path = FAILED_ROWS_LOG,
) -> list[ClassificationResult]:
    """
    Classify ``records`` with ``min(parallel, len(records))`` workers.

    Each worker repeatedly claims the next unclaimed record and
    classifies it.  A failing row becomes an UNSURE fallback and the
    worker moves on, so exactly one result is produced per input record.
    Results come back in completion order; pair them to records by
    ``row_index``.

    Args:
        records: Records of this chunk.
        client: Shared classifier client.
        config: Config-tab snapshot for this chunk.
        parallel: Requested worker count (the caller clamps it to range).
        store_id: Store identifier (for the failed-row log).
        tab_name: Dataset tab (for the failed-row log).
        sleep: Sleep function for retry backoff.
        rng: Random source for backoff jitter.
        failed_log_path: JSONL audit log for row-level failures.

    Returns:
        One :class:`ClassificationResult` per input record.
    """
    if not records:
        return []

    cursor = RecordCursor(len(records))
    results: list[ClassificationResult] = []
    results_lock = threading.Lock()

    def worker() -> None:
        while True:
            position = cursor.claim()
            if position is None:
                return
            result = classify_with_fallback(
                client,
                records[position],
                config,
                store_id=store_id,
                tab_name=tab_name,
                sleep=sleep,
                rng=rng,
                failed_log_path=failed_log_path,
            )
            with results_lock:
                results.append(result)

    worker_count = min(max(1, parallel), len(records))
    with ThreadPoolExecutor(max_workers=worker_count) as executor:
        futures = [executor.submit(worker) for _ in range(worker_count)]
        for future in futures:
            future.result()

    return results


# ---------------------------------------------------------------------------
# One chunk invocation
# ---------------------------------------------------------------------------

def _chunk_response(
    store_id: str,
    tab_name: str,
    mode: str,
    total_pending_before: int,
    parallel: int,
    processed: int = 0,
    metrics: dict | None = None,
    testing_metrics: dict | None = None,
    sample_updates: list[dict] | None = None,
) -> dict:
    return {
        "store_id": store_id,
        "tab_name": tab_name,
        "mode": mode,
        "total_pending_before": total_pending_before,
        "processed": processed,
        "parallelism": parallel,
        "metrics": metrics or empty_metrics(),
        "testing_metrics": testing_metrics,
        "sample_updates": sample_updates or [],
    }


def run_chunk(
    workbook: CsvWorkbook,
    store_id: str,
    tab_name: str,
    client: ClassifierClient,
    parallel: int = DEFAULT_PARALLEL,
    limit: int | None = None,
    mode: str = "prod",
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
    failed_log_path: Path = FAILED_ROWS_LOG,
) -> dict:
    """
    Execute one bounded chunk of the classification pipeline.

    Store and config failures propagate as chunk-level errors.  Row-level
    failures never do; they appear as UNSURE results with a diagnostic
    note.  When nothing is pending (or the caps leave nothing to do) the
    call returns a zero-metrics response and logs no run-log row.

    Args:
        workbook: Store handle.
        store_id: Store identifier.
        tab_name: Dataset tab to evaluate.
        client: Shared classifier client.
        parallel: Worker count for this chunk.
        limit: Rows remaining in the caller's logical run, if capped.
        mode: ``'prod'`` or ``'test'``; selects the run-log partition.
        sleep: Sleep function for retry backoff.
        rng: Random source for backoff jitter.
        failed_log_path: JSONL audit log for row-level failures.

    Returns:
        Dict with ``store_id``, ``tab_name``, ``mode``,
        ``total_pending_before``, ``processed``, ``parallelism``,
        ``metrics``, ``testing_metrics`` and ``sample_updates``.

    Raises:
        FileNotFoundError: Store, tab or Config tab missing.
        ValueError: Unknown mode or malformed Config tab.
    """
    run_log_tab(mode)  # validates the mode before any work

    config = workbook.read_config(store_id)
    pending = read_pending_records(workbook, store_id, tab_name)
    total_pending_before = len(pending)

    rows = plan_chunk(pending, limit, resolve_chunk_size(config))
    if not rows:
        print(f"No pending rows to process in '{tab_name}' ({total_pending_before} pending).")
        return _chunk_response(store_id, tab_name, mode, total_pending_before, parallel)

    model = resolve_model(config)
    print(
        f"\nChunk: {len(rows)} of {total_pending_before} pending rows in "
        f"'{tab_name}' (model={model}, parallel={parallel}, mode={mode})"
    )

    start = time.monotonic()
    results = dispatch_batch(
        rows,
        client,
        config,
        parallel=parallel,
        store_id=store_id,
        tab_name=tab_name,
        sleep=sleep,
        rng=rng,
        failed_log_path=failed_log_path,
    )
    duration_ms = round((time.monotonic() - start) * 1000)
    metrics = aggregate_chunk_metrics(results, duration_ms)

    write_results(workbook, store_id, tab_name, results)
    processed = len(results)

    testing_metrics = None
    if mode == "test":
        testing_metrics = compute_testing_accuracy(
            read_dataset_frame(workbook, store_id, tab_name)
        )

    entry = build_run_log_entry(store_id, tab_name, mode, model, processed, metrics)
    append_run_log(workbook, store_id, entry)

    sep = "=" * 60
    print(f"\n{sep}")
    print("CHUNK COMPLETE")
    print(f"  Processed: {processed:,} / {total_pending_before:,} pending")
    print(
        f"  Same / Diff / Unsure: {metrics['count_same']} / "
        f"{metrics['count_diff']} / {metrics['count_unsure']}"
    )
    print(f"  Duration:  {duration_ms / 1000:.1f}s")
    print(f"{sep}\n")

    sample = sorted(
        (r.as_dict() for r in results[:SAMPLE_UPDATES]),
        key=lambda u: u["row_index"],
    )
    return _chunk_response(
        store_id,
        tab_name,
        mode,
        total_pending_before,
        parallel,
        processed=processed,
        metrics=metrics,
        testing_metrics=testing_metrics,
        sample_updates=sample,
    )
