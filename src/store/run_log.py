"""
Run-Log Recorder and reader.

One row is appended per chunk invocation to the mode's partition tab
(``Runs - prod`` or ``Runs - test``).  Rows are never rewritten; the
recorder does not read the tab before appending.

Column order (13 fields):

    timestamp, store_id, tab_name, mode, model, rows_processed,
    count_same, count_diff, count_unsure,
    avg_conf_same, avg_conf_diff, avg_conf_unsure, duration_ms
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

from config.run_params import (
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_LOGICAL_RUN_GAP_MS,
    MODES,
    RUN_LOG_TABS,
)
from src.reporting.logical_runs import group_logical_runs

from .workbook import CsvWorkbook

RUN_LOG_COLUMNS: list[str] = [
    "timestamp",
    "store_id",
    "tab_name",
    "mode",
    "model",
    "rows_processed",
    "count_same",
    "count_diff",
    "count_unsure",
    "avg_conf_same",
    "avg_conf_diff",
    "avg_conf_unsure",
    "duration_ms",
]

INT_FIELDS = ("rows_processed", "count_same", "count_diff", "count_unsure", "duration_ms")
AVG_FIELDS = ("avg_conf_same", "avg_conf_diff", "avg_conf_unsure")


def run_log_tab(mode: str) -> str:
    """
    Partition tab for a mode tag.

    Raises:
        ValueError: Unknown mode.
    """
    if mode not in RUN_LOG_TABS:
        raise ValueError(f"Unknown mode '{mode}'. Expected one of {MODES}.")
    return RUN_LOG_TABS[mode]


def build_run_log_entry(
    store_id: str,
    tab_name: str,
    mode: str,
    model: str,
    rows_processed: int,
    metrics: dict,
    timestamp: str | None = None,
) -> dict:
    """Flatten one chunk's identifiers and metrics into a run-log row."""
    entry = {
        "timestamp": timestamp or datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
        "store_id": store_id,
        "tab_name": tab_name,
        "mode": mode,
        "model": model,
        "rows_processed": rows_processed,
    }
    for field in RUN_LOG_COLUMNS[6:]:
        entry[field] = metrics.get(field)
    return entry


def append_run_log(workbook: CsvWorkbook, store_id: str, entry: dict) -> None:
    """
    Append one run-log row to the partition selected by ``entry['mode']``.

    ``None`` averages are written as blank cells.
    """
    tab = run_log_tab(entry["mode"])
    row = {
        field: ("" if entry.get(field) is None else entry.get(field))
        for field in RUN_LOG_COLUMNS
    }
    workbook.append_row(store_id, tab, RUN_LOG_COLUMNS, row)


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

def _to_int(value) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return int(number) if math.isfinite(number) else 0


def _to_maybe_float(value) -> float | None:
    if value is None or str(value).strip() == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_run_log_row(values: dict) -> dict:
    """
    Normalize raw string cells of a run-log row.

    Counts and durations default to 0; confidence averages default to
    ``None``; identifiers stay strings.
    """
    row = {field: str(values.get(field, "") or "") for field in RUN_LOG_COLUMNS[:5]}
    for field in INT_FIELDS:
        row[field] = _to_int(values.get(field))
    for field in AVG_FIELDS:
        row[field] = _to_maybe_float(values.get(field))
    return row


def read_run_log(workbook: CsvWorkbook, store_id: str, mode: str) -> list[dict]:
    """
    Every row of a mode's run log, in stored order.

    Columns are taken by position so a renamed header does not break the
    reader.  A partition that has never been written reads as empty.
    """
    tab = run_log_tab(mode)
    if not workbook.has_tab(store_id, tab):
        return []

    df = workbook.read_tab(store_id, tab)
    rows: list[dict] = []
    for values in df.itertuples(index=False, name=None):
        cells = dict(zip(RUN_LOG_COLUMNS, values))
        rows.append(parse_run_log_row(cells))
    return rows


def read_run_history(
    workbook: CsvWorkbook,
    store_id: str,
    mode: str = "prod",
    limit: int = DEFAULT_HISTORY_LIMIT,
    group: str = "chunks",
    gap_ms: int = DEFAULT_LOGICAL_RUN_GAP_MS,
) -> list[dict]:
    """
    Recent run history for one mode.

    Args:
        workbook: Store handle.
        store_id: Store identifier.
        mode: ``'prod'`` or ``'test'``.
        limit: Number of most recent items to return (at least 1).
        group: ``'chunks'`` for raw log rows, ``'logical'`` for
            reconstructed logical runs.
        gap_ms: Gap used when ``group='logical'``.

    Returns:
        The last ``limit`` rows or logical runs, oldest first.

    Raises:
        ValueError: Unknown ``group`` or ``mode``.
    """
    if group not in ("chunks", "logical"):
        raise ValueError(f"Unknown history grouping '{group}'. Expected 'chunks' or 'logical'.")

    limit = max(1, int(limit or DEFAULT_HISTORY_LIMIT))
    rows = read_run_log(workbook, store_id, mode)

    if group == "logical":
        rows = group_logical_runs(rows, gap_ms=gap_ms)

    return rows[-limit:]
