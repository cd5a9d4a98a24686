"""
Logical-run reconstruction from per-chunk run-log rows.

A single operator-intended run is executed as many chunk invocations,
each logging its own row.  Consecutive rows are merged back together
when they share (store id, tab, mode, model) and each follows the
previous one within ``gap_ms``.

Rows whose timestamp does not parse never satisfy the gap test, so each
one ends up alone in its own logical run.
"""

from __future__ import annotations

import pandas as pd

from config.run_params import DEFAULT_LOGICAL_RUN_GAP_MS

from .metrics import combine_metrics

GROUP_KEY: tuple[str, ...] = ("store_id", "tab_name", "mode", "model")


def parse_timestamp(value) -> pd.Timestamp | None:
    """Parse a log timestamp to a UTC ``Timestamp``; ``None`` if invalid."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        ts = pd.to_datetime(value, errors="coerce", utc=True)
    except (TypeError, ValueError):
        return None
    return None if pd.isna(ts) else ts


def _group_key(entry: dict) -> tuple:
    return tuple(entry.get(field) for field in GROUP_KEY)


def sort_entries(entries: list[dict]) -> list[tuple[dict, pd.Timestamp | None]]:
    """
    Order entries by timestamp, pairing each with its parsed time.

    The sort is stable, so equal timestamps keep their input order.
    Entries with unparseable timestamps follow all parseable ones, in
    input order.
    """
    parsed = [(entry, parse_timestamp(entry.get("timestamp"))) for entry in entries]
    dated = [pair for pair in parsed if pair[1] is not None]
    undated = [pair for pair in parsed if pair[1] is None]
    dated.sort(key=lambda pair: pair[1])
    return dated + undated


def finalize_group(rows: list[dict]) -> dict:
    """
    Collapse one group of chunk rows into a logical-run dict.

    ``timestamp`` is the first chunk's timestamp and ``ended_at`` the
    last one's; counts, rows and duration are summed and confidence
    averages recombined.
    """
    first, last = rows[0], rows[-1]
    run = {field: first.get(field) for field in GROUP_KEY}
    run["timestamp"] = first.get("timestamp")
    run["ended_at"] = last.get("timestamp")
    run["chunks"] = len(rows)
    run["rows_processed"] = sum(int(r.get("rows_processed") or 0) for r in rows)
    run.update(combine_metrics(rows))
    return run


def group_logical_runs(
    entries: list[dict],
    gap_ms: int = DEFAULT_LOGICAL_RUN_GAP_MS,
) -> list[dict]:
    """
    Partition run-log rows into logical runs.

    Walks the time-ordered rows keeping one open group.  A row joins the
    open group iff its key matches and its timestamp is within
    ``gap_ms`` of the group's most recent timestamp; otherwise the open
    group is finalized and the row starts a new one.  Every input row
    ends up in exactly one logical run.

    Args:
        entries: Run-log rows (dicts with the run-log columns).
        gap_ms: Maximum gap in milliseconds between consecutive chunks
            of one logical run.

    Returns:
        Logical runs in time order, each with ``chunks`` and
        ``ended_at`` in addition to the run-log metric fields.
    """
    gap = pd.Timedelta(milliseconds=gap_ms)
    runs: list[dict] = []

    open_rows: list[dict] = []
    open_key: tuple | None = None
    open_last_ts: pd.Timestamp | None = None

    for entry, ts in sort_entries(entries):
        key = _group_key(entry)
        joins = (
            open_rows
            and key == open_key
            and ts is not None
            and open_last_ts is not None
            and ts - open_last_ts <= gap
        )

        if joins:
            open_rows.append(entry)
        else:
            if open_rows:
                runs.append(finalize_group(open_rows))
            open_rows = [entry]
            open_key = key
        open_last_ts = ts

    if open_rows:
        runs.append(finalize_group(open_rows))

    return runs
