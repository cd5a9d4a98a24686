"""
Dataset tab access: the Pending-Record Selector, batched result writes,
and progress status.

Columns are addressed by position (A–P), not by header text:

    A  unnamed index (ignored)     I  link2
    B  id1                         J  distance_meters
    C  id2                         K  confirmed (0/1, else unlabeled)
    D  name1                       L  comment (ignored)
    E  name2                       M  LLM result (ignored)
    F  address1                    N  match_score  (written)
    G  address2                    O  verdict      (written)
    H  link1                       P  notes        (written)

Row indices are 1-based sheet rows including the header, so the first
data row is 2.
"""

from __future__ import annotations

import math
from typing import Iterable

import pandas as pd

from src.matcher.models import ClassificationResult, PendingRecord

from .workbook import CsvWorkbook

DATASET_COLUMNS: list[str] = [
    "index",
    "id1",
    "id2",
    "name1",
    "name2",
    "address1",
    "address2",
    "link1",
    "link2",
    "distance_meters",
    "confirmed",
    "comment",
    "llm_result",
    "match_score",
    "verdict",
    "notes",
]

# Positions of the three result columns (N, O, P)
SCORE_COL = DATASET_COLUMNS.index("match_score")
VERDICT_COL = DATASET_COLUMNS.index("verdict")
NOTES_COL = DATASET_COLUMNS.index("notes")

FIRST_DATA_ROW = 2


def _pad_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Ensure the frame has at least columns A–P (missing ones blank)."""
    df = df.copy()
    for position in range(df.shape[1], len(DATASET_COLUMNS)):
        name = DATASET_COLUMNS[position]
        while name in df.columns:
            name = f"{name}_"
        df[name] = ""
    return df


def read_dataset_frame(
    workbook: CsvWorkbook,
    store_id: str,
    tab_name: str,
) -> pd.DataFrame:
    """
    Load a dataset tab with canonical column names and a ``row_index``.

    Columns beyond P are dropped; short rows are padded with blanks.

    Args:
        workbook: Store handle.
        store_id: Store identifier.
        tab_name: Dataset tab name.

    Returns:
        DataFrame with ``DATASET_COLUMNS`` plus ``row_index``.
    """
    raw = _pad_columns(workbook.read_tab(store_id, tab_name))
    df = raw.iloc[:, : len(DATASET_COLUMNS)].copy()
    df.columns = DATASET_COLUMNS
    for column in DATASET_COLUMNS:
        df[column] = df[column].astype(str).str.strip()
    df["row_index"] = range(FIRST_DATA_ROW, FIRST_DATA_ROW + len(df))
    return df


def _parse_distance(raw: str) -> float | None:
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _parse_confirmed(raw: str) -> int | None:
    return int(raw) if raw in ("0", "1") else None


def has_result(row: pd.Series) -> bool:
    """True when either result-bearing cell (score or verdict) is filled."""
    return bool(row["match_score"]) or bool(row["verdict"])


def read_pending_records(
    workbook: CsvWorkbook,
    store_id: str,
    tab_name: str,
    row_start: int | None = None,
    row_end: int | None = None,
) -> list[PendingRecord]:
    """
    Return every record that carries no result yet.

    A row is pending only when BOTH match_score and verdict are blank; a
    row with just one of them filled is treated as already evaluated so
    it is never partially re-run.

    Args:
        workbook: Store handle.
        store_id: Store identifier.
        tab_name: Dataset tab name.
        row_start: Optional first sheet row to consider (inclusive).
        row_end: Optional last sheet row to consider (inclusive).

    Returns:
        Pending records in sheet order.
    """
    df = read_dataset_frame(workbook, store_id, tab_name)

    records: list[PendingRecord] = []
    for _, row in df.iterrows():
        row_index = int(row["row_index"])
        if row_start and row_index < row_start:
            continue
        if row_end and row_index > row_end:
            continue
        if has_result(row):
            continue

        records.append(PendingRecord(
            row_index=row_index,
            id1=row["id1"],
            id2=row["id2"],
            name1=row["name1"],
            name2=row["name2"],
            address1=row["address1"],
            address2=row["address2"],
            link1=row["link1"] or None,
            link2=row["link2"] or None,
            distance_meters=_parse_distance(row["distance_meters"]),
            confirmed=_parse_confirmed(row["confirmed"]),
        ))

    return records


def write_results(
    workbook: CsvWorkbook,
    store_id: str,
    tab_name: str,
    results: Iterable[ClassificationResult],
) -> int:
    """
    Write score, verdict and notes for every result in one tab write.

    Each result lands on the exact row it was read from.

    Raises:
        ValueError: A result's row index is outside the tab.

    Returns:
        Number of rows written.
    """
    results = list(results)
    if not results:
        return 0

    df = _pad_columns(workbook.read_tab(store_id, tab_name))
    n_rows = len(df)

    for result in results:
        position = result.row_index - FIRST_DATA_ROW
        if not 0 <= position < n_rows:
            raise ValueError(
                f"Row {result.row_index} is outside tab '{tab_name}' "
                f"(rows {FIRST_DATA_ROW}-{n_rows + FIRST_DATA_ROW - 1})."
            )
        df.iat[position, SCORE_COL] = str(result.match_score)
        df.iat[position, VERDICT_COL] = result.verdict
        df.iat[position, NOTES_COL] = result.notes

    workbook.write_tab(store_id, tab_name, df)
    return len(results)


def read_status(workbook: CsvWorkbook, store_id: str, tab_name: str) -> dict:
    """
    Progress of a tab recomputed from the store.

    Returns:
        Dict with ``total`` data rows and ``completed`` rows that carry
        both a score and a verdict.
    """
    df = read_dataset_frame(workbook, store_id, tab_name)
    completed = int(((df["match_score"] != "") & (df["verdict"] != "")).sum())
    return {
        "store_id": store_id,
        "tab_name": tab_name,
        "total": len(df),
        "completed": completed,
    }
