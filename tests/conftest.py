"""
Shared pytest fixtures and builders for matcher pipeline tests.

Stores are real CSV workbooks under ``tmp_path``; the classification
service is replaced by :class:`FakeClient`, which answers per record id
and counts its calls.
"""

from __future__ import annotations

import json
import re
import threading

import pandas as pd
import pytest

from src.matcher.models import SCORE_BY_VERDICT, PendingRecord
from src.store.dataset import DATASET_COLUMNS
from src.store.workbook import CsvWorkbook

STORE_ID = "demo"
TAB = "Batch 1"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_record(row_index: int = 2, **overrides) -> PendingRecord:
    """Build a PendingRecord with plausible defaults."""
    fields = {
        "row_index": row_index,
        "id1": f"A{row_index}",
        "id2": f"B{row_index}",
        "name1": "Greggs",
        "name2": "Greggs Bakery",
        "address1": "1 High Street, Leeds",
        "address2": "1 High St, Leeds",
        "link1": None,
        "link2": None,
        "distance_meters": 12.0,
        "confirmed": None,
    }
    fields.update(overrides)
    return PendingRecord(**fields)


def make_row(n: int, **overrides) -> dict:
    """Build one dataset row (columns A-P) for data row ``n`` (sheet row n + 1)."""
    row = {column: "" for column in DATASET_COLUMNS}
    row.update({
        "index": str(n),
        "id1": f"A{n + 1}",
        "id2": f"B{n + 1}",
        "name1": f"Cafe {n}",
        "name2": f"Cafe {n} Ltd",
        "address1": f"{n} Market Street",
        "address2": f"{n} Market St",
        "distance_meters": "15",
    })
    row.update(overrides)
    return row


def model_json(verdict: str, confidence: float = 0.9, note: str = "names and address agree") -> str:
    """A well-formed model answer for ``verdict``."""
    return json.dumps({
        "verdict": verdict,
        "match_score": SCORE_BY_VERDICT[verdict],
        "notes": f"confidence={confidence:.2f}; {note}",
    })


def write_dataset(workbook: CsvWorkbook, rows: list[dict], tab: str = TAB) -> None:
    workbook.write_tab(STORE_ID, tab, pd.DataFrame(rows, columns=DATASET_COLUMNS))


def write_config(workbook: CsvWorkbook, values: dict[str, str] | None = None) -> None:
    values = {"MODEL": "gpt-5-mini", "BATCH_SIZE": "50", "MAX_RETRIES": "1",
              "RATE_LIMIT_DELAY_MS": "0", **(values or {})}
    df = pd.DataFrame(
        [{"Key": k, "Value": v, "Help": ""} for k, v in values.items()],
        columns=["Key", "Value", "Help"],
    )
    workbook.write_tab(STORE_ID, "Config", df)


# ---------------------------------------------------------------------------
# Fake classifier
# ---------------------------------------------------------------------------

class FakeClient:
    """
    Stand-in for ClassifierClient.

    ``answers`` maps record id1 to a string (returned as model text) or an
    exception (raised).  Unlisted ids get ``default``.
    """

    ID_PATTERN = re.compile(r"Record 1:\n- id: (\S+)")

    def __init__(self, answers: dict | None = None, default: str | None = None) -> None:
        self.answers = answers or {}
        self.default = default if default is not None else model_json("SAME")
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def complete(self, model: str, system: str, user: str) -> str:
        record_id = self.ID_PATTERN.search(user).group(1)
        with self._lock:
            self.calls.append(record_id)
        answer = self.answers.get(record_id, self.default)
        if isinstance(answer, Exception):
            raise answer
        return answer

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def workbook(tmp_path):
    """Empty CSV workbook rooted in a temp directory."""
    return CsvWorkbook(tmp_path / "stores")


@pytest.fixture
def store(workbook):
    """Workbook with a Config tab and a five-row dataset tab."""
    write_config(workbook)
    write_dataset(workbook, [make_row(n) for n in range(1, 6)])
    return workbook


@pytest.fixture
def failed_log(tmp_path):
    return tmp_path / "logs" / "failed_rows.jsonl"

