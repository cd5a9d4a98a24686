"""
Unit tests for the CSV store: src/store/workbook.py, dataset.py and
run_log.py.

Covers:
- Workbook tabs and the Config tab (read, update, malformed layouts).
- Pending-record selection: both-blank rule, row bounds, field parsing.
- Result write-back to the exact source rows, and status.
- Run-log append / read / history (chunk and logical views).
"""

from __future__ import annotations

import pandas as pd
import pytest

from src.matcher.models import ClassificationResult
from src.reporting.metrics import empty_metrics
from src.store.dataset import read_pending_records, read_status, write_results
from src.store.run_log import (
    RUN_LOG_COLUMNS,
    append_run_log,
    build_run_log_entry,
    read_run_history,
    read_run_log,
    run_log_tab,
)

from .conftest import STORE_ID, TAB, make_row, write_dataset


# ---------------------------------------------------------------------------
# Workbook / Config
# ---------------------------------------------------------------------------

class TestWorkbook:
    """Tab listing and Config handling."""

    def test_list_tabs_excludes_meta_tabs(self, store):
        append_run_log(store, STORE_ID, build_run_log_entry(
            STORE_ID, TAB, "prod", "m", 0, empty_metrics(),
        ))
        assert store.list_tabs(STORE_ID) == [TAB]

    def test_list_tabs_missing_store(self, workbook):
        with pytest.raises(FileNotFoundError, match="Store not found"):
            workbook.list_tabs("nope")

    def test_read_missing_tab(self, store):
        with pytest.raises(FileNotFoundError, match="Tab 'Other'"):
            store.read_tab(STORE_ID, "Other")

    def test_read_config(self, store):
        config = store.read_config(STORE_ID)
        assert config["MODEL"] == "gpt-5-mini"
        assert config["BATCH_SIZE"] == "50"

    def test_config_needs_two_columns(self, workbook):
        workbook.write_tab(STORE_ID, "Config", pd.DataFrame({"Key": ["MODEL"]}))
        with pytest.raises(ValueError, match="Key and Value"):
            workbook.read_config(STORE_ID)

    def test_set_config_values_updates_known_keys_only(self, store):
        updated = store.set_config_values(STORE_ID, {"BATCH_SIZE": "10", "UNKNOWN": "x"})
        assert updated == ["BATCH_SIZE"]
        config = store.read_config(STORE_ID)
        assert config["BATCH_SIZE"] == "10"
        assert "UNKNOWN" not in config

    def test_blank_cells_stay_blank(self, store):
        df = store.read_tab(STORE_ID, TAB)
        assert (df["verdict"] == "").all()


# ---------------------------------------------------------------------------
# Pending-record selection
# ---------------------------------------------------------------------------

class TestPendingRecords:
    """Rows with neither score nor verdict are pending."""

    def test_all_blank_rows_pending(self, store):
        records = read_pending_records(store, STORE_ID, TAB)
        assert [r.row_index for r in records] == [2, 3, 4, 5, 6]
        assert records[0].id1 == "A2"
        assert records[0].distance_meters == 15.0
        assert records[0].link1 is None

    def test_partial_result_is_not_pending(self, workbook):
        write_dataset(workbook, [
            make_row(1),
            make_row(2, verdict="SAME"),
            make_row(3, match_score="0"),
            make_row(4, match_score="2", verdict="UNSURE", notes="confidence=0.50; x"),
            make_row(5, notes="stray note only"),
        ])
        records = read_pending_records(workbook, STORE_ID, TAB)
        assert [r.row_index for r in records] == [2, 6]

    def test_row_bounds(self, store):
        records = read_pending_records(store, STORE_ID, TAB, row_start=3, row_end=5)
        assert [r.row_index for r in records] == [3, 4, 5]

    def test_field_parsing(self, workbook):
        write_dataset(workbook, [
            make_row(1, distance_meters="", confirmed="1", link2="https://x.example"),
            make_row(2, distance_meters="far", confirmed="yes"),
        ])
        first, second = read_pending_records(workbook, STORE_ID, TAB)
        assert first.distance_meters is None
        assert first.confirmed == 1
        assert first.link2 == "https://x.example"
        assert second.distance_meters is None
        assert second.confirmed is None

    def test_short_rows_are_padded(self, workbook):
        # Only columns A-J present; result columns missing entirely
        df = pd.DataFrame([make_row(1)]).iloc[:, :10]
        workbook.write_tab(STORE_ID, TAB, df)
        records = read_pending_records(workbook, STORE_ID, TAB)
        assert [r.row_index for r in records] == [2]


# ---------------------------------------------------------------------------
# Result write-back / status
# ---------------------------------------------------------------------------

class TestWriteResults:
    """Results land on the rows they were read from."""

    def test_writes_score_verdict_notes(self, store):
        written = write_results(store, STORE_ID, TAB, [
            ClassificationResult(4, "DIFFERENT", 0, "confidence=0.80; other branch"),
            ClassificationResult(2, "SAME", 1, "confidence=0.95; same shop"),
        ])
        assert written == 2

        df = store.read_tab(STORE_ID, TAB)
        assert list(df.loc[0, ["match_score", "verdict", "notes"]]) == [
            "1", "SAME", "confidence=0.95; same shop",
        ]
        assert list(df.loc[2, ["match_score", "verdict"]]) == ["0", "DIFFERENT"]
        assert df.loc[1, "verdict"] == ""

        pending = read_pending_records(store, STORE_ID, TAB)
        assert [r.row_index for r in pending] == [3, 5, 6]

    def test_out_of_range_row(self, store):
        with pytest.raises(ValueError, match="Row 99"):
            write_results(store, STORE_ID, TAB, [ClassificationResult(99, "SAME", 1, "n")])

    def test_nothing_to_write(self, store):
        assert write_results(store, STORE_ID, TAB, []) == 0

    def test_status(self, store):
        write_results(store, STORE_ID, TAB, [ClassificationResult(3, "UNSURE", 2, "n")])
        status = read_status(store, STORE_ID, TAB)
        assert (status["total"], status["completed"]) == (5, 1)


# ---------------------------------------------------------------------------
# Run log
# ---------------------------------------------------------------------------

def _entry(timestamp: str, mode: str = "prod", rows: int = 10, **metrics) -> dict:
    return build_run_log_entry(
        STORE_ID, TAB, mode, "gpt-5-mini", rows,
        {**empty_metrics(), "count_same": rows, "avg_conf_same": 0.9, **metrics},
        timestamp=timestamp,
    )


class TestRunLog:
    """Append-only run-log partitions."""

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="Unknown mode"):
            run_log_tab("staging")

    def test_entry_has_all_columns(self):
        entry = _entry("2026-03-02T10:00:00.000+00:00")
        assert list(entry) == RUN_LOG_COLUMNS

    def test_default_timestamp_is_utc_iso(self):
        entry = build_run_log_entry(STORE_ID, TAB, "prod", "m", 0, empty_metrics())
        assert entry["timestamp"].endswith("+00:00")

    def test_missing_partition_reads_empty(self, store):
        assert read_run_log(store, STORE_ID, "prod") == []

    def test_append_and_read_back(self, store):
        append_run_log(store, STORE_ID, _entry("2026-03-02T10:00:00.000+00:00"))
        append_run_log(store, STORE_ID, _entry("2026-03-02T10:01:00.000+00:00", rows=5))

        rows = read_run_log(store, STORE_ID, "prod")
        assert len(rows) == 2
        assert rows[1]["rows_processed"] == 5
        assert rows[1]["count_same"] == 5
        assert rows[1]["avg_conf_same"] == pytest.approx(0.9)
        assert rows[1]["avg_conf_diff"] is None
        assert rows[1]["model"] == "gpt-5-mini"

    def test_modes_are_partitioned(self, store):
        append_run_log(store, STORE_ID, _entry("2026-03-02T10:00:00.000+00:00", mode="test"))
        assert read_run_log(store, STORE_ID, "prod") == []
        assert len(read_run_log(store, STORE_ID, "test")) == 1
        assert store.has_tab(STORE_ID, "Runs - test")


class TestRunHistory:
    """Chunk and logical history views."""

    @pytest.fixture
    def logged(self, store):
        for ts in (
            "2026-03-02T10:00:00.000+00:00",
            "2026-03-02T10:01:00.000+00:00",
            "2026-03-02T10:02:00.000+00:00",
            "2026-03-02T11:00:00.000+00:00",
        ):
            append_run_log(store, STORE_ID, _entry(ts))
        return store

    def test_chunk_history_limit(self, logged):
        rows = read_run_history(logged, STORE_ID, "prod", limit=2)
        assert [r["timestamp"][11:16] for r in rows] == ["10:02", "11:00"]

    def test_limit_at_least_one(self, logged):
        assert len(read_run_history(logged, STORE_ID, "prod", limit=-3)) == 1

    def test_logical_history(self, logged):
        runs = read_run_history(logged, STORE_ID, "prod", group="logical")
        assert [run["chunks"] for run in runs] == [3, 1]
        assert runs[0]["rows_processed"] == 30

    def test_unknown_group(self, logged):
        with pytest.raises(ValueError, match="grouping"):
            read_run_history(logged, STORE_ID, "prod", group="daily")
