"""
src/store - CSV-backed workbook store: dataset tabs, Config tab, run logs.

Module layout
-------------
workbook.py  - CsvWorkbook: one directory per store, one CSV file per tab
dataset.py   - pending-record selection, result write-back, tab status
run_log.py   - append-only run-log partitions and history reads

Public interface
----------------
    CsvWorkbook(root)
    read_pending_records(workbook, store_id, tab_name)
    write_results(workbook, store_id, tab_name, results)
    read_status(workbook, store_id, tab_name)
    append_run_log(workbook, store_id, entry)
    read_run_history(workbook, store_id, mode, limit, group)
"""

from .dataset import read_dataset_frame, read_pending_records, read_status, write_results
from .run_log import (
    append_run_log,
    build_run_log_entry,
    read_run_history,
    read_run_log,
)
from .workbook import CsvWorkbook

__all__ = [
    "CsvWorkbook",
    "read_dataset_frame",
    "read_pending_records",
    "write_results",
    "read_status",
    "build_run_log_entry",
    "append_run_log",
    "read_run_log",
    "read_run_history",
]
