"""
src/pipeline - Chunked batch execution over a store tab.

Module layout
-------------
batch.py   - chunk planner, bounded-concurrency dispatcher, run_chunk
driver.py  - run_until_complete: repeated chunk calls for a logical run
runner.py  - command-line entry point

Public interface
----------------
One bounded chunk:
    run_chunk(workbook, store_id, tab_name, client, parallel, limit, mode)

A whole logical run:
    run_until_complete(run_chunk_fn, limit)
"""

from .batch import classify_with_fallback, dispatch_batch, plan_chunk, run_chunk
from .driver import run_until_complete

__all__ = [
    "plan_chunk",
    "dispatch_batch",
    "classify_with_fallback",
    "run_chunk",
    "run_until_complete",
]
