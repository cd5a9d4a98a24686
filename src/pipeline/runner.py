"""
Command-line entry point for matcher runs and run history.

Usage (from project root):
    python -m src.pipeline.runner --store-id demo --tab "Batch 1" --limit 200
    python -m src.pipeline.runner --store-id demo --history --group logical
    python -m src.pipeline.runner --store-id demo --tab "Batch 1" --review
    python -m src.pipeline.runner --store-id demo --set BATCH_SIZE=25 --set MODEL=gpt-5-nano

Or programmatically:
    from src.pipeline.runner import run_logical_run
    summary = run_logical_run(workbook, "demo", "Batch 1", client)
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from config.run_params import DEFAULT_HISTORY_LIMIT, DEFAULT_REVIEW_MAX_CONFIDENCE, MODES
from src.matcher.client import ClassifierClient
from src.matcher.config import DEFAULT_PARALLEL, STORE_DIR, clamp_parallel
from src.reporting.review import build_review_queue
from src.store.dataset import read_dataset_frame, read_status
from src.store.run_log import read_run_history
from src.store.workbook import CsvWorkbook

from .batch import run_chunk
from .driver import run_until_complete


def run_logical_run(
    workbook: CsvWorkbook,
    store_id: str,
    tab_name: str,
    client: ClassifierClient,
    parallel: int = DEFAULT_PARALLEL,
    limit: int | None = None,
    mode: str = "prod",
) -> dict:
    """
    Drive chunk invocations for one tab until it is done or ``limit`` is hit.

    ``parallel`` is clamped to the supported worker range here, before
    it reaches the dispatcher.
    """
    parallel = clamp_parallel(parallel)
    return run_until_complete(
        lambda remaining: run_chunk(
            workbook,
            store_id,
            tab_name,
            client,
            parallel=parallel,
            limit=remaining,
            mode=mode,
        ),
        limit=limit,
    )


def print_run_summary(summary: dict) -> None:
    metrics = summary["metrics"]
    sep = "=" * 60

    def fmt(value: float | None) -> str:
        return "n/a" if value is None else f"{value:.2f}"

    print(f"\n{sep}")
    print("RUN COMPLETE")
    print(f"  Chunks:          {summary.get('chunks', 0)}")
    print(f"  Rows processed:  {summary['processed']:,} / "
          f"{summary['total_pending_before']:,} pending at start")
    print(f"  Same:            {metrics['count_same']} (avg conf {fmt(metrics['avg_conf_same'])})")
    print(f"  Different:       {metrics['count_diff']} (avg conf {fmt(metrics['avg_conf_diff'])})")
    print(f"  Unsure:          {metrics['count_unsure']} (avg conf {fmt(metrics['avg_conf_unsure'])})")
    print(f"  Duration:        {metrics['duration_ms'] / 1000:.1f}s")
    testing = summary.get("testing_metrics")
    if testing:
        print(f"  Strict accuracy: {fmt(testing['strict_accuracy'])} "
              f"(coverage {fmt(testing['coverage'])})")
    print(f"{sep}\n")


def print_history(rows: list[dict], group: str) -> None:
    if not rows:
        print("No runs logged yet for this mode.")
        return
    for row in rows:
        chunks = f"  chunks={row['chunks']}" if group == "logical" else ""
        print(
            f"{row['timestamp']}  {row['tab_name']}  {row['model']}{chunks}  "
            f"rows={row['rows_processed']}  "
            f"S/D/U={row['count_same']}/{row['count_diff']}/{row['count_unsure']}  "
            f"{row['duration_ms'] / 1000:.1f}s"
        )


def print_status(status: dict) -> None:
    total = status["total"]
    completed = status["completed"]
    pct = f"{completed / total:.0%}" if total else "n/a"
    print(f"{status['tab_name']}: {completed:,} / {total:,} rows evaluated ({pct})")


def print_review_queue(items: list[dict]) -> None:
    if not items:
        print("Nothing to review.")
        return
    print(f"{len(items)} row(s) to review:")
    for item in items:
        conf = "n/a" if item["confidence"] is None else f"{item['confidence']:.2f}"
        print(
            f"  row {item['row_index']:>5}  {item['reason']:<14} conf={conf}  "
            f"{item['name1']} | {item['name2']}"
        )


def parse_config_updates(pairs: list[str]) -> dict[str, str]:
    """
    Turn ``KEY=VALUE`` strings into a Config update mapping.

    Raises:
        ValueError: A pair has no ``=`` or an empty key.
    """
    updates: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE for --set, got '{pair}'.")
        updates[key] = value.strip()
    return updates


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run LLM record matching over a store tab.")
    parser.add_argument("--store-id", required=True, help="Store (workbook) identifier")
    parser.add_argument("--tab", help="Dataset tab to evaluate")
    parser.add_argument("--parallel", type=int, default=DEFAULT_PARALLEL)
    parser.add_argument("--limit", type=int, default=None, help="Max rows for this run")
    parser.add_argument("--mode", choices=MODES, default="prod")
    parser.add_argument("--store-dir", type=Path, default=STORE_DIR)
    parser.add_argument("--history", action="store_true", help="Print run history and exit")
    parser.add_argument("--group", choices=["chunks", "logical"], default="chunks")
    parser.add_argument("--history-limit", type=int, default=DEFAULT_HISTORY_LIMIT)
    parser.add_argument("--status", action="store_true", help="Print tab progress and exit")
    parser.add_argument("--review", action="store_true", help="Print the review queue and exit")
    parser.add_argument("--max-confidence", type=float, default=DEFAULT_REVIEW_MAX_CONFIDENCE)
    parser.add_argument("--list-tabs", action="store_true", help="List dataset tabs and exit")
    parser.add_argument(
        "--set", action="append", default=[], metavar="KEY=VALUE",
        help="Update an existing Config-tab value (repeatable) and exit",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    workbook = CsvWorkbook(args.store_dir)

    try:
        if args.list_tabs:
            for tab in workbook.list_tabs(args.store_id):
                print(tab)
            return 0

        if args.set:
            updates = parse_config_updates(args.set)
            updated = workbook.set_config_values(args.store_id, updates)
            for key in updates:
                state = "updated" if key in updated else "ignored (unknown key)"
                print(f"  {key}: {state}")
            return 0

        if args.history:
            rows = read_run_history(
                workbook, args.store_id, args.mode,
                limit=args.history_limit, group=args.group,
            )
            print_history(rows, args.group)
            return 0

        if not args.tab:
            print("ERROR: --tab is required for runs, --status and --review.")
            return 2

        if args.status:
            print_status(read_status(workbook, args.store_id, args.tab))
            return 0

        if args.review:
            frame = read_dataset_frame(workbook, args.store_id, args.tab)
            print_review_queue(build_review_queue(frame, args.max_confidence))
            return 0

        client = ClassifierClient()
        try:
            summary = run_logical_run(
                workbook, args.store_id, args.tab, client,
                parallel=args.parallel, limit=args.limit, mode=args.mode,
            )
        finally:
            client.close()
    except (FileNotFoundError, ValueError) as exc:
        print(f"ERROR: {exc}")
        return 1

    print_run_summary(summary)
    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
