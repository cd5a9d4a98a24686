"""
CSV-backed workbook: the spreadsheet store the matcher reads and writes.

Layout on disk::

    <root>/<store_id>/<tab name>.csv

Each tab is a rectangular CSV with a header row, read as strings so that
blank cells stay blank (no NaN coercion).  The ``Config`` tab holds
``Key, Value, Help`` rows; ``Runs - prod`` / ``Runs - test`` hold the
append-only run logs.
"""

from __future__ import annotations

import csv
from pathlib import Path

import pandas as pd

from config.run_params import CONFIG_TAB, META_TABS
from src.matcher.config import STORE_DIR


class CsvWorkbook:
    """
    Store handle over a directory of per-store CSV tabs.

    Args:
        root: Directory holding one sub-directory per store id.
    """

    def __init__(self, root: Path = STORE_DIR) -> None:
        self.root = Path(root)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def store_path(self, store_id: str) -> Path:
        return self.root / store_id

    def tab_path(self, store_id: str, tab_name: str) -> Path:
        return self.store_path(store_id) / f"{tab_name}.csv"

    def has_tab(self, store_id: str, tab_name: str) -> bool:
        return self.tab_path(store_id, tab_name).exists()

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    def list_tabs(self, store_id: str) -> list[str]:
        """
        Dataset tab names in the store, excluding Config and run-log tabs.

        Raises:
            FileNotFoundError: The store directory does not exist.
        """
        store_dir = self.store_path(store_id)
        if not store_dir.is_dir():
            raise FileNotFoundError(
                f"Store not found: {store_dir}\n"
                "Check the store id and the --store-dir location."
            )
        return sorted(
            path.stem for path in store_dir.glob("*.csv")
            if path.stem not in META_TABS
        )

    def read_tab(self, store_id: str, tab_name: str) -> pd.DataFrame:
        """
        Read a whole tab as strings (header row excluded from the data).

        Raises:
            FileNotFoundError: The tab's CSV file does not exist.
        """
        path = self.tab_path(store_id, tab_name)
        if not path.exists():
            raise FileNotFoundError(
                f"Tab '{tab_name}' not found in store '{store_id}': {path}"
            )
        return pd.read_csv(path, dtype=str, keep_default_na=False)

    def write_tab(self, store_id: str, tab_name: str, df: pd.DataFrame) -> None:
        """
        Replace a tab's contents in one write.

        The frame is written to a sibling temp file first and moved into
        place, so readers never observe a half-written tab.
        """
        path = self.tab_path(store_id, tab_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".csv.tmp")
        df.to_csv(tmp_path, index=False)
        tmp_path.replace(path)

    def append_row(
        self,
        store_id: str,
        tab_name: str,
        columns: list[str],
        row: dict,
    ) -> None:
        """
        Append one row without reading the tab first.

        Creates the file with a header row on first write.
        """
        path = self.tab_path(store_id, tab_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_exists = path.exists() and path.stat().st_size > 0

        with path.open("a", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=columns, extrasaction="ignore")
            if not file_exists:
                writer.writeheader()
            writer.writerow(row)

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def read_config(self, store_id: str) -> dict[str, str]:
        """
        Read the Config tab (Key → Value) into a flat dict.

        Column 1 is the key, column 2 the value; any further columns
        (help text) are ignored, as are rows with a blank key.

        Raises:
            FileNotFoundError: The Config tab does not exist.
            ValueError: The Config tab has fewer than two columns.
        """
        df = self.read_tab(store_id, CONFIG_TAB)
        if df.shape[1] < 2:
            raise ValueError(
                f"Config tab in store '{store_id}' must have at least "
                f"Key and Value columns; found {list(df.columns)}"
            )

        config: dict[str, str] = {}
        for key, value in zip(df.iloc[:, 0], df.iloc[:, 1]):
            key = str(key).strip()
            if key:
                config[key] = str(value)
        return config

    def set_config_values(self, store_id: str, updates: dict[str, str]) -> list[str]:
        """
        Update values of keys that already exist in the Config tab.

        Unknown keys are ignored.

        Returns:
            The keys that were updated.
        """
        df = self.read_tab(store_id, CONFIG_TAB)
        keys = df.iloc[:, 0].astype(str).str.strip()
        updated: list[str] = []
        for key, value in updates.items():
            mask = keys == key
            if mask.any():
                df.loc[mask, df.columns[1]] = str(value)
                updated.append(key)
        if updated:
            self.write_tab(store_id, CONFIG_TAB, df)
        return updated
