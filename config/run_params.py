"""
Run parameters: Config-tab keys with their defaults and clamps, chunking
and grouping constants, and the store's tab / column layout.

This is the AUTHORITATIVE source for run constants.
src/matcher/config.py imports from here; do not maintain parallel copies.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Config-tab keys (flat Key → Value strings)
# ---------------------------------------------------------------------------

CONFIG_KEY_MODEL = "MODEL"
CONFIG_KEY_PROMPT_TEMPLATE = "PROMPT_TEMPLATE"
CONFIG_KEY_BATCH_SIZE = "BATCH_SIZE"
CONFIG_KEY_MAX_RETRIES = "MAX_RETRIES"
CONFIG_KEY_RATE_LIMIT_DELAY_MS = "RATE_LIMIT_DELAY_MS"

# Rows per chunk invocation when BATCH_SIZE is missing, non-finite or <= 0
DEFAULT_CHUNK_SIZE: int = 50

# Retries after the first attempt (clamped to [0, 3])
DEFAULT_MAX_RETRIES: int = 1
MAX_RETRIES_RANGE: tuple[int, int] = (0, 3)

# Base backoff delay in milliseconds (clamped to [0, 5000])
DEFAULT_RATE_LIMIT_DELAY_MS: int = 250
RATE_LIMIT_DELAY_RANGE_MS: tuple[int, int] = (0, 5000)

# Multiplicative jitter applied to every backoff wait
BACKOFF_JITTER_RANGE: tuple[float, float] = (0.85, 1.15)

DEFAULT_PROMPT_TEMPLATE: str = (
    "You are a high-precision matcher for UK food businesses. Decide if two "
    "records refer to the same physical location. Prefer high precision on "
    "SAME (avoid false duplicates)."
)

# ---------------------------------------------------------------------------
# Concurrency and orchestration
# ---------------------------------------------------------------------------

DEFAULT_PARALLEL: int = 8
PARALLEL_RANGE: tuple[int, int] = (1, 20)

# Upper bound on chunk invocations in one client-driven logical run
MAX_CHUNK_CALLS: int = 200

# ---------------------------------------------------------------------------
# Run modes and log partitions
# ---------------------------------------------------------------------------

MODES: list[str] = ["prod", "test"]

RUN_LOG_TABS: dict[str, str] = {
    "prod": "Runs - prod",
    "test": "Runs - test",
}

CONFIG_TAB = "Config"

# Tabs that are never datasets
META_TABS: frozenset[str] = frozenset(
    {CONFIG_TAB, "Logs", "Overview", *RUN_LOG_TABS.values()}
)

# Consecutive chunk log rows closer than this belong to one logical run
DEFAULT_LOGICAL_RUN_GAP_MS: int = 5 * 60 * 1000

# ---------------------------------------------------------------------------
# Review queue / history
# ---------------------------------------------------------------------------

DEFAULT_REVIEW_MAX_CONFIDENCE: float = 0.75
DEFAULT_HISTORY_LIMIT: int = 10
