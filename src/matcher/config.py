"""
Matcher configuration: project paths, re-exported constants, and helpers
that turn the store's flat Config tab into validated numbers.

Static constants are defined once in the root ``config`` package; this
module re-exports them so the matcher imports from a single place.
"""

from __future__ import annotations

import math
from pathlib import Path

from config.api_config import (
    API_BASE_URL_ENV,
    API_KEY_ENV,
    CHAT_COMPLETIONS_PATH,
    DEFAULT_API_BASE_URL,
    DEFAULT_MODEL,
    REQUEST_TIMEOUT_SECONDS,
    RESPONSES_PATH,
)
from config.run_params import (
    BACKOFF_JITTER_RANGE,
    CONFIG_KEY_BATCH_SIZE,
    CONFIG_KEY_MAX_RETRIES,
    CONFIG_KEY_MODEL,
    CONFIG_KEY_PROMPT_TEMPLATE,
    CONFIG_KEY_RATE_LIMIT_DELAY_MS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PARALLEL,
    DEFAULT_PROMPT_TEMPLATE,
    DEFAULT_RATE_LIMIT_DELAY_MS,
    MAX_CHUNK_CALLS,
    MAX_RETRIES_RANGE,
    PARALLEL_RANGE,
    RATE_LIMIT_DELAY_RANGE_MS,
)

__all__ = [
    "API_BASE_URL_ENV",
    "API_KEY_ENV",
    "BACKOFF_JITTER_RANGE",
    "CHAT_COMPLETIONS_PATH",
    "DEFAULT_API_BASE_URL",
    "DEFAULT_PARALLEL",
    "FAILED_ROWS_LOG",
    "MAX_CHUNK_CALLS",
    "REQUEST_TIMEOUT_SECONDS",
    "RESPONSES_PATH",
    "STORE_DIR",
    "clamp_parallel",
    "get_numeric_config",
    "resolve_chunk_size",
    "resolve_model",
    "resolve_prompt_template",
    "resolve_retry_settings",
]

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Resolve from this file: src/matcher/config.py → src/matcher → src → root
PROJECT_ROOT = Path(__file__).resolve().parents[2]

DATA_DIR = PROJECT_ROOT / "data"
STORE_DIR = DATA_DIR / "stores"
LOGS_DIR = PROJECT_ROOT / "logs"

FAILED_ROWS_LOG = LOGS_DIR / "failed_rows.jsonl"


# ---------------------------------------------------------------------------
# Config-tab helpers
# ---------------------------------------------------------------------------

def get_numeric_config(
    config: dict[str, str],
    key: str,
    fallback: float,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """
    Read a numeric Config value with a fallback and optional clamping.

    Missing, blank, unparseable and non-finite values all yield
    ``fallback`` unchanged (the fallback itself is not clamped).

    Args:
        config: Flat Key → Value mapping from the Config tab.
        key: Config key to read.
        fallback: Value used when the entry is absent or invalid.
        minimum: Lower clamp bound, if any.
        maximum: Upper clamp bound, if any.

    Returns:
        The parsed and clamped number, or ``fallback``.
    """
    raw = config.get(key)
    if raw is None or str(raw).strip() == "":
        return fallback

    try:
        value = float(str(raw).strip())
    except ValueError:
        return fallback
    if not math.isfinite(value):
        return fallback

    if minimum is not None:
        value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def resolve_chunk_size(config: dict[str, str]) -> int:
    """
    Rows one chunk invocation may process.

    ``BATCH_SIZE`` is floored to an integer; anything that is not a
    positive finite number falls back to ``DEFAULT_CHUNK_SIZE``.
    """
    value = get_numeric_config(config, CONFIG_KEY_BATCH_SIZE, DEFAULT_CHUNK_SIZE)
    chunk_size = math.floor(value)
    return chunk_size if chunk_size > 0 else DEFAULT_CHUNK_SIZE


def resolve_retry_settings(config: dict[str, str]) -> tuple[int, float]:
    """
    Return ``(max_retries, base_delay_seconds)`` from the Config tab.

    ``MAX_RETRIES`` is clamped to [0, 3] and ``RATE_LIMIT_DELAY_MS`` to
    [0, 5000] before the delay is converted to seconds.
    """
    lo, hi = MAX_RETRIES_RANGE
    max_retries = int(get_numeric_config(
        config, CONFIG_KEY_MAX_RETRIES, DEFAULT_MAX_RETRIES, lo, hi,
    ))
    lo_ms, hi_ms = RATE_LIMIT_DELAY_RANGE_MS
    delay_ms = get_numeric_config(
        config, CONFIG_KEY_RATE_LIMIT_DELAY_MS, DEFAULT_RATE_LIMIT_DELAY_MS, lo_ms, hi_ms,
    )
    return max_retries, delay_ms / 1000.0


def resolve_model(config: dict[str, str]) -> str:
    """Model id from Config, trimmed of stray whitespace, else the default."""
    return (config.get(CONFIG_KEY_MODEL) or "").strip() or DEFAULT_MODEL


def resolve_prompt_template(config: dict[str, str]) -> str:
    return (config.get(CONFIG_KEY_PROMPT_TEMPLATE) or "").strip() or DEFAULT_PROMPT_TEMPLATE


def clamp_parallel(parallel: int | None) -> int:
    """Clamp a caller-supplied worker count to the supported range."""
    lo, hi = PARALLEL_RANGE
    if parallel is None:
        return DEFAULT_PARALLEL
    return max(lo, min(hi, int(parallel)))
