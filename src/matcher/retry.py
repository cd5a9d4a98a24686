"""
Classifier error categorization, jittered linear backoff, the retry
wrapper, and the failed-row audit log.

Retry schedule: after failed attempt ``n`` the wrapper waits
``base_delay × n × jitter`` with jitter drawn uniformly from
[0.85, 1.15].  Only transient failures (rate limiting, 5xx, empty model
output, transport timeouts) are retried; everything else is raised to the
caller immediately.
"""

from __future__ import annotations

import json
import random
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, TypeVar

import requests

from .config import BACKOFF_JITTER_RANGE, FAILED_ROWS_LOG

T = TypeVar("T")

_LOG_LOCK = threading.Lock()


class EmptyOutputError(RuntimeError):
    """The classifier answered but produced no text on any endpoint."""


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class APIError:
    """
    Error category constants and classification logic for classifier calls.

    Categories drive retry decisions: transient errors are retried with
    backoff; everything else (a well-formed request the service rejected,
    or an unexpected failure) is surfaced on the first occurrence.
    """

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit_exceeded"
    SERVER_ERROR = "server_error"
    EMPTY_OUTPUT = "empty_output"
    REQUEST_REJECTED = "request_rejected"
    INVALID_RESPONSE = "invalid_response"
    OTHER = "other"

    # Transient errors that warrant automatic retry
    RETRIABLE: frozenset[str] = frozenset({TIMEOUT, RATE_LIMIT, SERVER_ERROR, EMPTY_OUTPUT})

    # Message fragments of transport failures that usually recover on retry
    TRANSPORT_SIGNATURES: tuple[str, ...] = (
        "etimedout",
        "econnreset",
        "enotfound",
        "timed out",
        "connection reset",
        "connection aborted",
        "name or service not known",
    )

    @staticmethod
    def status_code(error: Exception) -> int | None:
        """HTTP status attached to ``error`` (directly or via its response)."""
        status = getattr(error, "status_code", None)
        if status is None:
            # Response.__bool__ is False for 4xx/5xx, so compare to None
            response = getattr(error, "response", None)
            if response is not None:
                status = getattr(response, "status_code", None)
        return status if isinstance(status, int) else None

    @staticmethod
    def categorize(error: Exception) -> tuple[str, str]:
        """
        Classify an exception into an error category and message pair.

        Checks the HTTP status first (429, 5xx, other 4xx), then the empty
        output condition, then transport timeouts by type and by message.

        Args:
            error: Exception raised during the classifier call.

        Returns:
            Tuple of (category: str, message: str).
        """
        message = str(error) or error.__class__.__name__
        status = APIError.status_code(error)

        if status == 429:
            return APIError.RATE_LIMIT, message
        if status is not None and 500 <= status < 600:
            return APIError.SERVER_ERROR, message
        if status is not None and 400 <= status < 500:
            return APIError.REQUEST_REJECTED, message

        if isinstance(error, EmptyOutputError) or "empty content from model" in message.lower():
            return APIError.EMPTY_OUTPUT, message

        if isinstance(error, (requests.Timeout, requests.ConnectionError)):
            return APIError.TIMEOUT, message

        lowered = message.lower()
        if any(sig in lowered for sig in APIError.TRANSPORT_SIGNATURES):
            return APIError.TIMEOUT, message

        return APIError.OTHER, message

    @staticmethod
    def is_retryable(error: Exception) -> bool:
        category, _ = APIError.categorize(error)
        return category in APIError.RETRIABLE


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------

def backoff_delay(
    base_delay: float,
    attempt: int,
    rng: random.Random | None = None,
) -> float:
    """
    Return the wait in seconds before retrying after ``attempt`` failed.

    Args:
        base_delay: Base delay in seconds (``RATE_LIMIT_DELAY_MS`` / 1000).
        attempt: 1-based number of the attempt that just failed.
        rng: Random source for the jitter; the module RNG when omitted.

    Returns:
        ``base_delay × attempt × jitter`` with jitter in [0.85, 1.15].
    """
    lo, hi = BACKOFF_JITTER_RANGE
    jitter = (rng or random).uniform(lo, hi)
    return base_delay * attempt * jitter


# ---------------------------------------------------------------------------
# Main retry wrapper
# ---------------------------------------------------------------------------

def call_with_retry(
    fn: Callable[[], T],
    max_retries: int,
    base_delay: float,
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
    label: str = "",
) -> T:
    """
    Call ``fn`` with up to ``max_retries`` retries on transient errors.

    The first call plus ``max_retries`` retries gives at most
    ``max_retries + 1`` attempts.  Non-retryable errors are raised after
    the attempt that produced them.

    Args:
        fn: Zero-argument callable performing one classifier attempt.
        max_retries: Retries allowed after the first attempt (already
            clamped by the caller).
        base_delay: Base backoff delay in seconds.
        sleep: Sleep function (substituted in tests).
        rng: Random source for backoff jitter.
        label: Prefix for printed progress lines (e.g. ``"row 12"``).

    Returns:
        Whatever ``fn`` returns on the first successful attempt.

    Raises:
        Exception: The last error, once it is non-retryable or the retry
            budget is spent.
    """
    total_attempts = max_retries + 1
    prefix = f"  [{label}] " if label else "  "

    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except Exception as exc:
            category, message = APIError.categorize(exc)
            print(
                f"{prefix}Attempt {attempt}/{total_attempts} failed "
                f"[{category}]: {message[:120]}"
            )
            if category not in APIError.RETRIABLE or attempt > max_retries:
                raise

            delay = backoff_delay(base_delay, attempt, rng)
            print(f"{prefix}Retrying in ~{round(delay * 1000)}ms...")
            sleep(delay)


# ---------------------------------------------------------------------------
# Failed-row audit log
# ---------------------------------------------------------------------------

def log_failed_row(
    row_index: int,
    store_id: str,
    tab_name: str,
    category: str,
    message: str,
    log_path: Path = FAILED_ROWS_LOG,
) -> dict:
    """
    Append one row-level failure to the JSONL audit log.

    Records accumulate across invocations.  The log is diagnostic only:
    the row already carries its UNSURE fallback result and will not be
    selected again.

    Args:
        row_index: Sheet row of the failed record.
        store_id: Store identifier the row belongs to.
        tab_name: Dataset tab the row belongs to.
        category: Error category from :meth:`APIError.categorize`, or
            ``APIError.INVALID_RESPONSE`` for unparseable output.
        message: Failure description.
        log_path: Path to the JSONL log file.

    Returns:
        The record that was written.
    """
    record = {
        "row_index": row_index,
        "store_id": store_id,
        "tab_name": tab_name,
        "error_category": category,
        "error_message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    with _LOG_LOCK:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record) + "\n")

    return record
