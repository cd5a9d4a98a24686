"""
Unit tests for src/matcher/retry.py.

Covers:
- APIError.categorize across HTTP statuses, transport errors, empty
  output and unknown failures.
- call_with_retry: total attempt count, backoff schedule and jitter
  bounds, immediate raise for non-retryable errors.
- log_failed_row: JSONL append across calls.
"""

from __future__ import annotations

import json
import random
from unittest.mock import MagicMock

import pytest
import requests

from src.matcher.retry import (
    APIError,
    EmptyOutputError,
    backoff_delay,
    call_with_retry,
    log_failed_row,
)


def _http_error(status: int) -> requests.HTTPError:
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(f"{status} error", response=response)


class _StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code


# ---------------------------------------------------------------------------
# categorize
# ---------------------------------------------------------------------------

class TestCategorize:
    """Error → category mapping that drives retry decisions."""

    @pytest.mark.parametrize("error, expected", [
        (_http_error(429), APIError.RATE_LIMIT),
        (_http_error(500), APIError.SERVER_ERROR),
        (_http_error(503), APIError.SERVER_ERROR),
        (_http_error(400), APIError.REQUEST_REJECTED),
        (_http_error(401), APIError.REQUEST_REJECTED),
        (_StatusError(502), APIError.SERVER_ERROR),
        (requests.Timeout("read timed out"), APIError.TIMEOUT),
        (requests.ConnectionError("refused"), APIError.TIMEOUT),
        (RuntimeError("socket hang up: ETIMEDOUT"), APIError.TIMEOUT),
        (OSError("Connection reset by peer"), APIError.TIMEOUT),
        (EmptyOutputError("Empty content from model"), APIError.EMPTY_OUTPUT),
        (ValueError("boom"), APIError.OTHER),
    ])
    def test_category(self, error, expected):
        category, message = APIError.categorize(error)
        assert category == expected
        assert message

    def test_retriable_set(self):
        assert APIError.RETRIABLE == {
            APIError.TIMEOUT,
            APIError.RATE_LIMIT,
            APIError.SERVER_ERROR,
            APIError.EMPTY_OUTPUT,
        }

    def test_rejected_request_is_not_retryable(self):
        assert not APIError.is_retryable(_http_error(400))
        assert APIError.is_retryable(_http_error(429))


# ---------------------------------------------------------------------------
# backoff / call_with_retry
# ---------------------------------------------------------------------------

class TestBackoff:
    """Linear backoff with multiplicative jitter."""

    def test_delay_within_jitter_bounds(self):
        rng = random.Random(7)
        for attempt in (1, 2, 3):
            delay = backoff_delay(0.25, attempt, rng)
            assert 0.25 * attempt * 0.85 <= delay <= 0.25 * attempt * 1.15

    def test_zero_base_delay(self):
        assert backoff_delay(0.0, 3) == 0.0


class TestCallWithRetry:
    """Attempt counting and raise semantics."""

    def test_success_on_first_attempt(self):
        fn = MagicMock(return_value="ok")
        sleep = MagicMock()
        assert call_with_retry(fn, max_retries=2, base_delay=0.1, sleep=sleep) == "ok"
        assert fn.call_count == 1
        sleep.assert_not_called()

    def test_recovers_after_transient_errors(self):
        fn = MagicMock(side_effect=[_http_error(429), _http_error(503), "ok"])
        waits: list[float] = []
        result = call_with_retry(
            fn, max_retries=2, base_delay=0.25, sleep=waits.append, rng=random.Random(1),
        )
        assert result == "ok"
        assert fn.call_count == 3
        assert len(waits) == 2
        assert 0.25 * 0.85 <= waits[0] <= 0.25 * 1.15
        assert 0.5 * 0.85 <= waits[1] <= 0.5 * 1.15

    def test_exhausted_retries_raise_last_error(self):
        fn = MagicMock(side_effect=_http_error(429))
        waits: list[float] = []
        with pytest.raises(requests.HTTPError):
            call_with_retry(fn, max_retries=2, base_delay=0.1, sleep=waits.append)
        assert fn.call_count == 3
        assert len(waits) == 2

    def test_zero_retries_means_single_attempt(self):
        fn = MagicMock(side_effect=EmptyOutputError("Empty content from model"))
        with pytest.raises(EmptyOutputError):
            call_with_retry(fn, max_retries=0, base_delay=0.1, sleep=MagicMock())
        assert fn.call_count == 1

    def test_non_retryable_raises_immediately(self):
        fn = MagicMock(side_effect=_http_error(400))
        sleep = MagicMock()
        with pytest.raises(requests.HTTPError):
            call_with_retry(fn, max_retries=3, base_delay=0.1, sleep=sleep)
        assert fn.call_count == 1
        sleep.assert_not_called()

    def test_attempt_lines_are_printed(self, capsys):
        fn = MagicMock(side_effect=[requests.Timeout("timed out"), "ok"])
        call_with_retry(fn, max_retries=1, base_delay=0.0, sleep=MagicMock(), label="row 7")
        out = capsys.readouterr().out
        assert "[row 7] Attempt 1/2 failed [timeout]" in out
        assert "Retrying in ~0ms..." in out


# ---------------------------------------------------------------------------
# log_failed_row
# ---------------------------------------------------------------------------

class TestLogFailedRow:
    """Append-only JSONL audit log."""

    def test_appends_one_line_per_call(self, tmp_path):
        log_path = tmp_path / "logs" / "failed_rows.jsonl"
        log_failed_row(4, "demo", "Batch 1", APIError.TIMEOUT, "timed out", log_path)
        record = log_failed_row(9, "demo", "Batch 1", APIError.OTHER, "boom", log_path)

        lines = log_path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1]) == record
        assert record["row_index"] == 9
        assert record["error_category"] == "other"
        assert set(record) == {
            "row_index", "store_id", "tab_name", "error_category", "error_message", "timestamp",
        }
