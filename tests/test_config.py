"""
Unit tests for the Config-tab helpers in src/matcher/config.py.
"""

from __future__ import annotations

import pytest

from src.matcher.config import (
    clamp_parallel,
    get_numeric_config,
    resolve_chunk_size,
    resolve_model,
    resolve_prompt_template,
    resolve_retry_settings,
)


class TestGetNumericConfig:
    """Fallbacks for missing / invalid values, clamping otherwise."""

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", "nan", "inf", "-inf"])
    def test_invalid_values_use_fallback(self, raw):
        config = {} if raw is None else {"K": raw}
        assert get_numeric_config(config, "K", 7, minimum=0, maximum=5) == 7

    def test_clamps_to_range(self):
        assert get_numeric_config({"K": "12"}, "K", 1, minimum=0, maximum=5) == 5
        assert get_numeric_config({"K": "-3"}, "K", 1, minimum=0, maximum=5) == 0

    def test_parses_with_whitespace(self):
        assert get_numeric_config({"K": " 2.5 "}, "K", 1) == 2.5


class TestResolvers:
    """Typed run settings derived from the Config snapshot."""

    @pytest.mark.parametrize("raw, expected", [
        ("25", 25),
        ("12.7", 12),
        ("0", 50),
        ("-4", 50),
        ("", 50),
        ("lots", 50),
    ])
    def test_chunk_size(self, raw, expected):
        assert resolve_chunk_size({"BATCH_SIZE": raw}) == expected

    def test_retry_settings_defaults(self):
        assert resolve_retry_settings({}) == (1, 0.25)

    def test_retry_settings_clamped(self):
        assert resolve_retry_settings({"MAX_RETRIES": "9", "RATE_LIMIT_DELAY_MS": "99999"}) == (3, 5.0)
        assert resolve_retry_settings({"MAX_RETRIES": "-1", "RATE_LIMIT_DELAY_MS": "-5"}) == (0, 0.0)

    def test_model_is_trimmed(self):
        assert resolve_model({"MODEL": "  gpt-4.1-mini \n"}) == "gpt-4.1-mini"
        assert resolve_model({"MODEL": "   "}) == "gpt-5-mini"

    def test_prompt_template_default(self):
        assert "UK food businesses" in resolve_prompt_template({})

    @pytest.mark.parametrize("requested, expected", [
        (None, 8),
        (0, 1),
        (-5, 1),
        (4, 4),
        (50, 20),
    ])
    def test_clamp_parallel(self, requested, expected):
        assert clamp_parallel(requested) == expected
