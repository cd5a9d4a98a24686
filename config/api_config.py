"""
Classification service endpoint and authentication configuration.

This is the AUTHORITATIVE source for classifier API configuration.
src/matcher/config.py imports from here; do not maintain parallel copies.

ENVIRONMENT VARIABLES:
    OPENAI_API_KEY  : required; bearer token for the classifier
    OPENAI_BASE_URL : optional; override the API root (proxies, gateways)
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
#
# The client tries Chat Completions first and falls back to the Responses
# API when chat returns nothing usable.  Both live under the same root.

DEFAULT_API_BASE_URL: str = "https://api.openai.com/v1"

CHAT_COMPLETIONS_PATH: str = "/chat/completions"
RESPONSES_PATH: str = "/responses"

API_KEY_ENV: str = "OPENAI_API_KEY"
API_BASE_URL_ENV: str = "OPENAI_BASE_URL"

# ---------------------------------------------------------------------------
# Model selection
# ---------------------------------------------------------------------------

# Used when the Config tab has no MODEL entry (or it is blank).
DEFAULT_MODEL: str = "gpt-5-mini"

# HTTP request timeout; a timeout is treated as a transient, retryable error
REQUEST_TIMEOUT_SECONDS: int = 60
