"""
src/matcher - LLM classification of candidate record pairs.

Module layout
-------------
config.py   - path constants, Config-tab numeric helpers, re-exported defaults
models.py   - verdict constants, PendingRecord, ClassificationResult
parser.py   - fence stripping, strict / heuristic parse, confidence extraction
retry.py    - error categorization, jittered backoff, retry wrapper,
              failed-row audit log
client.py   - ClassifierClient (HTTP), prompt construction, per-record request

Public interface
----------------
Classify one record (retries included):
    request_classification(client, record, config)

Turn a parse outcome or failure into a result:
    result_from_outcome(record, outcome)
    fallback_result(record, message)

Parse raw model text:
    parse_model_output(raw_content)
    parse_confidence(notes)
"""

from .client import (
    ClassifierClient,
    build_system_prompt,
    build_user_prompt,
    fallback_result,
    request_classification,
    result_from_outcome,
)
from .models import (
    DIFFERENT,
    SAME,
    SCORE_BY_VERDICT,
    UNSURE,
    ClassificationResult,
    PendingRecord,
)
from .parser import Fallback, HeuristicParse, StrictParse, parse_confidence, parse_model_output
from .retry import APIError, EmptyOutputError, call_with_retry, log_failed_row

__all__ = [
    # Types
    "PendingRecord",
    "ClassificationResult",
    "SAME",
    "DIFFERENT",
    "UNSURE",
    "SCORE_BY_VERDICT",
    # Client
    "ClassifierClient",
    "build_system_prompt",
    "build_user_prompt",
    "request_classification",
    "result_from_outcome",
    "fallback_result",
    # Parsing
    "StrictParse",
    "HeuristicParse",
    "Fallback",
    "parse_model_output",
    "parse_confidence",
    # Retry
    "APIError",
    "EmptyOutputError",
    "call_with_retry",
    "log_failed_row",
]
