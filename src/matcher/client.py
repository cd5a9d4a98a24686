"""
Classifier client, request construction, and single-record classification.

Design notes:
- The HTTP client is an explicit ``ClassifierClient`` object constructed
  once per run and passed to every worker; nothing is held in module
  globals.  Tests substitute a stub with the same ``complete`` method.
- Each call is fully stateless: a system message plus one user message
  describing the two records.  No temperature or token limits are sent,
  since newer small models reject some of those parameters.
- Chat Completions is tried first; Responses is the fallback endpoint.
"""

from __future__ import annotations

import os
import random
import time
from typing import Callable

import requests

from .config import (
    API_BASE_URL_ENV,
    API_KEY_ENV,
    CHAT_COMPLETIONS_PATH,
    DEFAULT_API_BASE_URL,
    REQUEST_TIMEOUT_SECONDS,
    RESPONSES_PATH,
    resolve_model,
    resolve_prompt_template,
    resolve_retry_settings,
)
from .models import SCORE_BY_VERDICT, UNSURE, ClassificationResult, PendingRecord
from .parser import (
    Fallback,
    ParseOutcome,
    extract_chat_text,
    extract_responses_text,
    fallback_notes,
    parse_model_output,
    score_matches_verdict,
)
from .retry import EmptyOutputError, call_with_retry


class ClassifierClient:
    """
    Thin ``requests`` wrapper around the text-classification service.

    Args:
        api_key: Bearer token; read from ``OPENAI_API_KEY`` when omitted.
        base_url: API root; ``OPENAI_BASE_URL`` or the public endpoint
            when omitted.
        timeout: Per-request timeout in seconds.
        session: Pre-built ``requests.Session`` (shared connection pool).

    Raises:
        ValueError: If no API key is configured.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        api_key = api_key or os.getenv(API_KEY_ENV)
        if not api_key:
            raise ValueError(
                f"API key not found. Set the '{API_KEY_ENV}' environment variable "
                "before starting a run."
            )

        self.base_url = (
            base_url or os.getenv(API_BASE_URL_ENV) or DEFAULT_API_BASE_URL
        ).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    def _post(self, path: str, payload: dict) -> dict:
        response = self.session.post(
            f"{self.base_url}{path}",
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()  # raises HTTPError for 4xx/5xx
        return response.json()

    def chat_completion(self, model: str, system: str, user: str) -> str:
        body = self._post(CHAT_COMPLETIONS_PATH, {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        })
        return extract_chat_text(body)

    def responses(self, model: str, system: str, user: str) -> str:
        body = self._post(RESPONSES_PATH, {
            "model": model,
            "input": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        })
        return extract_responses_text(body)

    def complete(self, model: str, system: str, user: str) -> str:
        """
        One classification attempt across both endpoints.

        Returns the first non-empty text.  Chat errors are reported and
        swallowed in favour of the Responses fallback; Responses errors
        propagate to the retry layer.

        Raises:
            EmptyOutputError: Both endpoints returned no text.
            requests.RequestException: The Responses call failed.
        """
        try:
            text = self.chat_completion(model, system, user)
            if text:
                return text
            print("  Chat completions returned empty content; falling back to Responses API.")
        except (requests.RequestException, ValueError) as exc:
            print(f"  Chat completions error; falling back to Responses API: {str(exc)[:120]}")

        text = self.responses(model, system, user)
        if not text:
            raise EmptyOutputError(
                "Empty content from model (chat + responses both returned nothing)"
            )
        return text

    def close(self) -> None:
        self.session.close()


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------

def build_system_prompt(template: str) -> str:
    """Operator template followed by the fixed precision rules."""
    return (
        f"{template.strip()}\n"
        "\n"
        "You must:\n"
        "- Prefer high precision on SAME (avoid false positives for duplicates).\n"
        "- Use UNSURE when evidence is genuinely ambiguous.\n"
        "- Keep notes short and helpful for a human reviewer "
        "(one short sentence if possible)."
    )


def _format_distance(distance_meters: float | None) -> str:
    if distance_meters is None:
        return "unknown"
    if float(distance_meters).is_integer():
        return f"{int(distance_meters)}m"
    return f"{distance_meters}m"


def build_user_prompt(record: PendingRecord) -> str:
    """
    Describe both records, the distance hint and the exact output contract.

    Args:
        record: The pending comparison unit.

    Returns:
        User message text.
    """
    return (
        "Decide if these two records refer to the SAME, DIFFERENT, or UNSURE "
        "physical place.\n"
        "\n"
        "Record 1:\n"
        f"- id: {record.id1}\n"
        f"- name: {record.name1}\n"
        f"- address: {record.address1}\n"
        f"- link: {record.link1 or 'n/a'}\n"
        "\n"
        "Record 2:\n"
        f"- id: {record.id2}\n"
        f"- name: {record.name2}\n"
        f"- address: {record.address2}\n"
        f"- link: {record.link2 or 'n/a'}\n"
        "\n"
        f"Approx distance (meters): {_format_distance(record.distance_meters)}\n"
        "\n"
        "Output **ONLY** a JSON object with this exact shape (no extra text):\n"
        "\n"
        "{\n"
        '  "verdict": "SAME" | "DIFFERENT" | "UNSURE",\n'
        '  "match_score": 1 | 0 | 2,\n'
        '  "notes": "confidence=0.xx; short explanation"\n'
        "}\n"
        "\n"
        "Rules:\n"
        '- "match_score" must be 1 if verdict is "SAME", 0 if "DIFFERENT", '
        '2 if "UNSURE".\n'
        '- "notes" must start with "confidence=0.xx;" (two decimal places, '
        "0.00-1.00), then a brief explanation.\n"
        "- Do not include any extra fields.\n"
        "- Do NOT wrap the JSON in backticks, markdown code fences, or natural language."
    )


# ---------------------------------------------------------------------------
# Single-record classification
# ---------------------------------------------------------------------------

def request_classification(
    client: ClassifierClient,
    record: PendingRecord,
    config: dict[str, str],
    sleep: Callable[[float], None] = time.sleep,
    rng: random.Random | None = None,
) -> ParseOutcome:
    """
    Classify one record: build the prompt, call with retry, parse.

    Args:
        client: Shared classifier client.
        record: Record to classify.
        config: Config-tab snapshot for this chunk.
        sleep: Sleep function used for backoff waits.
        rng: Random source for backoff jitter.

    Returns:
        The tagged parse outcome (never raises for malformed output).

    Raises:
        Exception: The last service error once retries are exhausted or
            the error is not retryable.
    """
    model = resolve_model(config)
    system = build_system_prompt(resolve_prompt_template(config))
    user = build_user_prompt(record)
    max_retries, base_delay = resolve_retry_settings(config)

    raw = call_with_retry(
        lambda: client.complete(model, system, user),
        max_retries=max_retries,
        base_delay=base_delay,
        sleep=sleep,
        rng=rng,
        label=f"row {record.row_index}",
    )
    return parse_model_output(raw)


def fallback_result(record: PendingRecord, message: str) -> ClassificationResult:
    """Synthetic UNSURE result recorded when a row cannot be classified."""
    return ClassificationResult(
        row_index=record.row_index,
        verdict=UNSURE,
        match_score=SCORE_BY_VERDICT[UNSURE],
        notes=fallback_notes(message),
    )


def result_from_outcome(record: PendingRecord, outcome: ParseOutcome) -> ClassificationResult:
    """
    Turn a parse outcome into the result written back to the store.

    The score is taken from the fixed verdict mapping, not from the
    model's ``match_score`` field; a contradicting score is reported
    and overridden, never used to discard the verdict.
    """
    if isinstance(outcome, Fallback):
        return fallback_result(record, outcome.reason)
    if not score_matches_verdict(outcome.verdict, outcome.match_score):
        print(
            f"  Row {record.row_index}: match_score {outcome.match_score} contradicts "
            f"verdict {outcome.verdict}; using {SCORE_BY_VERDICT[outcome.verdict]}"
        )
    return ClassificationResult(
        row_index=record.row_index,
        verdict=outcome.verdict,
        match_score=SCORE_BY_VERDICT[outcome.verdict],
        notes=outcome.notes,
    )
