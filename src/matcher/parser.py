"""
Classifier output parsing: content extraction, fence stripping, strict and
heuristic verdict parsing, and confidence extraction.

No I/O occurs here; all functions are pure transformations of strings and
dicts to support easy unit testing.

The parse chain is modelled as a tagged result rather than nested
exception handling:

    StrictParse     the payload decoded as JSON and passed validation
    HeuristicParse  JSON failed, but all three fields were recovered by
                      pattern matching
    Fallback        neither worked; the caller records a synthetic UNSURE
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Union

from .models import SCORE_BY_VERDICT, UNSURE, VERDICTS

CONFIDENCE_PATTERN = re.compile(r"confidence\s*=\s*(0\.\d+|1(?:\.0+)?)", re.IGNORECASE)

VERDICT_PATTERN = re.compile(r'"verdict"\s*:\s*"(SAME|DIFFERENT|UNSURE)"', re.IGNORECASE)
SCORE_PATTERN = re.compile(r'"match_score"\s*:\s*(0|1|2)', re.IGNORECASE)
NOTES_PATTERN = re.compile(r'"notes"\s*:\s*"([^"]*)"', re.IGNORECASE)

# Notes used whenever a row has to fall back to UNSURE
FALLBACK_CONFIDENCE = "0.50"


# ---------------------------------------------------------------------------
# Tagged parse results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StrictParse:
    verdict: str
    match_score: int
    notes: str
    method: str = "strict"


@dataclass(frozen=True)
class HeuristicParse:
    verdict: str
    match_score: int
    notes: str
    method: str = "heuristic"


@dataclass(frozen=True)
class Fallback:
    reason: str
    method: str = "fallback"


ParseOutcome = Union[StrictParse, HeuristicParse, Fallback]


# ---------------------------------------------------------------------------
# Response content extraction
# ---------------------------------------------------------------------------

def extract_message_text(content) -> str:
    """
    Flatten a chat message ``content`` field into plain text.

    Handles a plain string and the "array of content parts" format, where
    each part may be a string, ``{"text": "..."}`` or
    ``{"text": {"value": "..."}}``.  Non-text parts are skipped.

    Args:
        content: The ``message.content`` value from a chat completion.

    Returns:
        Text parts joined with newlines (empty string if none).
    """
    if not content:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if not part:
                continue
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict):
                text = part.get("text")
                if isinstance(text, str):
                    parts.append(text)
                elif isinstance(text, dict) and isinstance(text.get("value"), str):
                    parts.append(text["value"])
        return "\n".join(p for p in parts if p)
    return ""


def extract_chat_text(response_json: dict) -> str:
    """Return the first choice's message text from a Chat Completions body."""
    choices = response_json.get("choices") or []
    if not choices:
        return ""
    message = choices[0].get("message") or {}
    return extract_message_text(message.get("content")).strip()


def extract_responses_text(response_json: dict) -> str:
    """
    Return output text from a Responses API body.

    Prefers the ``output_text`` convenience field; otherwise joins the
    ``text`` of every content part of every output item.
    """
    output_text = response_json.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    chunks: list[str] = []
    for item in response_json.get("output") or []:
        content = item.get("content") if isinstance(item, dict) else None
        if not isinstance(content, list):
            continue
        texts = []
        for part in content:
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if isinstance(text, dict):
                text = text.get("value")
            texts.append(text if isinstance(text, str) else "")
        chunks.append("\n".join(texts))
    return "\n".join(chunks).strip()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def strip_code_fences(content: str) -> str:
    """
    Remove a surrounding Markdown code fence (```` ```json ... ``` ````).

    Models are told not to fence their JSON but some do anyway.
    """
    text = content.strip()
    if text.startswith("```"):
        text = re.sub(r"^```[a-zA-Z]*\s*", "", text)
        text = re.sub(r"```$", "", text)
        text = text.strip()
    return text


def _coerce_score(value) -> int | None:
    # bool is an int subclass; true/false are not scores
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def score_matches_verdict(verdict: str, match_score: int) -> bool:
    """True when ``match_score`` agrees with the fixed verdict → score mapping."""
    return SCORE_BY_VERDICT.get(verdict) == match_score


def parse_strict(content: str) -> StrictParse | None:
    """
    Decode ``content`` as a JSON object and validate the three fields.

    Returns ``None`` (never raises) when the text is not JSON, is not an
    object, or any field is missing or out of range.  A score that
    contradicts the verdict is kept as returned; the verdict wins when
    the result is built.
    """
    try:
        parsed = json.loads(content)
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(parsed, dict):
        return None

    verdict = parsed.get("verdict")
    match_score = _coerce_score(parsed.get("match_score"))
    notes = parsed.get("notes")

    if verdict not in VERDICTS or match_score not in SCORE_BY_VERDICT.values():
        return None
    if not isinstance(notes, str) or not notes.strip():
        return None

    return StrictParse(verdict=verdict, match_score=match_score, notes=notes)


def parse_heuristic(content: str) -> HeuristicParse | None:
    """
    Recover ``verdict``, ``match_score`` and ``notes`` independently by
    pattern matching on the raw text.

    Succeeds only when all three patterns match.
    """
    verdict_match = VERDICT_PATTERN.search(content)
    score_match = SCORE_PATTERN.search(content)
    notes_match = NOTES_PATTERN.search(content)

    if not (verdict_match and score_match and notes_match):
        return None

    verdict = verdict_match.group(1).upper()
    match_score = int(score_match.group(1))
    notes = notes_match.group(1)

    if not notes:
        return None

    return HeuristicParse(verdict=verdict, match_score=match_score, notes=notes)


def parse_model_output(raw_content: str) -> ParseOutcome:
    """
    Run the full parse chain on raw classifier text.

    Order: strip code fences → strict JSON parse → heuristic field
    extraction → :class:`Fallback`.

    Args:
        raw_content: Text returned by the classification service.

    Returns:
        One of :class:`StrictParse`, :class:`HeuristicParse` or
        :class:`Fallback`.
    """
    cleaned = strip_code_fences(raw_content or "")

    strict = parse_strict(cleaned)
    if strict is not None:
        return strict

    heuristic = parse_heuristic(cleaned)
    if heuristic is not None:
        return heuristic

    return Fallback(
        reason=(
            "Model returned non-JSON or badly formatted JSON: "
            f"{(raw_content or '')[:200]}"
        )
    )


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------

def parse_confidence(notes: str | None) -> float | None:
    """
    Extract the confidence value embedded in a notes string.

    Expects text like ``"confidence=0.87; short explanation"``.  Returns
    ``None`` rather than raising when the token is absent or malformed.

    Args:
        notes: Notes text written by the classifier (or a fallback note).

    Returns:
        Float in [0, 1], or ``None``.
    """
    if not notes:
        return None
    match = CONFIDENCE_PATTERN.search(notes)
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    return value if 0.0 <= value <= 1.0 else None


def fallback_notes(message: str) -> str:
    """Notes for a synthetic UNSURE result, carrying the failure description."""
    return f"confidence={FALLBACK_CONFIDENCE}; Fallback {UNSURE} due to error: {message or 'unknown error'}"
