"""
Human review queue: evaluated rows a person should double-check.

A row is queued when its verdict is UNSURE, or when a SAME / DIFFERENT
verdict carries a parsed confidence at or below ``max_confidence``.
Least confident rows come first; rows without a parsable confidence sort
ahead of everything else.
"""

from __future__ import annotations

import pandas as pd

from config.run_params import DEFAULT_REVIEW_MAX_CONFIDENCE
from src.matcher.models import DIFFERENT, SAME, UNSURE
from src.matcher.parser import parse_confidence

REASON_UNSURE = "UNSURE"
REASON_LOW_CONF_SAME = "LOW_CONF_SAME"
REASON_LOW_CONF_DIFF = "LOW_CONF_DIFF"


def _to_score(raw: str) -> int | None:
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return None


def review_reason(verdict: str, confidence: float | None, max_confidence: float) -> str | None:
    if verdict == UNSURE:
        return REASON_UNSURE
    if confidence is not None and confidence <= max_confidence:
        if verdict == SAME:
            return REASON_LOW_CONF_SAME
        if verdict == DIFFERENT:
            return REASON_LOW_CONF_DIFF
    return None


def build_review_queue(
    dataset_df: pd.DataFrame,
    max_confidence: float = DEFAULT_REVIEW_MAX_CONFIDENCE,
) -> list[dict]:
    """
    Select and order rows for manual review.

    Args:
        dataset_df: Frame from :func:`src.store.dataset.read_dataset_frame`.
        max_confidence: Confidence at or below which definite verdicts are
            queued; clamped to [0, 1].

    Returns:
        List of review item dicts sorted by ascending confidence.
    """
    max_confidence = min(1.0, max(0.0, float(max_confidence)))
    items: list[dict] = []

    for _, row in dataset_df.iterrows():
        verdict = row["verdict"].upper()
        notes = row["notes"]
        if not verdict and not notes:
            continue  # not evaluated

        confidence = parse_confidence(notes)
        reason = review_reason(verdict, confidence, max_confidence)
        if reason is None:
            continue

        items.append({
            "row_index": int(row["row_index"]),
            "id1": row["id1"],
            "id2": row["id2"],
            "name1": row["name1"],
            "name2": row["name2"],
            "address1": row["address1"],
            "address2": row["address2"],
            "verdict": verdict,
            "match_score": _to_score(row["match_score"]),
            "confidence": confidence,
            "notes": notes,
            "reason": reason,
        })

    items.sort(key=lambda item: -1.0 if item["confidence"] is None else item["confidence"])
    return items
