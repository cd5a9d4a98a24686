"""
Testing-mode accuracy against the ground-truth label column.

Only labeled rows (confirmed = 0/1) count.  A labeled row with a verdict
is "evaluated"; UNSURE verdicts are tallied separately and excluded from
strict accuracy, which is computed over definite verdicts only.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
from scipy import stats

from src.matcher.models import DIFFERENT, SAME, UNSURE


def wilson_confidence_interval(
    accuracy: float,
    graded: int,
    level: float = 0.95,
) -> tuple[float, float]:
    """
    Bounds on strict accuracy given how few rows a testing tab grades.

    ``graded`` counts only the rows whose verdict was definite (correct
    plus wrong); UNSURE rows and rows without a confirmed label do not
    narrow the interval. A zero count yields ``(0.0, 0.0)``.

    Returns:
        ``(low, high)`` clamped to [0, 1].
    """
    if graded == 0:
        return (0.0, 0.0)

    z = stats.norm.ppf((1 + level) / 2)
    z2 = z**2
    shrink = 1 + z2 / graded
    midpoint = (accuracy + z2 / (2 * graded)) / shrink
    spread = z * np.sqrt(accuracy * (1 - accuracy) / graded + z2 / (4 * graded**2)) / shrink

    return (max(0.0, float(midpoint - spread)), min(1.0, float(midpoint + spread)))


def grade_row(confirmed: str, verdict: str) -> str | None:
    """
    Grade one row: ``'correct'``, ``'wrong'``, ``'unsure'``, or ``None``
    when the row is unlabeled or has no verdict yet.
    """
    if confirmed not in ("0", "1") or not verdict:
        return None

    verdict = verdict.upper()
    if verdict == UNSURE:
        return "unsure"
    if (verdict == SAME and confirmed == "1") or (verdict == DIFFERENT and confirmed == "0"):
        return "correct"
    return "wrong"


def compute_testing_accuracy(dataset_df: pd.DataFrame) -> dict:
    """
    Accuracy of recorded verdicts against ground truth.

    Args:
        dataset_df: Frame from :func:`src.store.dataset.read_dataset_frame`
            (needs ``confirmed`` and ``verdict`` columns).

    Returns:
        Dict with ``total_labelled``, ``total_evaluated``, ``correct``,
        ``wrong``, ``unsure``, ``strict_accuracy`` (correct / definite, or
        None), ``coverage`` (definite / labelled, or None) and
        ``strict_accuracy_ci_95`` (Wilson interval, or None).
    """
    labelled = dataset_df[dataset_df["confirmed"].isin(["0", "1"])]
    grades = [
        grade_row(confirmed, verdict)
        for confirmed, verdict in zip(labelled["confirmed"], labelled["verdict"])
    ]

    correct = grades.count("correct")
    wrong = grades.count("wrong")
    unsure = grades.count("unsure")
    definite = correct + wrong
    total_labelled = len(labelled)

    strict_accuracy = correct / definite if definite > 0 else None
    coverage = definite / total_labelled if total_labelled > 0 else None
    ci = (
        wilson_confidence_interval(strict_accuracy, definite)
        if strict_accuracy is not None else None
    )

    return {
        "total_labelled": total_labelled,
        "total_evaluated": correct + wrong + unsure,
        "correct": correct,
        "wrong": wrong,
        "unsure": unsure,
        "strict_accuracy": strict_accuracy,
        "coverage": coverage,
        "strict_accuracy_ci_95": ci,
    }
