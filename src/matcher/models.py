"""
Record and result types shared by the matcher, store and reporting layers.

The verdict → score mapping is fixed; a result's score is always looked up
from it, never taken from model output on trust.
"""

from __future__ import annotations

from dataclasses import dataclass


SAME = "SAME"
DIFFERENT = "DIFFERENT"
UNSURE = "UNSURE"

VERDICTS: tuple[str, ...] = (SAME, DIFFERENT, UNSURE)

SCORE_BY_VERDICT: dict[str, int] = {
    SAME: 1,
    DIFFERENT: 0,
    UNSURE: 2,
}


@dataclass(frozen=True)
class PendingRecord:
    """
    One comparison unit read from a dataset tab.

    ``row_index`` is the 1-based sheet row including the header, so the
    first data row is 2.  ``confirmed`` is the ground-truth label:
    1 = same, 0 = different, None = unlabeled.
    """

    row_index: int
    id1: str
    id2: str
    name1: str
    name2: str
    address1: str
    address2: str
    link1: str | None = None
    link2: str | None = None
    distance_meters: float | None = None
    confirmed: int | None = None


@dataclass(frozen=True)
class ClassificationResult:
    """Verdict, fixed score and notes for one record, paired by row index."""

    row_index: int
    verdict: str
    match_score: int
    notes: str

    def as_dict(self) -> dict:
        return {
            "row_index": self.row_index,
            "match_score": self.match_score,
            "verdict": self.verdict,
            "notes": self.notes,
        }
