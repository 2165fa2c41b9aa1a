"""Final grade computation and remarks classification."""
from __future__ import annotations

from typing import Optional

PRELIM_WEIGHT = 0.3
MIDTERM_WEIGHT = 0.3
FINALS_WEIGHT = 0.4

# Applied to the weighted score as stored; the grading scale behind it is unconfirmed.
PASSING_THRESHOLD = 3.0


def compute_final_grade(
    prelim: Optional[float], midterm: Optional[float], finals: Optional[float]
) -> Optional[float]:
    """Weighted 30/30/40 final grade, or ``None`` until all three scores exist."""
    if prelim is None or midterm is None or finals is None:
        return None
    return prelim * PRELIM_WEIGHT + midterm * MIDTERM_WEIGHT + finals * FINALS_WEIGHT


def classify_remarks(
    final_grade: Optional[float],
    prelim: Optional[float] = None,
    midterm: Optional[float] = None,
    finals: Optional[float] = None,
) -> str:
    if final_grade is not None:
        return "Passed" if final_grade <= PASSING_THRESHOLD else "Failed"
    if any(score is not None and score > 0 for score in (prelim, midterm, finals)):
        return "INC"
    return "Pending"


def evaluate(
    prelim: Optional[float], midterm: Optional[float], finals: Optional[float]
) -> tuple[Optional[float], str]:
    final_grade = compute_final_grade(prelim, midterm, finals)
    return final_grade, classify_remarks(final_grade, prelim, midterm, finals)
