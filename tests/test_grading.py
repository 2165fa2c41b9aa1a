import itertools

import pytest

from records.services.grading import classify_remarks, compute_final_grade, evaluate

SCORES = [None, 0, 55.5, 75, 100]


@pytest.mark.parametrize("prelim,midterm,finals", list(itertools.product(SCORES, repeat=3)))
def test_final_grade_is_weighted_sum_or_none(prelim, midterm, finals):
    final_grade = compute_final_grade(prelim, midterm, finals)
    if None in (prelim, midterm, finals):
        assert final_grade is None
    else:
        assert final_grade == pytest.approx(0.3 * prelim + 0.3 * midterm + 0.4 * finals, abs=1e-9)


def test_passing_threshold_is_inclusive():
    assert classify_remarks(3.0) == "Passed"
    assert classify_remarks(3.0001) == "Failed"
    assert classify_remarks(1.25) == "Passed"


def test_partial_scores_are_incomplete():
    assert classify_remarks(None, 80, None, None) == "INC"
    assert classify_remarks(None, None, None, 0.5) == "INC"


def test_missing_or_zero_scores_stay_pending():
    assert classify_remarks(None) == "Pending"
    assert classify_remarks(None, 0, 0, None) == "Pending"


def test_zero_scores_count_as_present():
    assert compute_final_grade(0, 0, 0) == 0
    assert evaluate(0, 0, 0) == (0, "Passed")


def test_encoder_scores_produce_high_weighted_grade():
    final_grade, remarks = evaluate(80, 85, 90)
    assert final_grade == pytest.approx(85.5)
    assert remarks == "Failed"
