from datetime import datetime, timedelta

import pytest

from sikp.errors import ValidationError
from sikp.utils import grading


def test_examiner_composite():
    assert grading.examiner_score(90, 80, 70) == 80.0


def test_supervisor_composite():
    assert grading.supervisor_score(80, 90, 70) == 81.0


def test_institution_composite_all_hundred():
    assert grading.institution_score(100, 100, 100, 100, 100, 100) == 100.0


def test_final_score_blend_and_missing_part():
    assert grading.final_score(80.0, 80.0, 100.0) == 88.0
    assert grading.final_score(80.0, None, 100.0) is None


@pytest.mark.parametrize("score,letter", [
    (85, "A"), (84.99, "A-"), (80, "A-"), (75, "B+"), (70, "B"), (65, "B-"),
    (60, "C+"), (55, "C"), (50, "D"), (49.99, "E"), (None, "-"),
])
def test_letter_bands(score, letter):
    assert grading.letter_grade(score) == letter


@pytest.mark.parametrize("bad", [-1, 100.5, None, "abc", float("nan"), True])
def test_out_of_range_scores_are_rejected(bad):
    with pytest.raises(ValidationError):
        grading.examiner_score(bad, 80, 70)


def test_can_input_grade_only_after_start():
    start = datetime(2025, 6, 20, 9, 0)
    assert not grading.can_input_grade(start, start - timedelta(minutes=1))
    assert grading.can_input_grade(start, start + timedelta(minutes=1))
    assert not grading.can_input_grade(None, start)


def test_can_validate_grade_reports_first_missing_piece():
    assert grading.can_validate_grade(None, 80, 80, [])["message"].startswith("examiner")
    assert grading.can_validate_grade(80, None, 80, [])["message"].startswith("supervisor")
    result = grading.can_validate_grade(80, 80, 80, ["Divalidasi", "Terkirim", "Ditolak"])
    assert not result["valid"]
    assert result["message"] == "2 seminar documents have not been validated"
    assert grading.can_validate_grade(80, 80, 80, ["Divalidasi"])["valid"]
