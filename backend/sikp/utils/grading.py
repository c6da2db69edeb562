"""Weighted grade aggregation for the three seminar raters."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, Optional

from ..errors import ValidationError

EXAMINER_WEIGHTS = (
    ("domain_mastery", 0.4),
    ("presentation_skill", 0.2),
    ("relevance", 0.4),
)

SUPERVISOR_WEIGHTS = (
    ("problem_solving", 0.4),
    ("attitude", 0.35),
    ("report_quality", 0.25),
)

INSTITUTION_WEIGHTS = (
    ("deliverables", 0.15),
    ("punctuality", 0.10),
    ("discipline", 0.15),
    ("attitude", 0.15),
    ("teamwork", 0.25),
    ("initiative", 0.20),
)

FINAL_WEIGHTS = (
    ("examiner", 0.2),
    ("supervisor", 0.4),
    ("institution", 0.4),
)

LETTER_BANDS = (
    (85, "A"),
    (80, "A-"),
    (75, "B+"),
    (70, "B"),
    (65, "B-"),
    (60, "C+"),
    (55, "C"),
    (50, "D"),
)
NOT_GRADED = "-"


def validate_score(value, field_name: str) -> float:
    """Return `value` as a float, rejecting anything outside 0..100."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if math.isnan(score) or score < 0 or score > 100:
        raise ValidationError(f"{field_name} must be between 0 and 100")
    return score


def _weighted(weights, scores: dict) -> float:
    total = sum(validate_score(scores.get(name), name) * w for name, w in weights)
    return round(total, 2)


def examiner_score(domain_mastery, presentation_skill, relevance) -> float:
    return _weighted(EXAMINER_WEIGHTS, {
        "domain_mastery": domain_mastery,
        "presentation_skill": presentation_skill,
        "relevance": relevance,
    })


def supervisor_score(problem_solving, attitude, report_quality) -> float:
    return _weighted(SUPERVISOR_WEIGHTS, {
        "problem_solving": problem_solving,
        "attitude": attitude,
        "report_quality": report_quality,
    })


def institution_score(deliverables, punctuality, discipline, attitude, teamwork, initiative) -> float:
    return _weighted(INSTITUTION_WEIGHTS, {
        "deliverables": deliverables,
        "punctuality": punctuality,
        "discipline": discipline,
        "attitude": attitude,
        "teamwork": teamwork,
        "initiative": initiative,
    })


def final_score(examiner: Optional[float], supervisor: Optional[float], institution: Optional[float]) -> Optional[float]:
    """Blend the three composites; None while any of them is missing."""
    if examiner is None or supervisor is None or institution is None:
        return None
    parts = {"examiner": examiner, "supervisor": supervisor, "institution": institution}
    return round(sum(parts[name] * w for name, w in FINAL_WEIGHTS), 2)


def letter_grade(score: Optional[float]) -> str:
    if score is None:
        return NOT_GRADED
    for lower, letter in LETTER_BANDS:
        if score >= lower:
            return letter
    return "E"


def can_input_grade(seminar_start: Optional[datetime], now: datetime) -> bool:
    """Examiner grades may only be entered once the seminar has started."""
    if seminar_start is None:
        return False
    return now > seminar_start


def can_validate_grade(
    examiner: Optional[float],
    supervisor: Optional[float],
    institution: Optional[float],
    document_statuses: Iterable[str],
) -> dict:
    """Report whether a grade set is ready for approval, and why not."""
    if examiner is None:
        return {"valid": False, "message": "examiner score has not been entered"}
    if supervisor is None:
        return {"valid": False, "message": "supervisor score has not been entered"}
    if institution is None:
        return {"valid": False, "message": "institution score has not been entered"}
    pending = [s for s in document_statuses if getattr(s, "value", s) != "Divalidasi"]
    if pending:
        return {"valid": False, "message": f"{len(pending)} seminar documents have not been validated"}
    return {"valid": True, "message": "all validation requirements are met"}


def format_grade_status(status) -> str:
    value = getattr(status, "value", status)
    if value in ("Nilai Belum Valid", "Nilai Valid", "Nilai Approve"):
        return value
    return "Unknown"
