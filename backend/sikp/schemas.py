"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable. Score fields are plain floats so
range checks (0..100) happen in the grading rules and surface as 400.
"""

from datetime import date, time
from typing import Optional

from pydantic import BaseModel

from .models import ScheduleStatus


class ScheduleCreateIn(BaseModel):
    """Payload for booking a seminar."""
    registration_id: str
    nim: str
    examiner_nip: str
    room_name: str
    seminar_date: date
    start_time: time
    end_time: Optional[time] = None


class ScheduleUpdateIn(BaseModel):
    """Partial update of a seminar booking; omitted fields keep their value."""
    seminar_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    room_name: Optional[str] = None
    examiner_nip: Optional[str] = None
    status: Optional[ScheduleStatus] = None


class RoomIn(BaseModel):
    name: str


class DocumentIn(BaseModel):
    """Submission of a seminar document link."""
    registration_id: str
    link: str


class DocumentReviewIn(BaseModel):
    comment: Optional[str] = None


class GuidanceIn(BaseModel):
    registration_id: str
    note: str


class DailyReportIn(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class DailyReportDetailIn(BaseModel):
    title: str
    description: str = ""


class DailyReportEvaluationIn(BaseModel):
    status: str
    note: Optional[str] = None


class ExaminerGradeIn(BaseModel):
    schedule_id: str
    domain_mastery: float
    presentation_skill: float
    relevance: float
    note: Optional[str] = None


class SupervisorGradeIn(BaseModel):
    registration_id: str
    problem_solving: float
    attitude: float
    report_quality: float
    note: Optional[str] = None


class InstitutionGradeIn(BaseModel):
    """Host-institution grade with its six weighted components."""
    nim: str
    deliverables: float
    punctuality: float
    discipline: float
    attitude: float
    teamwork: float
    initiative: float
    feedback: Optional[str] = None
