"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table; cross-table lookups are performed by the
repositories with explicit keyed queries.
"""

import uuid
from enum import Enum
from typing import List, Optional
from datetime import date

from pydantic import NaiveDatetime
from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship

from .utils.dates import now_local


def _uuid() -> str:
    return uuid.uuid4().hex


class RegistrationStatus(str, Enum):
    BARU = "Baru"
    LANJUT = "Lanjut"
    GAGAL = "Gagal"
    SELESAI = "Selesai"


class ScheduleStatus(str, Enum):
    MENUNGGU = "Menunggu"
    SELESAI = "Selesai"


class LogType(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


class DocumentStatus(str, Enum):
    TERKIRIM = "Terkirim"
    DIVALIDASI = "Divalidasi"
    DITOLAK = "Ditolak"


class DailyReportStatus(str, Enum):
    MENUNGGU = "Menunggu"
    DISETUJUI = "Disetujui"
    REVISI = "Revisi"


class GradeStatus(str, Enum):
    NILAI_BELUM_VALID = "Nilai Belum Valid"
    NILAI_VALID = "Nilai Valid"
    NILAI_APPROVE = "Nilai Approve"


class Student(SQLModel, table=True):
    """A student (mahasiswa), keyed by NIM."""
    nim: str = Field(primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)


class Lecturer(SQLModel, table=True):
    """A lecturer (dosen), keyed by NIP. Acts as supervisor or examiner."""
    nip: str = Field(primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)


class Institution(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class InstitutionSupervisor(SQLModel, table=True):
    """Host-institution supervisor (pembimbing instansi), keyed by email."""
    email: str = Field(primary_key=True)
    name: str
    institution_id: Optional[int] = Field(default=None, foreign_key="institution.id")


class AcademicYear(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str


class Room(SQLModel, table=True):
    """A seminar room; the name is globally unique."""
    name: str = Field(primary_key=True)


class Registration(SQLModel, table=True):
    """A student's internship registration (pendaftaran KP).

    `access_level` gates later workflow stages (>= 5 unlocks guidance,
    daily reports and seminar documents). `examiner_nip` is assigned when
    the seminar is scheduled.
    """
    id: str = Field(default_factory=_uuid, primary_key=True)
    nim: str = Field(foreign_key="student.nim", index=True)
    institution_id: Optional[int] = Field(default=None, foreign_key="institution.id")
    supervisor_nip: Optional[str] = Field(default=None, foreign_key="lecturer.nip", index=True)
    institution_supervisor_email: Optional[str] = Field(default=None, foreign_key="institutionsupervisor.email")
    examiner_nip: Optional[str] = Field(default=None, foreign_key="lecturer.nip", index=True)
    academic_year_id: Optional[int] = Field(default=None, foreign_key="academicyear.id", index=True)
    access_level: int = 0
    status: RegistrationStatus = RegistrationStatus.BARU
    created_at: NaiveDatetime = Field(default_factory=now_local, sa_type=DateTime)


class Schedule(SQLModel, table=True):
    """A seminar booking (jadwal): one student, one room, one window."""
    id: str = Field(default_factory=_uuid, primary_key=True)
    seminar_date: date = Field(index=True)
    start_time: NaiveDatetime = Field(sa_type=DateTime)
    end_time: NaiveDatetime = Field(sa_type=DateTime)
    status: ScheduleStatus = ScheduleStatus.MENUNGGU
    nim: str = Field(foreign_key="student.nim", index=True)
    room_name: str = Field(foreign_key="room.name", index=True)
    registration_id: str = Field(foreign_key="registration.id", index=True)


class ScheduleLog(SQLModel, table=True):
    """Append-only record of schedule creation and changes."""
    id: Optional[int] = Field(default=None, primary_key=True)
    log_type: LogType
    old_date: Optional[date] = None
    new_date: Optional[date] = None
    old_room: Optional[str] = None
    new_room: Optional[str] = None
    old_examiner_nip: Optional[str] = None
    new_examiner_nip: Optional[str] = None
    note: str = ""
    schedule_id: str = Field(foreign_key="schedule.id", index=True)
    created_at: NaiveDatetime = Field(default_factory=now_local, sa_type=DateTime)


class SeminarDocument(SQLModel, table=True):
    """A submitted seminar document; at most one row per kind per registration."""
    __table_args__ = (UniqueConstraint("registration_id", "kind", name="uq_seminardocument_registration_kind"),)

    id: str = Field(default_factory=_uuid, primary_key=True)
    kind: str = Field(index=True)
    link: str
    status: DocumentStatus = DocumentStatus.TERKIRIM
    uploaded_at: NaiveDatetime = Field(default_factory=now_local, sa_type=DateTime)
    comment: Optional[str] = None
    nim: str = Field(foreign_key="student.nim", index=True)
    registration_id: str = Field(foreign_key="registration.id", index=True)


class GuidanceSession(SQLModel, table=True):
    """A logged guidance session (bimbingan) with the academic supervisor."""
    id: str = Field(default_factory=_uuid, primary_key=True)
    nim: str = Field(foreign_key="student.nim", index=True)
    nip: str = Field(foreign_key="lecturer.nip")
    registration_id: str = Field(foreign_key="registration.id")
    note: str
    held_at: NaiveDatetime = Field(default_factory=now_local, sa_type=DateTime)


class DailyReport(SQLModel, table=True):
    """One day of attendance at the host institution."""
    id: str = Field(default_factory=_uuid, primary_key=True)
    nim: str = Field(foreign_key="student.nim", index=True)
    report_date: date = Field(index=True)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: DailyReportStatus = DailyReportStatus.MENUNGGU
    evaluation_note: Optional[str] = None
    details: List["DailyReportDetail"] = Relationship(
        back_populates="daily_report",
        sa_relationship_kwargs={"order_by": "DailyReportDetail.id"},
    )


class DailyReportDetail(SQLModel, table=True):
    """An agenda item recorded inside a `DailyReport`."""
    id: Optional[int] = Field(default=None, primary_key=True)
    daily_report_id: str = Field(foreign_key="dailyreport.id", index=True)
    title: str
    description: str
    created_at: NaiveDatetime = Field(default_factory=now_local, sa_type=DateTime)
    daily_report: Optional[DailyReport] = Relationship(back_populates="details")


class Grade(SQLModel, table=True):
    """Composite scores from the three raters plus the blended final score.

    `final_score` is null until all three composites are present.
    """
    id: str = Field(default_factory=_uuid, primary_key=True)
    nim: str = Field(foreign_key="student.nim", index=True)
    registration_id: str = Field(foreign_key="registration.id", index=True, unique=True)
    schedule_id: Optional[str] = Field(default=None, foreign_key="schedule.id", index=True)
    examiner_score: Optional[float] = None
    supervisor_score: Optional[float] = None
    institution_score: Optional[float] = None
    final_score: Optional[float] = None
    status: GradeStatus = GradeStatus.NILAI_BELUM_VALID
    created_at: NaiveDatetime = Field(default_factory=now_local, sa_type=DateTime)


class ExaminerGradeComponent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    grade_id: str = Field(foreign_key="grade.id", index=True, unique=True)
    nip: str = Field(foreign_key="lecturer.nip")
    domain_mastery: float
    presentation_skill: float
    relevance: float
    note: Optional[str] = None
    created_at: NaiveDatetime = Field(default_factory=now_local, sa_type=DateTime)


class SupervisorGradeComponent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    grade_id: str = Field(foreign_key="grade.id", index=True, unique=True)
    nip: str = Field(foreign_key="lecturer.nip")
    problem_solving: float
    attitude: float
    report_quality: float
    note: Optional[str] = None
    created_at: NaiveDatetime = Field(default_factory=now_local, sa_type=DateTime)


class InstitutionGradeComponent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    grade_id: str = Field(foreign_key="grade.id", index=True, unique=True)
    supervisor_email: str = Field(foreign_key="institutionsupervisor.email")
    deliverables: float
    punctuality: float
    discipline: float
    attitude: float
    teamwork: float
    initiative: float
    feedback: Optional[str] = None
    created_at: NaiveDatetime = Field(default_factory=now_local, sa_type=DateTime)
