"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (students,
lecturers, rooms, registrations, schedules, documents, guidance
sessions, daily reports, grades). Repositories return SQLModel objects.
`create`/`delete` helpers commit immediately; `add` helpers only flush
so services can group several writes into one transaction.
"""

from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, or_
from sqlmodel import Session, select

from . import models


class _Repository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, obj):
        """Stage `obj` in the current transaction without committing."""
        self.session.add(obj)
        self.session.flush()
        return obj

    def create(self, obj):
        """Persist `obj` and return the managed instance."""
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj


class StudentRepository(_Repository):
    """Lookups for `Student` records."""

    def get(self, nim: str) -> Optional[models.Student]:
        return self.session.get(models.Student, nim)

    def get_by_email(self, email: str) -> Optional[models.Student]:
        stmt = select(models.Student).where(models.Student.email == email)
        return self.session.exec(stmt).first()

    def lock(self, nim: str) -> Optional[models.Student]:
        stmt = select(models.Student).where(models.Student.nim == nim).with_for_update()
        return self.session.exec(stmt).first()


class LecturerRepository(_Repository):
    """Lookups for `Lecturer` records."""

    def get(self, nip: str) -> Optional[models.Lecturer]:
        return self.session.get(models.Lecturer, nip)

    def get_by_email(self, email: str) -> Optional[models.Lecturer]:
        stmt = select(models.Lecturer).where(models.Lecturer.email == email)
        return self.session.exec(stmt).first()

    def lock_many(self, nips: Iterable[str]) -> List[models.Lecturer]:
        """Lock lecturer rows in NIP order so concurrent bookings cannot deadlock."""
        nips = sorted({n for n in nips if n})
        if not nips:
            return []
        stmt = (
            select(models.Lecturer)
            .where(models.Lecturer.nip.in_(nips))
            .order_by(models.Lecturer.nip)
            .with_for_update()
        )
        return self.session.exec(stmt).all()

    def list_all(self) -> List[models.Lecturer]:
        stmt = select(models.Lecturer).order_by(models.Lecturer.name)
        return self.session.exec(stmt).all()

    def names_by_nip(self, nips: Iterable[str]) -> dict:
        """Return a `{nip: name}` map for the given NIPs."""
        nips = [n for n in set(nips) if n]
        if not nips:
            return {}
        stmt = select(models.Lecturer).where(models.Lecturer.nip.in_(nips))
        return {d.nip: d.name for d in self.session.exec(stmt).all()}


class InstitutionRepository(_Repository):
    def get(self, institution_id: int) -> Optional[models.Institution]:
        return self.session.get(models.Institution, institution_id)

    def get_supervisor(self, email: str) -> Optional[models.InstitutionSupervisor]:
        return self.session.get(models.InstitutionSupervisor, email)


class AcademicYearRepository(_Repository):
    def get(self, year_id: int) -> Optional[models.AcademicYear]:
        return self.session.get(models.AcademicYear, year_id)

    def latest(self) -> Optional[models.AcademicYear]:
        stmt = select(models.AcademicYear).order_by(models.AcademicYear.id.desc())
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.AcademicYear]:
        stmt = select(models.AcademicYear).order_by(models.AcademicYear.id)
        return self.session.exec(stmt).all()


class RoomRepository(_Repository):
    """CRUD operations for seminar `Room` records."""

    def get(self, name: str) -> Optional[models.Room]:
        return self.session.get(models.Room, name)

    def lock(self, name: str) -> Optional[models.Room]:
        """Fetch a room row with `SELECT ... FOR UPDATE` where supported.

        Concurrent bookings for the same room serialize on this lock until
        the surrounding transaction ends.
        """
        stmt = select(models.Room).where(models.Room.name == name).with_for_update()
        return self.session.exec(stmt).first()

    def list_all(self) -> List[models.Room]:
        stmt = select(models.Room).order_by(models.Room.name)
        return self.session.exec(stmt).all()

    def delete(self, room: models.Room) -> None:
        self.session.delete(room)
        self.session.commit()


class RegistrationRepository(_Repository):
    """Queries over internship `Registration` records."""

    def get(self, registration_id: str) -> Optional[models.Registration]:
        return self.session.get(models.Registration, registration_id)

    def lock(self, registration_id: str) -> Optional[models.Registration]:
        stmt = select(models.Registration).where(models.Registration.id == registration_id).with_for_update()
        return self.session.exec(stmt).first()

    def latest_for_student(self, nim: str) -> Optional[models.Registration]:
        """Return the student's most recent registration, if any."""
        stmt = (
            select(models.Registration)
            .where(models.Registration.nim == nim)
            .order_by(models.Registration.created_at.desc())
        )
        return self.session.exec(stmt).first()

    def list_for_supervisor(self, nip: str) -> List[models.Registration]:
        stmt = select(models.Registration).where(models.Registration.supervisor_nip == nip)
        return self.session.exec(stmt).all()

    def list_for_institution_supervisor(self, email: str) -> List[models.Registration]:
        stmt = select(models.Registration).where(models.Registration.institution_supervisor_email == email)
        return self.session.exec(stmt).all()

    def list_for_year(self, academic_year_id: int) -> List[models.Registration]:
        stmt = select(models.Registration).where(models.Registration.academic_year_id == academic_year_id)
        return self.session.exec(stmt).all()


class ScheduleRepository(_Repository):
    """Seminar `Schedule` queries, status sweep and change log."""

    def get(self, schedule_id: str) -> Optional[models.Schedule]:
        return self.session.get(models.Schedule, schedule_id)

    def get_for_registration(self, registration_id: str) -> Optional[models.Schedule]:
        stmt = select(models.Schedule).where(models.Schedule.registration_id == registration_id)
        return self.session.exec(stmt).first()

    def list_for_student_on(self, nim: str, day: date) -> List[models.Schedule]:
        stmt = select(models.Schedule).where(
            models.Schedule.nim == nim,
            models.Schedule.seminar_date == day,
        )
        return self.session.exec(stmt).all()

    def list_for_lecturer_on(self, nip: str, day: date) -> List[models.Schedule]:
        """Bookings on `day` where the lecturer examines or supervises."""
        stmt = (
            select(models.Schedule)
            .join(models.Registration, models.Registration.id == models.Schedule.registration_id)
            .where(
                models.Schedule.seminar_date == day,
                or_(models.Registration.examiner_nip == nip, models.Registration.supervisor_nip == nip),
            )
        )
        return self.session.exec(stmt).all()

    def list_for_room_on(self, room_name: str, day: date) -> List[models.Schedule]:
        stmt = select(models.Schedule).where(
            models.Schedule.room_name == room_name,
            models.Schedule.seminar_date == day,
        )
        return self.session.exec(stmt).all()

    def list_for_year(
        self,
        academic_year_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[models.Schedule]:
        """Schedules of registrations in the academic year, optionally by date range."""
        stmt = (
            select(models.Schedule)
            .join(models.Registration, models.Registration.id == models.Schedule.registration_id)
            .where(models.Registration.academic_year_id == academic_year_id)
        )
        if date_from is not None:
            stmt = stmt.where(models.Schedule.seminar_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(models.Schedule.seminar_date <= date_to)
        stmt = stmt.order_by(models.Schedule.seminar_date, models.Schedule.start_time)
        return self.session.exec(stmt).all()

    def list_for_examiner(
        self,
        nip: str,
        academic_year_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[models.Schedule]:
        stmt = (
            select(models.Schedule)
            .join(models.Registration, models.Registration.id == models.Schedule.registration_id)
            .where(
                models.Registration.academic_year_id == academic_year_id,
                models.Registration.examiner_nip == nip,
            )
        )
        if date_from is not None:
            stmt = stmt.where(models.Schedule.seminar_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(models.Schedule.seminar_date <= date_to)
        stmt = stmt.order_by(models.Schedule.seminar_date, models.Schedule.start_time)
        return self.session.exec(stmt).all()

    def list_for_student(self, nim: str) -> List[models.Schedule]:
        stmt = select(models.Schedule).where(models.Schedule.nim == nim).order_by(models.Schedule.start_time)
        return self.session.exec(stmt).all()

    def exists_for_room(self, room_name: str) -> bool:
        stmt = select(models.Schedule.id).where(models.Schedule.room_name == room_name)
        return self.session.exec(stmt).first() is not None

    def mark_finished(self, now: datetime) -> int:
        """Flip every waiting schedule whose end time has passed to finished."""
        stmt = select(models.Schedule).where(
            models.Schedule.status == models.ScheduleStatus.MENUNGGU,
            models.Schedule.end_time <= now,
        )
        rows = self.session.exec(stmt).all()
        for s in rows:
            s.status = models.ScheduleStatus.SELESAI
            self.session.add(s)
        if rows:
            self.session.commit()
        return len(rows)

    def list_logs(self, schedule_ids: Optional[Iterable[str]] = None) -> List[models.ScheduleLog]:
        stmt = select(models.ScheduleLog)
        if schedule_ids is not None:
            ids = list(schedule_ids)
            if not ids:
                return []
            stmt = stmt.where(models.ScheduleLog.schedule_id.in_(ids))
        stmt = stmt.order_by(models.ScheduleLog.created_at.desc(), models.ScheduleLog.id.desc())
        return self.session.exec(stmt).all()

    def count_updates(self, schedule_ids: Iterable[str]) -> int:
        """Number of UPDATE log entries across the given schedules."""
        ids = list(schedule_ids)
        if not ids:
            return 0
        stmt = select(func.count(models.ScheduleLog.id)).where(
            models.ScheduleLog.schedule_id.in_(ids),
            models.ScheduleLog.log_type == models.LogType.UPDATE,
        )
        return self.session.exec(stmt).one()


class DocumentRepository(_Repository):
    """Queries over `SeminarDocument` rows."""

    def get(self, document_id: str) -> Optional[models.SeminarDocument]:
        return self.session.get(models.SeminarDocument, document_id)

    def get_by_kind(self, registration_id: str, kind: str) -> Optional[models.SeminarDocument]:
        stmt = select(models.SeminarDocument).where(
            models.SeminarDocument.registration_id == registration_id,
            models.SeminarDocument.kind == kind,
        )
        return self.session.exec(stmt).first()

    def list_for_registration(self, registration_id: str) -> List[models.SeminarDocument]:
        stmt = (
            select(models.SeminarDocument)
            .where(models.SeminarDocument.registration_id == registration_id)
            .order_by(models.SeminarDocument.uploaded_at)
        )
        return self.session.exec(stmt).all()

    def list_for_registrations(self, registration_ids: Iterable[str]) -> List[models.SeminarDocument]:
        ids = list(registration_ids)
        if not ids:
            return []
        stmt = select(models.SeminarDocument).where(models.SeminarDocument.registration_id.in_(ids))
        return self.session.exec(stmt).all()

    def list_for_student(self, nim: str) -> List[models.SeminarDocument]:
        stmt = (
            select(models.SeminarDocument)
            .where(models.SeminarDocument.nim == nim)
            .order_by(models.SeminarDocument.uploaded_at)
        )
        return self.session.exec(stmt).all()

    def update(self, document: models.SeminarDocument, **changes) -> models.SeminarDocument:
        for key, value in changes.items():
            setattr(document, key, value)
        return self.create(document)


class GuidanceRepository(_Repository):
    """Guidance session (bimbingan) records."""

    def count_for_student(self, nim: str) -> int:
        stmt = select(func.count(models.GuidanceSession.id)).where(models.GuidanceSession.nim == nim)
        return self.session.exec(stmt).one()

    def list_for_student(self, nim: str) -> List[models.GuidanceSession]:
        stmt = (
            select(models.GuidanceSession)
            .where(models.GuidanceSession.nim == nim)
            .order_by(models.GuidanceSession.held_at)
        )
        return self.session.exec(stmt).all()


class DailyReportRepository(_Repository):
    """Daily attendance reports and their agenda details."""

    def get(self, report_id: str) -> Optional[models.DailyReport]:
        return self.session.get(models.DailyReport, report_id)

    def get_for_date(self, nim: str, day: date) -> Optional[models.DailyReport]:
        stmt = select(models.DailyReport).where(
            models.DailyReport.nim == nim,
            models.DailyReport.report_date == day,
        )
        return self.session.exec(stmt).first()

    def list_for_student(self, nim: str) -> List[models.DailyReport]:
        stmt = (
            select(models.DailyReport)
            .where(models.DailyReport.nim == nim)
            .order_by(models.DailyReport.report_date)
        )
        return self.session.exec(stmt).all()

    def count_for_student(self, nim: str) -> int:
        stmt = select(func.count(models.DailyReport.id)).where(models.DailyReport.nim == nim)
        return self.session.exec(stmt).one()

    def get_detail(self, detail_id: int) -> Optional[models.DailyReportDetail]:
        return self.session.get(models.DailyReportDetail, detail_id)


class GradeRepository(_Repository):
    """`Grade` aggregates and their per-rater components."""

    def get(self, grade_id: str) -> Optional[models.Grade]:
        return self.session.get(models.Grade, grade_id)

    def get_for_registration(self, registration_id: str) -> Optional[models.Grade]:
        stmt = select(models.Grade).where(models.Grade.registration_id == registration_id)
        return self.session.exec(stmt).first()

    def list_for_students(self, nims: Iterable[str]) -> List[models.Grade]:
        nims = list(nims)
        if not nims:
            return []
        stmt = select(models.Grade).where(models.Grade.nim.in_(nims))
        return self.session.exec(stmt).all()

    def list_for_student(self, nim: str) -> List[models.Grade]:
        return self.list_for_students([nim])

    def list_all(self) -> List[models.Grade]:
        stmt = select(models.Grade).order_by(models.Grade.created_at.desc())
        return self.session.exec(stmt).all()

    def get_examiner_component(self, grade_id: str) -> Optional[models.ExaminerGradeComponent]:
        stmt = select(models.ExaminerGradeComponent).where(models.ExaminerGradeComponent.grade_id == grade_id)
        return self.session.exec(stmt).first()

    def get_supervisor_component(self, grade_id: str) -> Optional[models.SupervisorGradeComponent]:
        stmt = select(models.SupervisorGradeComponent).where(models.SupervisorGradeComponent.grade_id == grade_id)
        return self.session.exec(stmt).first()

    def get_institution_component(self, grade_id: str) -> Optional[models.InstitutionGradeComponent]:
        stmt = select(models.InstitutionGradeComponent).where(models.InstitutionGradeComponent.grade_id == grade_id)
        return self.session.exec(stmt).first()
