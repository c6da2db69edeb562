"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and the rule helpers in `sikp.utils`. Services perform validation,
apply the internship workflow rules and persist aggregates via
repositories. Failures are raised as `sikp.errors.ServiceError`
subclasses; the HTTP layer turns them into status codes.
"""

import logging
import threading
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories
from .errors import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from .utils import conflicts as conflict_rules
from .utils import document_steps as steps
from .utils import grading
from .utils.dates import combine, now_local, today_local, week_range
from .utils.murojaah import check_murojaah

logger = logging.getLogger("sikp.services")

MIN_ACCESS_LEVEL = 5
MIN_GUIDANCE_SESSIONS = 5
# daily reports must be strictly more than this
MIN_DAILY_REPORTS = 22
ACTIVE_REGISTRATION_STATUSES = (models.RegistrationStatus.BARU, models.RegistrationStatus.LANJUT)
DEFAULT_SEMINAR_DURATION = timedelta(hours=1)
# steps whose documents must be validated before a seminar can be booked
SCHEDULING_STEPS = (1, 2, 3)

# serializes "check conflicts + insert" inside this process; the room row
# lock covers concurrent writers on databases that support FOR UPDATE
_BOOKING_LOCK = threading.Lock()


def _dump(obj) -> Optional[dict]:
    return obj.model_dump() if obj is not None else None


def _resolve_academic_year(session: Session, academic_year_id: Optional[int]) -> models.AcademicYear:
    """Return the requested academic year, or the latest one when id is empty."""
    repo = repositories.AcademicYearRepository(session)
    year = repo.get(academic_year_id) if academic_year_id and academic_year_id > 0 else repo.latest()
    if not year:
        raise NotFoundError("academic year not found")
    return year


class StudentService:
    """Student lookups, access level and seminar eligibility."""
    def __init__(self, session: Session):
        self.session = session
        self.students = repositories.StudentRepository(session)
        self.registrations = repositories.RegistrationRepository(session)
        self.guidance = repositories.GuidanceRepository(session)
        self.daily_reports = repositories.DailyReportRepository(session)
        self.grades = repositories.GradeRepository(session)
        self.documents = repositories.DocumentRepository(session)

    def get_by_email(self, email: str) -> models.Student:
        student = self.students.get_by_email(email)
        if not student:
            raise NotFoundError("student not found")
        return student

    def get_by_nim(self, nim: str) -> models.Student:
        student = self.students.get(nim)
        if not student:
            raise NotFoundError(f"student {nim} not found")
        return student

    def get_registration(self, nim: str) -> models.Registration:
        registration = self.registrations.latest_for_student(nim)
        if not registration:
            raise NotFoundError("internship registration not found")
        return registration

    def check_access_level(self, email: str) -> dict:
        """Report whether the student's registration unlocks later stages."""
        student = self.get_by_email(email)
        registration = self.get_registration(student.nim)
        has_access = registration.access_level >= MIN_ACCESS_LEVEL
        return {
            'id': registration.id,
            'nim': student.nim,
            'access_level': registration.access_level,
            'has_access': has_access,
        }

    def check_seminar_requirements(self, nim: str) -> dict:
        """Evaluate the five-part eligibility gate for seminar documents.

        All of the following must hold at once: the murojaah prerequisite
        is done, the registration is still active (Baru/Lanjut), at least
        five guidance sessions were logged, more than 22 daily reports exist
        and all of them are approved, and the institution grade is present.
        """
        registration = self.registrations.latest_for_student(nim)
        active = registration is not None and registration.status in ACTIVE_REGISTRATION_STATUSES
        enough_guidance = self.guidance.count_for_student(nim) >= MIN_GUIDANCE_SESSIONS

        reports = self.daily_reports.list_for_student(nim)
        approved = [r for r in reports if r.status == models.DailyReportStatus.DISETUJUI]
        reports_approved = len(approved) > MIN_DAILY_REPORTS and len(approved) == len(reports)

        grade = self.grades.get_for_registration(registration.id) if registration else None
        has_institution_grade = grade is not None and grade.institution_score is not None

        murojaah_done = check_murojaah(nim)
        all_met = bool(murojaah_done and active and enough_guidance and reports_approved and has_institution_grade)
        return {
            'murojaah_done': murojaah_done,
            'registration_active': active,
            'minimum_guidance_sessions': enough_guidance,
            'daily_reports_approved': reports_approved,
            'institution_grade_present': has_institution_grade,
            'all_requirements_met': all_met,
        }

    def check_document_readiness(self, registration_id: str) -> dict:
        """List the step 1-3 documents still missing or not validated."""
        docs = self.documents.list_for_registration(registration_id)
        by_kind = {d.kind: d for d in docs}
        missing = []
        for step in SCHEDULING_STEPS:
            for kind in steps.kinds_for_step(step):
                doc = by_kind.get(kind.value)
                if doc is None or doc.status != models.DocumentStatus.DIVALIDASI:
                    missing.append(kind.value)
        return {
            'can_schedule_seminar': not missing,
            'registration_id': registration_id,
            'missing_or_invalid_documents': missing,
        }


class ScheduleService:
    """Seminar scheduling, rooms and the schedule change log."""
    def __init__(self, session: Session):
        self.session = session
        self.schedules = repositories.ScheduleRepository(session)
        self.rooms = repositories.RoomRepository(session)
        self.registrations = repositories.RegistrationRepository(session)
        self.lecturers = repositories.LecturerRepository(session)
        self.students = repositories.StudentRepository(session)
        self.institutions = repositories.InstitutionRepository(session)
        self.grades = repositories.GradeRepository(session)
        self.years = repositories.AcademicYearRepository(session)

    def _validate_conflicts(
        self,
        nim: str,
        examiner_nip: Optional[str],
        supervisor_nip: Optional[str],
        room_name: str,
        day,
        start,
        end,
        exclude_id: Optional[str] = None,
    ) -> None:
        """Check student, examiner, supervisor and room for overlaps.

        Every check runs before deciding; the first failing one (in that
        order) is raised and the others are attached as details.
        """
        def check(rows):
            return conflict_rules.find_conflicts(rows, start, end, exclude_id)

        results = [
            ('student', check(self.schedules.list_for_student_on(nim, day))),
            ('examiner', check(self.schedules.list_for_lecturer_on(examiner_nip, day)) if examiner_nip else conflict_rules.NO_CONFLICT),
            ('supervisor', check(self.schedules.list_for_lecturer_on(supervisor_nip, day)) if supervisor_nip else conflict_rules.NO_CONFLICT),
            ('room', check(self.schedules.list_for_room_on(room_name, day))),
        ]
        failures = [(who, r) for who, r in results if r.has_conflict]
        if not failures:
            return
        details = [
            {'entity': who, 'conflicts': [c.id for c in r.conflicts], 'windows': r.describe()}
            for who, r in failures
        ]
        for d in details:
            logger.info("schedule_conflict entity=%s windows=%s", d['entity'], d['windows'])
        who, first = failures[0]
        if who == 'room':
            message = "room is not available at the selected time"
        else:
            message = f"{who} schedule conflicts with: {first.describe()}"
        raise ConflictError(message, details=details)

    def _lock_booking_rows(self, room_name: str, registration: models.Registration, lecturer_nips) -> None:
        """Lock the room, registration, student and lecturer rows in a fixed order."""
        if not self.rooms.lock(room_name):
            raise NotFoundError(f"room '{room_name}' not found")
        self.registrations.lock(registration.id)
        self.students.lock(registration.nim)
        self.lecturers.lock_many([nip for nip in lecturer_nips if nip])

    def create_schedule(
        self,
        registration_id: str,
        nim: str,
        examiner_nip: str,
        room_name: str,
        seminar_date,
        start_time,
        end_time=None,
    ) -> dict:
        """Book a seminar after eligibility, identity and conflict checks.

        The conflict checks, the booking insert, the examiner assignment
        and the CREATE log entry share one transaction; nothing is written
        when any check fails.
        """
        start = combine(seminar_date, start_time)
        end = combine(seminar_date, end_time) if end_time else start + DEFAULT_SEMINAR_DURATION
        if end <= start:
            raise ValidationError("end time must be after start time")

        registration = self.registrations.get(registration_id)
        if not registration:
            raise NotFoundError("internship registration not found")
        readiness = StudentService(self.session).check_document_readiness(registration.id)
        if not readiness['can_schedule_seminar']:
            raise AccessDeniedError(
                "seminar documents have not been validated: "
                + ", ".join(readiness['missing_or_invalid_documents'])
            )
        if registration.supervisor_nip and examiner_nip == registration.supervisor_nip:
            raise ValidationError("examiner must be different from the academic supervisor")
        if not self.lecturers.get(examiner_nip):
            raise NotFoundError(f"lecturer {examiner_nip} not found")
        student = self.students.get(nim)
        if not student:
            raise NotFoundError(f"student {nim} not found")
        if registration.nim != nim:
            raise ValidationError("student does not match the registration")
        if start < now_local():
            raise ValidationError("start time must not be in the past")

        with _BOOKING_LOCK:
            try:
                self._lock_booking_rows(room_name, registration, [examiner_nip, registration.supervisor_nip])
                if self.schedules.get_for_registration(registration.id):
                    raise ConflictError("registration already has a seminar schedule")
                self._validate_conflicts(
                    nim, examiner_nip, registration.supervisor_nip, room_name,
                    seminar_date, start, end,
                )
                schedule = self.schedules.add(models.Schedule(
                    seminar_date=seminar_date,
                    start_time=start,
                    end_time=end,
                    nim=nim,
                    room_name=room_name,
                    registration_id=registration.id,
                ))
                registration.examiner_nip = examiner_nip
                self.registrations.add(registration)
                self.schedules.add(models.ScheduleLog(
                    log_type=models.LogType.CREATE,
                    new_date=seminar_date,
                    new_room=room_name,
                    new_examiner_nip=examiner_nip,
                    note=f"New seminar schedule for {student.name}",
                    schedule_id=schedule.id,
                ))
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
        self.session.refresh(schedule)
        logger.info("schedule_created id=%s nim=%s room=%s start=%s", schedule.id, nim, room_name, start.isoformat())
        return _dump(schedule)

    def update_schedule(
        self,
        schedule_id: str,
        seminar_date=None,
        start_time=None,
        end_time=None,
        room_name: Optional[str] = None,
        examiner_nip: Optional[str] = None,
        status: Optional[models.ScheduleStatus] = None,
    ) -> dict:
        """Edit a booking; refused once examiner or supervisor grades exist."""
        schedule = self.schedules.get(schedule_id)
        if not schedule:
            raise NotFoundError("schedule not found")

        grade = self.grades.get_for_registration(schedule.registration_id)
        if grade:
            entered = []
            if grade.examiner_score is not None:
                entered.append("examiner score")
            if grade.supervisor_score is not None:
                entered.append("supervisor score")
            if entered:
                raise ValidationError(f"schedule cannot be changed because {', '.join(entered)} already entered")

        registration = self.registrations.get(schedule.registration_id)
        day = seminar_date or schedule.seminar_date
        start, end = schedule.start_time, schedule.end_time
        if seminar_date and seminar_date != schedule.seminar_date:
            start = combine(day, schedule.start_time.time())
            end = combine(day, schedule.end_time.time())
        if start_time:
            start = combine(day, start_time)
            if not end_time:
                end = start + DEFAULT_SEMINAR_DURATION
        if end_time:
            end = combine(day, end_time)
        if end <= start:
            raise ValidationError("end time must be after start time")
        if end < now_local():
            raise ValidationError("end time must not be in the past")

        new_room = room_name or schedule.room_name
        if examiner_nip:
            if not self.lecturers.get(examiner_nip):
                raise NotFoundError(f"lecturer {examiner_nip} not found")
            if registration.supervisor_nip and examiner_nip == registration.supervisor_nip:
                raise ValidationError("examiner must be different from the academic supervisor")
        old_examiner = registration.examiner_nip
        effective_examiner = examiner_nip or old_examiner

        with _BOOKING_LOCK:
            try:
                self._lock_booking_rows(
                    new_room, registration, [old_examiner, examiner_nip, registration.supervisor_nip],
                )
                self._validate_conflicts(
                    schedule.nim, effective_examiner, registration.supervisor_nip, new_room,
                    day, start, end, exclude_id=schedule.id,
                )
                old_date, old_room = schedule.seminar_date, schedule.room_name
                schedule.seminar_date = day
                schedule.start_time = start
                schedule.end_time = end
                schedule.room_name = new_room
                if status is not None:
                    schedule.status = status
                self.schedules.add(schedule)
                if examiner_nip:
                    registration.examiner_nip = examiner_nip
                    self.registrations.add(registration)

                student = self.students.get(schedule.nim)
                note = f"Schedule change for {student.name if student else 'unknown'}"
                if examiner_nip:
                    examiner = self.lecturers.get(examiner_nip)
                    note += f" with new examiner {examiner.name}"
                self.schedules.add(models.ScheduleLog(
                    log_type=models.LogType.UPDATE,
                    old_date=old_date,
                    new_date=day,
                    old_room=old_room,
                    new_room=new_room,
                    old_examiner_nip=old_examiner,
                    new_examiner_nip=examiner_nip,
                    note=note,
                    schedule_id=schedule.id,
                ))
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
        self.session.refresh(schedule)
        logger.info("schedule_updated id=%s room=%s start=%s", schedule.id, new_room, start.isoformat())
        return _dump(schedule)

    def refresh_statuses(self) -> int:
        """Mark waiting schedules whose end time has passed as finished."""
        count = self.schedules.mark_finished(now_local())
        if count:
            logger.info("schedule_status_sweep finished=%s", count)
        return count

    def _rows(self, schedules) -> list:
        """Flatten schedules with their participants for presentation."""
        out = []
        for s in schedules:
            registration = self.registrations.get(s.registration_id)
            student = self.students.get(s.nim)
            examiner = self.lecturers.get(registration.examiner_nip) if registration.examiner_nip else None
            supervisor = self.lecturers.get(registration.supervisor_nip) if registration.supervisor_nip else None
            institution = self.institutions.get(registration.institution_id) if registration.institution_id else None
            inst_supervisor = (
                self.institutions.get_supervisor(registration.institution_supervisor_email)
                if registration.institution_supervisor_email else None
            )
            out.append({
                'id': s.id,
                'student': {'nim': s.nim, 'name': student.name if student else "N/A"},
                'registration_status': registration.status.value,
                'room': s.room_name,
                'date': s.seminar_date,
                'start_time': s.start_time,
                'end_time': s.end_time,
                'examiner': examiner.name if examiner else "N/A",
                'supervisor': supervisor.name if supervisor else "N/A",
                'institution': institution.name if institution else "N/A",
                'institution_supervisor': inst_supervisor.name if inst_supervisor else "N/A",
                'status': s.status.value,
            })
        return out

    def _by_room(self, rows: list, rooms) -> dict:
        grouped = {r.name: [] for r in rooms}
        for row in rows:
            grouped.setdefault(row['room'], []).append(row)
        return grouped

    def get_all_schedules(self, academic_year_id: Optional[int] = None) -> dict:
        """All schedules of an academic year, plus today's and this week's."""
        self.refresh_statuses()
        year = _resolve_academic_year(self.session, academic_year_id)
        today = today_local()
        week_start, week_end = week_range(today)

        everything = self.schedules.list_for_year(year.id)
        rows_all = self._rows(everything)
        rows_today = self._rows(self.schedules.list_for_year(year.id, today, today))
        rows_week = self._rows(self.schedules.list_for_year(year.id, week_start, week_end))
        rooms = self.rooms.list_all()
        return {
            'total_seminars': len(rows_all),
            'total_seminars_this_week': len(rows_week),
            'total_reschedules': self.schedules.count_updates(s.id for s in everything),
            'schedules': {
                'all': rows_all,
                'today': rows_today,
                'this_week': rows_week,
                'by_room': {
                    'all': self._by_room(rows_all, rooms),
                    'today': self._by_room(rows_today, rooms),
                    'this_week': self._by_room(rows_week, rooms),
                },
            },
            'academic_year': {'id': year.id, 'name': year.name},
        }

    def get_examiner_schedules(self, email: str, academic_year_id: Optional[int] = None) -> dict:
        """Seminars the calling lecturer examines, with grading progress."""
        lecturer = self.lecturers.get_by_email(email)
        if not lecturer:
            raise NotFoundError("lecturer not found")
        year = _resolve_academic_year(self.session, academic_year_id)
        today = today_local()

        everything = self.schedules.list_for_examiner(lecturer.nip, year.id)
        upcoming = self.schedules.list_for_examiner(lecturer.nip, year.id, today, today + timedelta(days=2))
        graded = {
            g.nim for g in self.grades.list_for_students(s.nim for s in everything)
            if g.examiner_score is not None
        }
        total = len(everything)
        graded_count = len({s.nim for s in everything} & graded)

        def with_flag(rows):
            for row in rows:
                row['graded'] = row['student']['nim'] in graded
            return rows

        all_rows = sorted(with_flag(self._rows(everything)), key=lambda r: r['start_time'])
        return {
            'academic_year': {'id': year.id, 'name': year.name},
            'statistics': {
                'total_students': total,
                'graded': graded_count,
                'ungraded': total - graded_count,
                'graded_percentage': round(graded_count / total * 100) if total else 0,
            },
            'upcoming': with_flag(self._rows(upcoming)),
            'all': all_rows,
        }

    def get_change_log(self, academic_year_id: Optional[int] = None) -> dict:
        year = _resolve_academic_year(self.session, academic_year_id)
        schedule_ids = [s.id for s in self.schedules.list_for_year(year.id)]
        logs = self.schedules.list_logs(schedule_ids)
        if not logs:
            raise NotFoundError("no schedule changes found")
        names = self.lecturers.names_by_nip(
            [log.old_examiner_nip for log in logs] + [log.new_examiner_nip for log in logs]
        )
        out = []
        for log in logs:
            row = _dump(log)
            row['old_examiner_name'] = names.get(log.old_examiner_nip)
            row['new_examiner_name'] = names.get(log.new_examiner_nip)
            out.append(row)
        return {'logs': out, 'academic_year': {'id': year.id, 'name': year.name}}

    def list_rooms(self) -> list:
        return [r.name for r in self.rooms.list_all()]

    def create_room(self, name: str) -> dict:
        name = (name or "").strip()
        if not name:
            raise ValidationError("room name is required")
        if self.rooms.get(name):
            raise ConflictError(f"room '{name}' already exists")
        self.rooms.create(models.Room(name=name))
        logger.info("room_created name=%s", name)
        return {'name': name}

    def delete_room(self, name: str) -> dict:
        room = self.rooms.get(name)
        if not room:
            raise NotFoundError(f"room '{name}' not found")
        if self.schedules.exists_for_room(name):
            raise ConflictError(f"room '{name}' is used by existing schedules")
        self.rooms.delete(room)
        logger.info("room_deleted name=%s", name)
        return {'name': name}

    def list_lecturers(self) -> list:
        return [{'nip': d.nip, 'name': d.name} for d in self.lecturers.list_all()]

    def list_academic_years(self) -> list:
        return [{'id': y.id, 'name': y.name} for y in self.years.list_all()]


class SeminarDocumentService:
    """Seminar document submission, review and progress views."""
    def __init__(self, session: Session):
        self.session = session
        self.documents = repositories.DocumentRepository(session)
        self.registrations = repositories.RegistrationRepository(session)
        self.schedules = repositories.ScheduleRepository(session)
        self.grades = repositories.GradeRepository(session)
        self.students = repositories.StudentRepository(session)
        self.student_service = StudentService(session)

    def submit_document(self, email: str, kind: str, registration_id: str, link: str) -> dict:
        """Submit (or resubmit) a document for the registration's workflow.

        The student must pass the eligibility gate and the document's step
        must be accessible. Resubmitting a kind overwrites the existing row
        and resets its status to Terkirim.
        """
        try:
            kind = steps.DocumentKind(kind)
        except ValueError:
            raise ValidationError(f"unknown document kind: {kind}")
        error = steps.validate_link(link, kind)
        if error:
            raise ValidationError(error)

        student = self.student_service.get_by_email(email)
        registration = self.registrations.get(registration_id)
        if not registration:
            raise NotFoundError("internship registration not found")
        if registration.nim != student.nim:
            raise AccessDeniedError("registration does not belong to the current student")

        requirements = self.student_service.check_seminar_requirements(student.nim)
        if not requirements['all_requirements_met']:
            raise AccessDeniedError("seminar requirements are not met yet")

        step = steps.step_for_document(kind)
        docs = self.documents.list_for_registration(registration.id)
        if not steps.step_accessible(step, docs, eligible=True):
            raise AccessDeniedError(f"step {step} is not accessible yet; previous step documents must be validated")

        existing = self.documents.get_by_kind(registration.id, kind.value)
        if existing:
            return self._resubmit(existing, link)

        try:
            doc = self.documents.create(models.SeminarDocument(
                kind=kind.value,
                link=link.strip(),
                nim=student.nim,
                registration_id=registration.id,
            ))
        except IntegrityError:
            # a concurrent submission of the same kind won the insert
            self.session.rollback()
            existing = self.documents.get_by_kind(registration.id, kind.value)
            if not existing:
                raise
            return self._resubmit(existing, link)
        logger.info("document_submitted id=%s kind=%s nim=%s", doc.id, kind.value, student.nim)
        return {'document': _dump(doc), 'message': "document submitted; waiting for validation"}

    def _resubmit(self, existing: models.SeminarDocument, link: str) -> dict:
        doc = self.documents.update(
            existing,
            link=link.strip(),
            status=models.DocumentStatus.TERKIRIM,
            uploaded_at=now_local(),
            comment=None,
        )
        logger.info("document_resubmitted id=%s kind=%s nim=%s", doc.id, doc.kind, doc.nim)
        return {'document': _dump(doc), 'message': "document resubmitted; waiting for validation"}

    def get_my_seminar_data(self, email: str) -> dict:
        """Everything a student sees on their seminar page."""
        student = self.student_service.get_by_email(email)
        registration = self.registrations.latest_for_student(student.nim)
        requirements = self.student_service.check_seminar_requirements(student.nim)
        docs = self.documents.list_for_registration(registration.id) if registration else []
        if registration:
            steps_info = steps.steps_info(docs, requirements['all_requirements_met'])
        else:
            steps_info = {f"step{n}_accessible": False for n in steps.STEPS}

        today = today_local()
        schedules = []
        for s in self.schedules.list_for_student(student.nim):
            row = _dump(s)
            row['days_remaining'] = max((s.seminar_date - today).days, 0)
            schedules.append(row)

        grades = []
        for g in self.grades.list_for_student(student.nim):
            row = _dump(g)
            row['letter_grade'] = grading.letter_grade(g.final_score)
            grades.append(row)

        grouped = steps.group_by_step(docs)
        return {
            'nim': student.nim,
            'name': student.name,
            'email': student.email,
            'registration': _dump(registration),
            'seminar_requirements': requirements,
            'documents': {k: [_dump(d) for d in v] for k, v in grouped.items()},
            'schedules': schedules,
            'grades': grades,
            'steps_info': steps_info,
        }

    def list_all_documents(self, academic_year_id: Optional[int] = None) -> dict:
        """Per-student document progress for an academic year."""
        year = _resolve_academic_year(self.session, academic_year_id)
        registrations = self.registrations.list_for_year(year.id)
        docs_by_reg: dict = {}
        for d in self.documents.list_for_registrations(r.id for r in registrations):
            docs_by_reg.setdefault(d.registration_id, []).append(d)

        stats = {
            'total_students': len(registrations),
            'status': {'terkirim': 0, 'divalidasi': 0, 'ditolak': 0},
            'step': {f"step{n}": 0 for n in (1, 2, 3, 4, 5)},
        }
        students = []
        for reg in registrations:
            docs = docs_by_reg.get(reg.id, [])
            current = steps.current_step(docs)
            stats['step'][f"step{current}"] += 1

            current_docs = [d for d in docs if steps.step_for_document(d.kind) == current]
            rejected = [d for d in current_docs if d.status == models.DocumentStatus.DITOLAK]
            if rejected:
                last_status = models.DocumentStatus.DITOLAK.value
            elif current_docs:
                last_status = max(current_docs, key=lambda d: d.uploaded_at).status.value
            else:
                last_status = None
            if last_status:
                stats['status'][last_status.lower()] += 1

            student = self.students.get(reg.nim)
            students.append({
                'nim': reg.nim,
                'name': student.name if student else "N/A",
                'email': student.email if student else None,
                'registration_id': reg.id,
                'current_step': current,
                'last_status': last_status,
                'last_submission': max((d.uploaded_at for d in docs), default=None),
            })
        return {
            'statistics': stats,
            'students': students,
            'academic_year': {'id': year.id, 'name': year.name},
        }

    def get_documents_by_nim(self, nim: str) -> dict:
        student = self.student_service.get_by_nim(nim)
        docs = self.documents.list_for_student(nim)
        if not docs:
            raise NotFoundError(f"no documents found for student {nim}")
        grouped = steps.group_by_step(docs)
        return {
            'nim': student.nim,
            'name': student.name,
            'email': student.email,
            'documents': {k: [_dump(d) for d in v] for k, v in grouped.items()},
        }

    def approve_document(self, document_id: str, comment: Optional[str] = None) -> dict:
        doc = self.documents.get(document_id)
        if not doc:
            raise NotFoundError("document not found")
        doc = self.documents.update(doc, status=models.DocumentStatus.DIVALIDASI, comment=comment)
        logger.info("document_validated id=%s kind=%s", doc.id, doc.kind)
        return _dump(doc)

    def reject_document(self, document_id: str, comment: str) -> dict:
        if not comment or not comment.strip():
            raise ValidationError("a comment is required when rejecting a document")
        doc = self.documents.get(document_id)
        if not doc:
            raise NotFoundError("document not found")
        doc = self.documents.update(doc, status=models.DocumentStatus.DITOLAK, comment=comment.strip())
        logger.info("document_rejected id=%s kind=%s", doc.id, doc.kind)
        return _dump(doc)


class GuidanceService:
    """Guidance sessions (bimbingan) between students and supervisors."""
    def __init__(self, session: Session):
        self.session = session
        self.guidance = repositories.GuidanceRepository(session)
        self.registrations = repositories.RegistrationRepository(session)
        self.lecturers = repositories.LecturerRepository(session)
        self.students = repositories.StudentRepository(session)

    def _lecturer(self, email: str) -> models.Lecturer:
        lecturer = self.lecturers.get_by_email(email)
        if not lecturer:
            raise NotFoundError("lecturer not found")
        return lecturer

    def get_my_guidance(self, email: str) -> dict:
        student_service = StudentService(self.session)
        student = student_service.get_by_email(email)
        registration = student_service.get_registration(student.nim)
        if registration.access_level < MIN_ACCESS_LEVEL:
            raise AccessDeniedError("guidance is not available until the registration is validated")
        sessions = self.guidance.list_for_student(student.nim)
        return {
            'registration': _dump(registration),
            'sessions': [_dump(s) for s in sessions],
            'total_sessions': len(sessions),
        }

    def list_supervised_students(self, email: str) -> list:
        lecturer = self._lecturer(email)
        out = []
        for reg in self.registrations.list_for_supervisor(lecturer.nip):
            student = self.students.get(reg.nim)
            out.append({
                'registration_id': reg.id,
                'nim': reg.nim,
                'name': student.name if student else "N/A",
                'access_level': reg.access_level,
                'status': reg.status.value,
                'total_sessions': self.guidance.count_for_student(reg.nim),
            })
        return out

    def get_supervised_student_detail(self, email: str, registration_id: str) -> dict:
        """One supervised student's registration and guidance history."""
        lecturer = self._lecturer(email)
        registration = self.registrations.get(registration_id)
        if not registration:
            raise NotFoundError("internship registration not found")
        if registration.supervisor_nip != lecturer.nip:
            raise AccessDeniedError("student is not supervised by the current lecturer")
        student = self.students.get(registration.nim)
        sessions = self.guidance.list_for_student(registration.nim)
        return {
            'student': _dump(student),
            'registration': _dump(registration),
            'sessions': [_dump(s) for s in sessions],
            'total_sessions': len(sessions),
        }

    def create_guidance(self, email: str, registration_id: str, note: str) -> dict:
        lecturer = self._lecturer(email)
        registration = self.registrations.get(registration_id)
        if not registration:
            raise NotFoundError("internship registration not found")
        if registration.supervisor_nip != lecturer.nip:
            raise AccessDeniedError("only the academic supervisor can log guidance for this student")
        if not note or not note.strip():
            raise ValidationError("guidance note is required")
        session = self.guidance.create(models.GuidanceSession(
            nim=registration.nim,
            nip=lecturer.nip,
            registration_id=registration.id,
            note=note.strip(),
        ))
        logger.info("guidance_logged id=%s nim=%s nip=%s", session.id, registration.nim, lecturer.nip)
        return _dump(session)


class DailyReportService:
    """Daily attendance reports at the host institution."""
    def __init__(self, session: Session):
        self.session = session
        self.reports = repositories.DailyReportRepository(session)
        self.registrations = repositories.RegistrationRepository(session)
        self.institutions = repositories.InstitutionRepository(session)
        self.students = repositories.StudentRepository(session)
        self.lecturers = repositories.LecturerRepository(session)
        self.grades = repositories.GradeRepository(session)
        self.student_service = StudentService(session)

    def check_access_level(self, email: str) -> dict:
        return self.student_service.check_access_level(email)

    def check_presence(self, email: str) -> bool:
        """Whether the student already checked in today."""
        student = self.student_service.get_by_email(email)
        return self.reports.get_for_date(student.nim, today_local()) is not None

    def create_daily_report(self, email: str, latitude: Optional[float], longitude: Optional[float]) -> dict:
        student = self.student_service.get_by_email(email)
        registration = self.student_service.get_registration(student.nim)
        if registration.access_level < MIN_ACCESS_LEVEL:
            raise AccessDeniedError("daily reports are not available until the registration is validated")
        today = today_local()
        if self.reports.get_for_date(student.nim, today):
            raise ConflictError("daily report for today already exists")
        report = self.reports.create(models.DailyReport(
            nim=student.nim,
            report_date=today,
            latitude=latitude,
            longitude=longitude,
        ))
        logger.info("daily_report_created id=%s nim=%s", report.id, student.nim)
        return _dump(report)

    def _own_report(self, email: str, report_id: str) -> models.DailyReport:
        report = self.reports.get(report_id)
        if not report:
            raise NotFoundError("daily report not found")
        self._check_owner(email, report)
        return report

    def _check_owner(self, email: str, report: models.DailyReport) -> None:
        student = self.student_service.get_by_email(email)
        if report.nim != student.nim:
            raise AccessDeniedError("daily report does not belong to the current student")

    def add_detail(self, email: str, report_id: str, title: str, description: str) -> dict:
        report = self._own_report(email, report_id)
        if not title or not title.strip():
            raise ValidationError("agenda title is required")
        detail = self.reports.create(models.DailyReportDetail(
            daily_report_id=report.id,
            title=title.strip(),
            description=(description or "").strip(),
        ))
        return _dump(detail)

    def update_detail(self, email: str, detail_id: int, title: str, description: str) -> dict:
        detail = self.reports.get_detail(detail_id)
        if not detail:
            raise NotFoundError("daily report detail not found")
        self._check_owner(email, detail.daily_report)
        if not title or not title.strip():
            raise ValidationError("agenda title is required")
        detail.title = title.strip()
        detail.description = (description or "").strip()
        return _dump(self.reports.create(detail))

    def evaluate(self, email: str, report_id: str, note: Optional[str], status: str) -> dict:
        """Institution supervisor approves or sends back a daily report."""
        try:
            status = models.DailyReportStatus(status)
        except ValueError:
            raise ValidationError(f"unknown daily report status: {status}")
        report = self.reports.get(report_id)
        if not report:
            raise NotFoundError("daily report not found")
        registration = self.registrations.latest_for_student(report.nim)
        if not registration or registration.institution_supervisor_email != email:
            raise AccessDeniedError("only the student's institution supervisor can evaluate this report")
        report.status = status
        report.evaluation_note = note
        report = self.reports.create(report)
        logger.info("daily_report_evaluated id=%s status=%s", report.id, status.value)
        return _dump(report)

    def list_my_reports(self, email: str) -> list:
        student = self.student_service.get_by_email(email)
        out = []
        for report in self.reports.list_for_student(student.nim):
            row = _dump(report)
            row['details'] = [_dump(d) for d in report.details]
            out.append(row)
        return out

    def list_students_for_institution_supervisor(self, email: str) -> list:
        if not self.institutions.get_supervisor(email):
            raise NotFoundError("institution supervisor not found")
        out = []
        for reg in self.registrations.list_for_institution_supervisor(email):
            student = self.students.get(reg.nim)
            reports = self.reports.list_for_student(reg.nim)
            grade = self.grades.get_for_registration(reg.id)
            out.append({
                'registration_id': reg.id,
                'nim': reg.nim,
                'name': student.name if student else "N/A",
                'total_reports': len(reports),
                'approved_reports': sum(1 for r in reports if r.status == models.DailyReportStatus.DISETUJUI),
                'institution_score': grade.institution_score if grade else None,
            })
        return out

    def get_institution_location(self, email: str) -> dict:
        """Where the student is placed, used to compare check-in coordinates."""
        student = self.student_service.get_by_email(email)
        registration = self.student_service.get_registration(student.nim)
        if registration.institution_id is None:
            raise NotFoundError("institution is not set for this registration")
        institution = self.institutions.get(registration.institution_id)
        if not institution:
            raise NotFoundError("institution not found")
        return _dump(institution)

    def list_reports_for_supervisor(self, email: str) -> list:
        """Daily reports of every student the lecturer supervises."""
        lecturer = self.lecturers.get_by_email(email)
        if not lecturer:
            raise NotFoundError("lecturer not found")
        out = []
        for reg in self.registrations.list_for_supervisor(lecturer.nip):
            student = self.students.get(reg.nim)
            reports = []
            for report in self.reports.list_for_student(reg.nim):
                row = _dump(report)
                row['details'] = [_dump(d) for d in report.details]
                reports.append(row)
            out.append({
                'registration_id': reg.id,
                'nim': reg.nim,
                'name': student.name if student else "N/A",
                'total_reports': len(reports),
                'reports': reports,
            })
        return out

    def get_institution_grades(self, email: str) -> list:
        """Institution grades the supervisor has submitted, with their components."""
        if not self.institutions.get_supervisor(email):
            raise NotFoundError("institution supervisor not found")
        out = []
        for reg in self.registrations.list_for_institution_supervisor(email):
            grade = self.grades.get_for_registration(reg.id)
            if not grade or grade.institution_score is None:
                continue
            student = self.students.get(reg.nim)
            out.append({
                'registration_id': reg.id,
                'nim': reg.nim,
                'name': student.name if student else "N/A",
                'grade_id': grade.id,
                'institution_score': grade.institution_score,
                'component': _dump(self.grades.get_institution_component(grade.id)),
            })
        if not out:
            raise NotFoundError("no institution grades submitted yet")
        return out


class GradeService:
    """Examiner, supervisor and institution grading and final approval."""
    def __init__(self, session: Session):
        self.session = session
        self.grades = repositories.GradeRepository(session)
        self.registrations = repositories.RegistrationRepository(session)
        self.schedules = repositories.ScheduleRepository(session)
        self.lecturers = repositories.LecturerRepository(session)
        self.institutions = repositories.InstitutionRepository(session)
        self.reports = repositories.DailyReportRepository(session)
        self.documents = repositories.DocumentRepository(session)
        self.students = repositories.StudentRepository(session)

    def _grade_for(self, registration: models.Registration) -> models.Grade:
        grade = self.grades.get_for_registration(registration.id)
        if grade is None:
            grade = self.grades.add(models.Grade(nim=registration.nim, registration_id=registration.id))
        return grade

    def _recompute(self, grade: models.Grade) -> None:
        grade.final_score = grading.final_score(grade.examiner_score, grade.supervisor_score, grade.institution_score)
        if grade.final_score is not None and grade.status == models.GradeStatus.NILAI_BELUM_VALID:
            grade.status = models.GradeStatus.NILAI_VALID
        self.grades.add(grade)

    def _lecturer(self, email: str) -> models.Lecturer:
        lecturer = self.lecturers.get_by_email(email)
        if not lecturer:
            raise NotFoundError("lecturer not found")
        return lecturer

    def _commit(self, grade: models.Grade) -> dict:
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(grade)
        return self._describe(grade)

    def submit_examiner_grade(
        self, email: str, schedule_id: str, domain_mastery, presentation_skill, relevance, note: Optional[str] = None,
    ) -> dict:
        lecturer = self._lecturer(email)
        schedule = self.schedules.get(schedule_id)
        if not schedule:
            raise NotFoundError("schedule not found")
        registration = self.registrations.get(schedule.registration_id)
        if registration.examiner_nip != lecturer.nip:
            raise AccessDeniedError("only the assigned examiner can grade this seminar")
        if not grading.can_input_grade(schedule.start_time, now_local()):
            raise ValidationError("examiner score can only be entered after the seminar has started")
        score = grading.examiner_score(domain_mastery, presentation_skill, relevance)

        grade = self._grade_for(registration)
        grade.schedule_id = schedule.id
        component = self.grades.get_examiner_component(grade.id) or models.ExaminerGradeComponent(
            grade_id=grade.id, nip=lecturer.nip, domain_mastery=0, presentation_skill=0, relevance=0,
        )
        component.nip = lecturer.nip
        component.domain_mastery = float(domain_mastery)
        component.presentation_skill = float(presentation_skill)
        component.relevance = float(relevance)
        component.note = note
        self.grades.add(component)
        grade.examiner_score = score
        self._recompute(grade)
        logger.info("examiner_grade_stored grade=%s nim=%s score=%s", grade.id, grade.nim, score)
        return self._commit(grade)

    def submit_supervisor_grade(
        self, email: str, registration_id: str, problem_solving, attitude, report_quality, note: Optional[str] = None,
    ) -> dict:
        lecturer = self._lecturer(email)
        registration = self.registrations.get(registration_id)
        if not registration:
            raise NotFoundError("internship registration not found")
        if registration.supervisor_nip != lecturer.nip:
            raise AccessDeniedError("only the academic supervisor can grade this student")
        score = grading.supervisor_score(problem_solving, attitude, report_quality)

        grade = self._grade_for(registration)
        component = self.grades.get_supervisor_component(grade.id) or models.SupervisorGradeComponent(
            grade_id=grade.id, nip=lecturer.nip, problem_solving=0, attitude=0, report_quality=0,
        )
        component.nip = lecturer.nip
        component.problem_solving = float(problem_solving)
        component.attitude = float(attitude)
        component.report_quality = float(report_quality)
        component.note = note
        self.grades.add(component)
        grade.supervisor_score = score
        self._recompute(grade)
        logger.info("supervisor_grade_stored grade=%s nim=%s score=%s", grade.id, grade.nim, score)
        return self._commit(grade)

    def submit_institution_grade(self, email: str, nim: str, scores: dict, feedback: Optional[str] = None) -> dict:
        """Store the host-institution grade; needs more than 22 daily reports."""
        if not self.institutions.get_supervisor(email):
            raise NotFoundError("institution supervisor not found")
        registration = self.registrations.latest_for_student(nim)
        if not registration:
            raise NotFoundError("internship registration not found")
        if registration.institution_supervisor_email != email:
            raise AccessDeniedError("only the student's institution supervisor can grade this student")
        count = self.reports.count_for_student(nim)
        if count <= MIN_DAILY_REPORTS:
            raise AccessDeniedError(
                f"student needs more than {MIN_DAILY_REPORTS} daily reports before grading (has {count})"
            )
        score = grading.institution_score(**{name: scores.get(name) for name, _ in grading.INSTITUTION_WEIGHTS})

        grade = self._grade_for(registration)
        component = self.grades.get_institution_component(grade.id) or models.InstitutionGradeComponent(
            grade_id=grade.id, supervisor_email=email,
            deliverables=0, punctuality=0, discipline=0, attitude=0, teamwork=0, initiative=0,
        )
        for name, _ in grading.INSTITUTION_WEIGHTS:
            setattr(component, name, float(scores[name]))
        component.supervisor_email = email
        component.feedback = feedback
        self.grades.add(component)
        grade.institution_score = score
        self._recompute(grade)
        logger.info("institution_grade_stored grade=%s nim=%s score=%s", grade.id, grade.nim, score)
        return self._commit(grade)

    def _describe(self, grade: models.Grade) -> dict:
        row = _dump(grade)
        row['status'] = grading.format_grade_status(grade.status)
        row['letter_grade'] = grading.letter_grade(grade.final_score)
        return row

    def get_grade(self, grade_id: str) -> dict:
        grade = self.grades.get(grade_id)
        if not grade:
            raise NotFoundError("grade not found")
        row = self._describe(grade)
        row['examiner_component'] = _dump(self.grades.get_examiner_component(grade.id))
        row['supervisor_component'] = _dump(self.grades.get_supervisor_component(grade.id))
        row['institution_component'] = _dump(self.grades.get_institution_component(grade.id))
        return row

    def list_grades(self) -> list:
        out = []
        for grade in self.grades.list_all():
            row = self._describe(grade)
            student = self.students.get(grade.nim)
            row['student_name'] = student.name if student else "N/A"
            out.append(row)
        return out

    def validation_status(self, registration_id: str) -> dict:
        """Whether the grade set of a registration is ready for approval."""
        registration = self.registrations.get(registration_id)
        if not registration:
            raise NotFoundError("internship registration not found")
        grade = self.grades.get_for_registration(registration.id)
        statuses = [d.status for d in self.documents.list_for_registration(registration.id)]
        return grading.can_validate_grade(
            grade.examiner_score if grade else None,
            grade.supervisor_score if grade else None,
            grade.institution_score if grade else None,
            statuses,
        )

    def approve_grade(self, grade_id: str) -> dict:
        grade = self.grades.get(grade_id)
        if not grade:
            raise NotFoundError("grade not found")
        result = self.validation_status(grade.registration_id)
        if not result['valid']:
            raise ValidationError(result['message'])
        grade.status = models.GradeStatus.NILAI_APPROVE
        self.grades.add(grade)
        logger.info("grade_approved grade=%s nim=%s final=%s", grade.id, grade.nim, grade.final_score)
        return self._commit(grade)
