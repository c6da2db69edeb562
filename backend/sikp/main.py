"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the internship (Kerja Praktik)
administration backend. Controllers are intentionally thin: they
accept requests, delegate to services, and wrap results in the
`{response, message, data}` envelope. Service errors are turned into
`{"error": message}` bodies with the error's status code.

Endpoints implemented:
- /jadwal, /tahun-ajaran, /dosen, /ruangan (seminar scheduling)
- /mahasiswa (access level, seminar requirements)
- /seminar-kp (seminar documents and progress)
- /bimbingan (guidance sessions)
- /daily-report (daily attendance reports)
- /nilai (grading)
- GET /health
"""

import json
import logging
import os
import time
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from . import services
from .auth import get_current_email
from .config import settings
from .database import create_db_and_tables, get_session
from .errors import ServiceError
from .schemas import (
    DailyReportDetailIn,
    DailyReportEvaluationIn,
    DailyReportIn,
    DocumentIn,
    DocumentReviewIn,
    ExaminerGradeIn,
    GuidanceIn,
    InstitutionGradeIn,
    RoomIn,
    ScheduleCreateIn,
    ScheduleUpdateIn,
    SupervisorGradeIn,
)

app = FastAPI(title="Kerja Praktik Administration API")
logger = logging.getLogger("sikp.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

# Wide-open CORS keeps local frontends working without extra config in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


def _request_fields(request: Request, req_id: str, started: float) -> dict:
    return {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        "client": request.client.host if request.client else "unknown",
    }


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("request_failed %s", json.dumps(_request_fields(request, req_id, started), ensure_ascii=True))
        raise
    response.headers["X-Request-ID"] = req_id
    fields = _request_fields(request, req_id, started)
    fields["status_code"] = response.status_code
    logger.info("request_done %s", json.dumps(fields, ensure_ascii=True))
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    body = {"error": exc.message}
    if exc.details:
        body["details"] = exc.details
    if exc.status_code >= 500:
        logger.error("service_error %s", exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


def _ok(message: str, data=None) -> dict:
    return {"response": True, "message": message, "data": data}


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}


# --- students -------------------------------------------------------------

@app.get('/mahasiswa/access-level')
def student_access_level(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Access level of the caller's latest registration."""
    data = services.StudentService(db).check_access_level(email)
    return _ok("access level loaded", data)


@app.get('/mahasiswa/{nim}/persyaratan-seminar')
def seminar_requirements(nim: str, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """The five seminar eligibility checks for a student."""
    svc = services.StudentService(db)
    svc.get_by_nim(nim)
    return _ok("seminar requirements evaluated", svc.check_seminar_requirements(nim))


# --- scheduling -----------------------------------------------------------

@app.post('/jadwal', status_code=201)
def create_schedule(payload: ScheduleCreateIn, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Book a seminar. Overlaps for student, lecturers or room return 409."""
    data = services.ScheduleService(db).create_schedule(**payload.model_dump())
    return _ok("seminar schedule created", data)


@app.put('/jadwal/{schedule_id}')
def update_schedule(
    schedule_id: str,
    payload: ScheduleUpdateIn,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    data = services.ScheduleService(db).update_schedule(schedule_id, **payload.model_dump())
    return _ok("seminar schedule updated", data)


@app.get('/jadwal')
def list_schedules(
    tahun_ajaran_id: Optional[int] = None,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    """All schedules of an academic year (latest year when omitted)."""
    data = services.ScheduleService(db).get_all_schedules(tahun_ajaran_id)
    return _ok("schedules loaded", data)


@app.get('/jadwal/saya')
def my_examiner_schedules(
    tahun_ajaran_id: Optional[int] = None,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    """Seminars the calling lecturer examines."""
    data = services.ScheduleService(db).get_examiner_schedules(email, tahun_ajaran_id)
    return _ok("examiner schedules loaded", data)


@app.get('/jadwal/log')
def schedule_change_log(
    tahun_ajaran_id: Optional[int] = None,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    data = services.ScheduleService(db).get_change_log(tahun_ajaran_id)
    return _ok("schedule log loaded", data)


@app.post('/jadwal/refresh-status')
def refresh_schedule_status(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    count = services.ScheduleService(db).refresh_statuses()
    return _ok("schedule statuses refreshed", {"finished": count})


@app.get('/tahun-ajaran')
def list_academic_years(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    return _ok("academic years loaded", services.ScheduleService(db).list_academic_years())


@app.get('/dosen')
def list_lecturers(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    return _ok("lecturers loaded", services.ScheduleService(db).list_lecturers())


@app.get('/ruangan')
def list_rooms(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    return _ok("rooms loaded", services.ScheduleService(db).list_rooms())


@app.post('/ruangan', status_code=201)
def create_room(payload: RoomIn, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Add a seminar room. Duplicate names return 409."""
    return _ok("room created", services.ScheduleService(db).create_room(payload.name))


@app.delete('/ruangan/{name}')
def delete_room(name: str, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    return _ok("room deleted", services.ScheduleService(db).delete_room(name))


# --- seminar documents ----------------------------------------------------

@app.post('/seminar-kp/dokumen/{kind}', status_code=201)
def submit_document(
    kind: str,
    payload: DocumentIn,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    """Submit or resubmit a seminar document link of the given kind.

    Returns 403 when the seminar requirements are not met or when the
    document's step is not accessible yet.
    """
    result = services.SeminarDocumentService(db).submit_document(email, kind, payload.registration_id, payload.link)
    return _ok(result['message'], result['document'])


@app.get('/seminar-kp/saya')
def my_seminar_data(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Documents, step access, schedules and grades of the calling student."""
    data = services.SeminarDocumentService(db).get_my_seminar_data(email)
    return _ok("seminar data loaded", data)


@app.get('/seminar-kp/dokumen')
def list_documents(
    tahun_ajaran_id: Optional[int] = None,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    data = services.SeminarDocumentService(db).list_all_documents(tahun_ajaran_id)
    return _ok("seminar documents loaded", data)


@app.get('/seminar-kp/dokumen/{nim}')
def documents_by_nim(nim: str, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    data = services.SeminarDocumentService(db).get_documents_by_nim(nim)
    return _ok("student documents loaded", data)


@app.post('/seminar-kp/dokumen/{document_id}/validasi')
def approve_document(
    document_id: str,
    payload: Optional[DocumentReviewIn] = None,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    comment = payload.comment if payload else None
    data = services.SeminarDocumentService(db).approve_document(document_id, comment)
    return _ok("document validated", data)


@app.post('/seminar-kp/dokumen/{document_id}/tolak')
def reject_document(
    document_id: str,
    payload: DocumentReviewIn,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    """Reject a document; a comment explaining the rejection is required."""
    data = services.SeminarDocumentService(db).reject_document(document_id, payload.comment)
    return _ok("document rejected", data)


# --- guidance -------------------------------------------------------------

@app.get('/bimbingan/saya')
def my_guidance(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    return _ok("guidance sessions loaded", services.GuidanceService(db).get_my_guidance(email))


@app.get('/bimbingan/mahasiswa')
def supervised_students(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Students supervised by the calling lecturer."""
    return _ok("supervised students loaded", services.GuidanceService(db).list_supervised_students(email))


@app.get('/bimbingan/mahasiswa/{registration_id}')
def supervised_student_detail(registration_id: str, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    data = services.GuidanceService(db).get_supervised_student_detail(email, registration_id)
    return _ok("supervised student loaded", data)


@app.post('/bimbingan', status_code=201)
def create_guidance(payload: GuidanceIn, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    data = services.GuidanceService(db).create_guidance(email, payload.registration_id, payload.note)
    return _ok("guidance session recorded", data)


# --- daily reports --------------------------------------------------------

@app.get('/daily-report/access-level')
def daily_report_access_level(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    return _ok("access level loaded", services.DailyReportService(db).check_access_level(email))


@app.get('/daily-report/presence')
def daily_report_presence(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Whether the caller already checked in today."""
    present = services.DailyReportService(db).check_presence(email)
    return _ok("presence checked", {"present": present})


@app.get('/daily-report/saya')
def my_daily_reports(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    return _ok("daily reports loaded", services.DailyReportService(db).list_my_reports(email))


@app.post('/daily-report', status_code=201)
def create_daily_report(payload: DailyReportIn, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    data = services.DailyReportService(db).create_daily_report(email, payload.latitude, payload.longitude)
    return _ok("daily report created", data)


@app.post('/daily-report/{report_id}/detail', status_code=201)
def add_daily_report_detail(
    report_id: str,
    payload: DailyReportDetailIn,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    data = services.DailyReportService(db).add_detail(email, report_id, payload.title, payload.description)
    return _ok("agenda added", data)


@app.put('/daily-report/detail/{detail_id}')
def update_daily_report_detail(
    detail_id: int,
    payload: DailyReportDetailIn,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    data = services.DailyReportService(db).update_detail(email, detail_id, payload.title, payload.description)
    return _ok("agenda updated", data)


@app.post('/daily-report/{report_id}/evaluasi')
def evaluate_daily_report(
    report_id: str,
    payload: DailyReportEvaluationIn,
    email: str = Depends(get_current_email),
    db: Session = Depends(get_session),
):
    """Institution supervisor approves or requests revision of a report."""
    data = services.DailyReportService(db).evaluate(email, report_id, payload.note, payload.status)
    return _ok("daily report evaluated", data)


@app.get('/daily-report/instansi/mahasiswa')
def institution_students(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    data = services.DailyReportService(db).list_students_for_institution_supervisor(email)
    return _ok("students loaded", data)


@app.get('/daily-report/instansi/lokasi')
def institution_location(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Placement coordinates for the calling student."""
    return _ok("institution location loaded", services.DailyReportService(db).get_institution_location(email))


@app.get('/daily-report/instansi/nilai')
def institution_grades(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    data = services.DailyReportService(db).get_institution_grades(email)
    return _ok("institution grades loaded", data)


@app.get('/daily-report/dosen/mahasiswa')
def supervisor_daily_reports(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Daily reports of the calling lecturer's supervised students."""
    data = services.DailyReportService(db).list_reports_for_supervisor(email)
    return _ok("daily reports loaded", data)



# --- grades ---------------------------------------------------------------

@app.post('/nilai/penguji', status_code=201)
def submit_examiner_grade(payload: ExaminerGradeIn, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Examiner grade; only accepted after the seminar has started."""
    data = services.GradeService(db).submit_examiner_grade(
        email,
        payload.schedule_id,
        payload.domain_mastery,
        payload.presentation_skill,
        payload.relevance,
        payload.note,
    )
    return _ok("examiner grade saved", data)


@app.post('/nilai/pembimbing', status_code=201)
def submit_supervisor_grade(payload: SupervisorGradeIn, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    data = services.GradeService(db).submit_supervisor_grade(
        email,
        payload.registration_id,
        payload.problem_solving,
        payload.attitude,
        payload.report_quality,
        payload.note,
    )
    return _ok("supervisor grade saved", data)


@app.post('/nilai/instansi', status_code=201)
def submit_institution_grade(payload: InstitutionGradeIn, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Institution grade; needs more than 22 daily reports."""
    scores = payload.model_dump(exclude={"nim", "feedback"})
    data = services.GradeService(db).submit_institution_grade(email, payload.nim, scores, payload.feedback)
    return _ok("institution grade saved", data)


@app.get('/nilai')
def list_grades(email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    return _ok("grades loaded", services.GradeService(db).list_grades())


@app.get('/nilai/validasi/{registration_id}')
def grade_validation_status(registration_id: str, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    data = services.GradeService(db).validation_status(registration_id)
    return _ok(data['message'], data)


@app.get('/nilai/{grade_id}')
def get_grade(grade_id: str, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    return _ok("grade loaded", services.GradeService(db).get_grade(grade_id))


@app.post('/nilai/{grade_id}/approve')
def approve_grade(grade_id: str, email: str = Depends(get_current_email), db: Session = Depends(get_session)):
    """Approve a complete grade set once every seminar document is validated."""
    return _ok("grade approved", services.GradeService(db).approve_grade(grade_id))
