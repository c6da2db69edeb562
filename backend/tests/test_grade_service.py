import pytest

from conftest import add_daily_reports, add_documents, add_past_schedule
from sikp import models
from sikp.errors import AccessDeniedError, NotFoundError, ValidationError
from sikp.services import GradeService

INSTITUTION_FULL_MARKS = {
    'deliverables': 100, 'punctuality': 100, 'discipline': 100,
    'attitude': 100, 'teamwork': 100, 'initiative': 100,
}


def test_examiner_grade_after_seminar_start(db, seed):
    schedule = add_past_schedule(db, seed.reg_ani, seed.tono.nip)
    grade = GradeService(db).submit_examiner_grade(seed.tono.email, schedule.id, 90, 80, 70)
    assert grade['examiner_score'] == 80.0
    assert grade['schedule_id'] == schedule.id
    assert grade['final_score'] is None
    assert grade['letter_grade'] == "-"


def test_examiner_grade_before_seminar_start_rejected(db, seed):
    schedule = add_past_schedule(db, seed.reg_ani, seed.tono.nip, hours_ago=-3)
    with pytest.raises(ValidationError):
        GradeService(db).submit_examiner_grade(seed.tono.email, schedule.id, 90, 80, 70)


def test_only_assigned_examiner_may_grade(db, seed):
    schedule = add_past_schedule(db, seed.reg_ani, seed.tono.nip)
    with pytest.raises(AccessDeniedError):
        GradeService(db).submit_examiner_grade(seed.yudi.email, schedule.id, 90, 80, 70)


def test_out_of_range_component_rejected(db, seed):
    schedule = add_past_schedule(db, seed.reg_ani, seed.tono.nip)
    with pytest.raises(ValidationError):
        GradeService(db).submit_examiner_grade(seed.tono.email, schedule.id, 101, 80, 70)


def test_supervisor_grade_create_then_update(db, seed):
    svc = GradeService(db)
    first = svc.submit_supervisor_grade(seed.sari.email, seed.reg_ani.id, 80, 90, 70)
    assert first['supervisor_score'] == 81.0
    second = svc.submit_supervisor_grade(seed.sari.email, seed.reg_ani.id, 60, 60, 60, note="revised")
    assert second['id'] == first['id']
    assert second['supervisor_score'] == 60.0
    component = svc.get_grade(first['id'])['supervisor_component']
    assert component['note'] == "revised"
    with pytest.raises(AccessDeniedError):
        svc.submit_supervisor_grade(seed.tono.email, seed.reg_ani.id, 80, 80, 80)


def test_institution_grade_needs_more_than_22_reports(db, seed):
    add_daily_reports(db, seed.ani.nim, 20)
    with pytest.raises(AccessDeniedError):
        GradeService(db).submit_institution_grade(seed.hr.email, seed.ani.nim, INSTITUTION_FULL_MARKS)


def test_institution_grade_full_marks(db, seed):
    add_daily_reports(db, seed.ani.nim, 23)
    grade = GradeService(db).submit_institution_grade(seed.hr.email, seed.ani.nim, INSTITUTION_FULL_MARKS, "great work")
    assert grade['institution_score'] == 100.0
    with pytest.raises(NotFoundError):
        GradeService(db).submit_institution_grade("nobody@example.com", seed.ani.nim, INSTITUTION_FULL_MARKS)


def test_final_score_status_and_approval(db, seed):
    svc = GradeService(db)
    schedule = add_past_schedule(db, seed.reg_ani, seed.tono.nip)
    add_daily_reports(db, seed.ani.nim, 23)
    svc.submit_examiner_grade(seed.tono.email, schedule.id, 90, 80, 70)
    svc.submit_supervisor_grade(seed.sari.email, seed.reg_ani.id, 80, 80, 80)
    grade = svc.submit_institution_grade(seed.hr.email, seed.ani.nim, INSTITUTION_FULL_MARKS)

    assert grade['final_score'] == 88.0
    assert grade['letter_grade'] == "A"
    assert grade['status'] == "Nilai Valid"

    pending = add_documents(db, seed.reg_ani, steps=(5,), status=models.DocumentStatus.TERKIRIM)
    status = svc.validation_status(seed.reg_ani.id)
    assert not status['valid']
    assert status['message'] == f"{len(pending)} seminar documents have not been validated"
    with pytest.raises(ValidationError):
        svc.approve_grade(grade['id'])

    for doc in pending:
        doc.status = models.DocumentStatus.DIVALIDASI
        db.add(doc)
    db.commit()
    approved = svc.approve_grade(grade['id'])
    assert approved['status'] == "Nilai Approve"

    listed = svc.list_grades()
    assert listed[0]['student_name'] == "Ani"
    assert listed[0]['letter_grade'] == "A"


def test_validation_status_without_grade(db, seed):
    status = GradeService(db).validation_status(seed.reg_budi.id)
    assert status == {'valid': False, 'message': "examiner score has not been entered"}


def test_unknown_schedule_and_grade(db, seed):
    svc = GradeService(db)
    with pytest.raises(NotFoundError):
        svc.submit_examiner_grade(seed.tono.email, "missing", 90, 80, 70)
    with pytest.raises(NotFoundError):
        svc.get_grade("missing")
