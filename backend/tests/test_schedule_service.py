from datetime import time, timedelta

import pytest

from conftest import add_documents, add_past_schedule
from sikp import models, repositories
from sikp.errors import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from sikp.services import ScheduleService
from sikp.utils.dates import today_local

FUTURE = today_local() + timedelta(days=7)


@pytest.fixture
def ready(db, seed):
    """Both registrations have validated step 1-3 documents."""
    add_documents(db, seed.reg_ani)
    add_documents(db, seed.reg_budi)
    return seed


def _book(svc, reg, examiner, room="R1", start=time(9, 0), end=None, day=None):
    return svc.create_schedule(
        registration_id=reg.id,
        nim=reg.nim,
        examiner_nip=examiner.nip,
        room_name=room,
        seminar_date=day or FUTURE,
        start_time=start,
        end_time=end,
    )


def test_room_overlap_rejected_and_adjacent_slot_accepted(db, ready):
    svc = ScheduleService(db)
    first = _book(svc, ready.reg_ani, ready.tono, end=time(10, 0))
    assert first['room_name'] == "R1"

    with pytest.raises(ConflictError) as exc:
        _book(svc, ready.reg_budi, ready.yudi, start=time(9, 30), end=time(10, 30))
    assert exc.value.message == "room is not available at the selected time"
    assert exc.value.details[0]['entity'] == "room"
    assert repositories.ScheduleRepository(db).get_for_registration(ready.reg_budi.id) is None

    second = _book(svc, ready.reg_budi, ready.yudi, start=time(10, 0), end=time(11, 0))
    assert second['start_time'].hour == 10


def test_end_time_defaults_to_one_hour(db, ready):
    schedule = _book(ScheduleService(db), ready.reg_ani, ready.tono)
    assert schedule['end_time'] - schedule['start_time'] == timedelta(hours=1)


def test_examiner_busy_elsewhere_is_a_conflict(db, ready):
    svc = ScheduleService(db)
    _book(svc, ready.reg_ani, ready.tono)
    with pytest.raises(ConflictError) as exc:
        _book(svc, ready.reg_budi, ready.tono, room="R2", start=time(9, 30))
    assert exc.value.message.startswith("examiner schedule conflicts")


def test_supervisor_busy_elsewhere_is_a_conflict(db, ready):
    svc = ScheduleService(db)
    _book(svc, ready.reg_ani, ready.tono)
    ready.reg_budi.supervisor_nip = ready.tono.nip
    db.add(ready.reg_budi)
    db.commit()
    with pytest.raises(ConflictError) as exc:
        _book(svc, ready.reg_budi, ready.yudi, room="R2", start=time(9, 30))
    assert exc.value.message.startswith("supervisor schedule conflicts")


def test_examiner_cannot_be_the_supervisor(db, ready):
    with pytest.raises(ValidationError):
        _book(ScheduleService(db), ready.reg_ani, ready.sari)


def test_unvalidated_documents_block_scheduling(db, seed):
    add_documents(db, seed.reg_ani, steps=(1, 2))
    with pytest.raises(AccessDeniedError) as exc:
        _book(ScheduleService(db), seed.reg_ani, seed.tono)
    assert "SURAT_UNDANGAN_SEMINAR_HASIL" in exc.value.message


def test_invalid_windows_are_rejected(db, ready):
    svc = ScheduleService(db)
    with pytest.raises(ValidationError):
        _book(svc, ready.reg_ani, ready.tono, start=time(10, 0), end=time(9, 0))
    with pytest.raises(ValidationError):
        _book(svc, ready.reg_ani, ready.tono, day=today_local() - timedelta(days=1))
    with pytest.raises(NotFoundError):
        _book(svc, ready.reg_ani, ready.tono, room="R9")


def test_create_assigns_examiner_and_logs(db, ready):
    svc = ScheduleService(db)
    schedule = _book(svc, ready.reg_ani, ready.tono)
    db.refresh(ready.reg_ani)
    assert ready.reg_ani.examiner_nip == ready.tono.nip
    logs = repositories.ScheduleRepository(db).list_logs([schedule['id']])
    assert [log.log_type for log in logs] == [models.LogType.CREATE]
    assert logs[0].new_room == "R1"


def test_update_excludes_itself_and_appends_log(db, ready):
    svc = ScheduleService(db)
    schedule = _book(svc, ready.reg_ani, ready.tono)
    updated = svc.update_schedule(schedule['id'], start_time=time(9, 30), room_name="R2", examiner_nip=ready.yudi.nip)
    assert updated['room_name'] == "R2"
    assert updated['end_time'] - updated['start_time'] == timedelta(hours=1)

    logs = repositories.ScheduleRepository(db).list_logs([schedule['id']])
    assert {log.log_type for log in logs} == {models.LogType.CREATE, models.LogType.UPDATE}
    update = next(log for log in logs if log.log_type == models.LogType.UPDATE)
    assert (update.old_room, update.new_room) == ("R1", "R2")
    assert update.old_examiner_nip == ready.tono.nip
    assert "Dr. Yudi" in update.note



def test_booking_locks_participant_rows(db, ready, monkeypatch):
    locked = []
    real_lock_many = repositories.LecturerRepository.lock_many

    def record_lock_many(self, nips):
        rows = real_lock_many(self, nips)
        locked.append([r.nip for r in rows])
        return rows

    def record(name, real):
        def wrapper(self, key):
            locked.append((name, key))
            return real(self, key)
        return wrapper

    monkeypatch.setattr(repositories.LecturerRepository, 'lock_many', record_lock_many)
    monkeypatch.setattr(repositories.RegistrationRepository, 'lock', record('registration', repositories.RegistrationRepository.lock))
    monkeypatch.setattr(repositories.StudentRepository, 'lock', record('student', repositories.StudentRepository.lock))

    svc = ScheduleService(db)
    schedule = _book(svc, ready.reg_ani, ready.tono)
    assert locked == [
        ('registration', ready.reg_ani.id),
        ('student', ready.ani.nim),
        [ready.sari.nip, ready.tono.nip],
    ]

    locked.clear()
    svc.update_schedule(schedule['id'], examiner_nip=ready.yudi.nip)
    assert locked[-1] == [ready.sari.nip, ready.tono.nip, ready.yudi.nip]

def test_update_blocked_once_graded(db, ready):
    svc = ScheduleService(db)
    schedule = _book(svc, ready.reg_ani, ready.tono)
    db.add(models.Grade(nim=ready.ani.nim, registration_id=ready.reg_ani.id, supervisor_score=80.0))
    db.commit()
    with pytest.raises(ValidationError) as exc:
        svc.update_schedule(schedule['id'], room_name="R2")
    assert "supervisor score" in exc.value.message


def test_refresh_marks_past_seminars_finished(db, seed):
    past = add_past_schedule(db, seed.reg_ani, seed.tono.nip)
    assert ScheduleService(db).refresh_statuses() == 1
    db.refresh(past)
    assert past.status == models.ScheduleStatus.SELESAI


def test_all_schedules_group_by_room_including_empty(db, ready):
    svc = ScheduleService(db)
    schedule = _book(svc, ready.reg_ani, ready.tono)
    svc.update_schedule(schedule['id'], start_time=time(13, 0))
    data = svc.get_all_schedules()
    assert data['total_seminars'] == 1
    assert data['total_reschedules'] == 1
    by_room = data['schedules']['by_room']['all']
    assert set(by_room) == {"R1", "R2"}
    assert by_room["R2"] == []
    row = by_room["R1"][0]
    assert row['student']['name'] == "Ani"
    assert row['examiner'] == "Dr. Tono"
    assert row['supervisor'] == "Dr. Sari"
    assert data['academic_year']['id'] == 1


def test_examiner_view_counts_graded_students(db, seed):
    add_past_schedule(db, seed.reg_ani, seed.tono.nip)
    db.add(models.Grade(nim=seed.ani.nim, registration_id=seed.reg_ani.id, examiner_score=80.0))
    db.commit()
    data = ScheduleService(db).get_examiner_schedules(seed.tono.email)
    assert data['statistics'] == {'total_students': 1, 'graded': 1, 'ungraded': 0, 'graded_percentage': 100}
    assert data['all'][0]['graded']


def test_change_log_empty_is_not_found(db, seed):
    with pytest.raises(NotFoundError):
        ScheduleService(db).get_change_log()


def test_rooms_crud(db, seed):
    svc = ScheduleService(db)
    svc.create_room(" R3 ")
    assert svc.list_rooms() == ["R1", "R2", "R3"]
    with pytest.raises(ConflictError):
        svc.create_room("R3")
    with pytest.raises(ValidationError):
        svc.create_room("   ")
    svc.delete_room("R3")
    with pytest.raises(NotFoundError):
        svc.delete_room("R3")


def test_room_in_use_cannot_be_deleted(db, seed):
    add_past_schedule(db, seed.reg_ani, seed.tono.nip, room="R2")
    with pytest.raises(ConflictError):
        ScheduleService(db).delete_room("R2")
