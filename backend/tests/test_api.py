from datetime import timedelta

from fastapi.testclient import TestClient

from conftest import add_documents
from sikp.auth import create_token
from sikp.main import app
from sikp.utils.dates import today_local

client = TestClient(app)


def _headers(email="koordinator@example.ac.id"):
    return {'Authorization': f'Bearer {create_token(email)}'}


def test_health():
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json() == {'status': 'ok'}


def test_missing_or_bad_token_rejected(seed):
    r = client.get('/ruangan')
    assert r.status_code in (401, 403)
    r = client.get('/ruangan', headers={'Authorization': 'Bearer not-a-jwt'})
    assert r.status_code == 401


def test_room_endpoints_and_error_body(seed):
    r = client.post('/ruangan', json={'name': 'Lab 3'}, headers=_headers())
    assert r.status_code == 201
    assert r.json()['response'] is True
    dup = client.post('/ruangan', json={'name': 'Lab 3'}, headers=_headers())
    assert dup.status_code == 409
    assert "already exists" in dup.json()['error']
    listed = client.get('/ruangan', headers=_headers()).json()['data']
    assert listed == ["Lab 3", "R1", "R2"]
    assert client.delete('/ruangan/Lab 3', headers=_headers()).status_code == 200
    assert client.delete('/ruangan/Lab 3', headers=_headers()).status_code == 404


def test_schedule_conflict_returns_409(db, seed):
    add_documents(db, seed.reg_ani)
    add_documents(db, seed.reg_budi)
    day = (today_local() + timedelta(days=7)).isoformat()
    body = {
        'registration_id': seed.reg_ani.id, 'nim': seed.ani.nim, 'examiner_nip': seed.tono.nip,
        'room_name': 'R1', 'seminar_date': day, 'start_time': '09:00', 'end_time': '10:00',
    }
    r = client.post('/jadwal', json=body, headers=_headers())
    assert r.status_code == 201
    assert r.json()['data']['room_name'] == 'R1'

    clash = dict(body, registration_id=seed.reg_budi.id, nim=seed.budi.nim,
                 examiner_nip=seed.yudi.nip, start_time='09:30', end_time='10:30')
    r = client.post('/jadwal', json=clash, headers=_headers())
    assert r.status_code == 409
    assert r.json()['details'][0]['entity'] == 'room'

    listing = client.get('/jadwal', headers=_headers()).json()['data']
    assert listing['total_seminars'] == 1
    assert listing['schedules']['by_room']['all']['R2'] == []


def test_student_seminar_page_and_forbidden_submission(seed):
    r = client.get('/seminar-kp/saya', headers=_headers(seed.ani.email))
    assert r.status_code == 200
    assert r.json()['data']['steps_info']['step1_accessible'] is False

    r = client.post(
        '/seminar-kp/dokumen/LAPORAN_KP',
        json={'registration_id': seed.reg_ani.id, 'link': 'https://drive.example.com/laporan'},
        headers=_headers(seed.ani.email),
    )
    assert r.status_code == 403
    assert r.json()['error'] == "seminar requirements are not met yet"


def test_out_of_range_grade_is_400(seed):
    r = client.post(
        '/nilai/pembimbing',
        json={'registration_id': seed.reg_ani.id, 'problem_solving': 120, 'attitude': 80, 'report_quality': 80},
        headers=_headers(seed.sari.email),
    )
    assert r.status_code == 400


def test_access_level_for_unknown_student_is_404(seed):
    r = client.get('/mahasiswa/access-level', headers=_headers("stranger@example.com"))
    assert r.status_code == 404
    assert r.json() == {'error': 'student not found'}


def test_supervisor_and_institution_read_endpoints(seed):
    r = client.get('/daily-report/instansi/lokasi', headers=_headers(seed.ani.email))
    assert r.status_code == 200
    assert r.json()['data']['name'] == "PT Acme"

    r = client.get('/daily-report/dosen/mahasiswa', headers=_headers(seed.sari.email))
    assert r.status_code == 200
    assert [row['nim'] for row in r.json()['data']] == [seed.ani.nim]

    r = client.get(f'/bimbingan/mahasiswa/{seed.reg_budi.id}', headers=_headers(seed.sari.email))
    assert r.status_code == 403
    r = client.get(f'/bimbingan/mahasiswa/{seed.reg_ani.id}', headers=_headers(seed.sari.email))
    assert r.json()['data']['total_sessions'] == 0

    r = client.get('/daily-report/instansi/nilai', headers=_headers(seed.hr.email))
    assert r.status_code == 404
