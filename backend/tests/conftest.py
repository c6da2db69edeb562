from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace
import os
import tempfile

import pytest

# must be set before the application package is imported
_DB_PATH = Path(tempfile.mkdtemp()) / "sikp_test.db"
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_DB_PATH}")
os.environ.setdefault("MUROJAAH_CHECK_ENABLED", "false")

from sqlmodel import Session, SQLModel  # noqa: E402

from sikp import models  # noqa: E402
from sikp.database import engine  # noqa: E402
from sikp.utils.dates import now_local, today_local  # noqa: E402
from sikp.utils.document_steps import kinds_for_step  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test a fresh schema."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def seed(db):
    """Two registered students with distinct supervisors and two rooms."""
    year = models.AcademicYear(id=1, name="2025/2026 Ganjil")
    ani = models.Student(nim="12250111001", name="Ani", email="ani@students.example.ac.id")
    budi = models.Student(nim="12250111002", name="Budi", email="budi@students.example.ac.id")
    sari = models.Lecturer(nip="198001", name="Dr. Sari", email="sari@example.ac.id")
    tono = models.Lecturer(nip="198002", name="Dr. Tono", email="tono@example.ac.id")
    wati = models.Lecturer(nip="198003", name="Dr. Wati", email="wati@example.ac.id")
    yudi = models.Lecturer(nip="198004", name="Dr. Yudi", email="yudi@example.ac.id")
    institution = models.Institution(id=1, name="PT Acme", address="Pekanbaru")
    hr = models.InstitutionSupervisor(email="hr@acme.example.com", name="Rina", institution_id=1)
    rooms = [models.Room(name="R1"), models.Room(name="R2")]
    db.add_all([year, ani, budi, sari, tono, wati, yudi, institution, hr, *rooms])
    db.commit()

    reg_ani = models.Registration(
        nim=ani.nim, institution_id=1, supervisor_nip=sari.nip,
        institution_supervisor_email=hr.email, academic_year_id=1, access_level=5,
    )
    reg_budi = models.Registration(
        nim=budi.nim, institution_id=1, supervisor_nip=wati.nip,
        institution_supervisor_email=hr.email, academic_year_id=1, access_level=5,
    )
    db.add_all([reg_ani, reg_budi])
    db.commit()
    return SimpleNamespace(
        year=year, ani=ani, budi=budi, sari=sari, tono=tono, wati=wati, yudi=yudi,
        institution=institution, hr=hr, reg_ani=reg_ani, reg_budi=reg_budi,
    )


def add_documents(db, registration, steps=(1, 2, 3), status=models.DocumentStatus.DIVALIDASI):
    """Insert one document per kind of the given steps."""
    docs = []
    for step in steps:
        for kind in kinds_for_step(step):
            docs.append(models.SeminarDocument(
                kind=kind.value,
                link=f"https://drive.example.com/{kind.value.lower()}",
                status=status,
                nim=registration.nim,
                registration_id=registration.id,
            ))
    db.add_all(docs)
    db.commit()
    return docs


def add_daily_reports(db, nim, count, status=models.DailyReportStatus.DISETUJUI):
    today = today_local()
    db.add_all([
        models.DailyReport(nim=nim, report_date=today - timedelta(days=i + 1), status=status)
        for i in range(count)
    ])
    db.commit()


def make_eligible(db, registration, reports=23):
    """Satisfy the guidance, daily report and institution grade requirements."""
    db.add_all([
        models.GuidanceSession(
            nim=registration.nim, nip=registration.supervisor_nip,
            registration_id=registration.id, note=f"session {i}",
        )
        for i in range(5)
    ])
    db.add(models.Grade(nim=registration.nim, registration_id=registration.id, institution_score=90.0))
    db.commit()
    add_daily_reports(db, registration.nim, reports)


def add_past_schedule(db, registration, examiner_nip, room="R1", hours_ago=2):
    """Insert a seminar that already started, bypassing the booking rules."""
    start = now_local().replace(microsecond=0) - timedelta(hours=hours_ago)
    schedule = models.Schedule(
        seminar_date=start.date(),
        start_time=start,
        end_time=start + timedelta(hours=1),
        nim=registration.nim,
        room_name=room,
        registration_id=registration.id,
    )
    registration.examiner_nip = examiner_nip
    db.add_all([schedule, registration])
    db.commit()
    db.refresh(schedule)
    return schedule

