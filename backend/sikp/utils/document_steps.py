"""Seminar document workflow: kinds, steps and step gating.

The workflow has six ordered steps. Steps 1, 2, 3 and 5 carry document
kinds; step 4 is the seminar itself and step 6 is the terminal state,
so neither has documents of its own.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Iterable, List, Sequence
from urllib.parse import urlparse

STEPS = (1, 2, 3, 4, 5, 6)


class DocumentKind(str, Enum):
    SURAT_KETERANGAN_SELESAI_KP = "SURAT_KETERANGAN_SELESAI_KP"
    FORM_BIMBINGAN = "FORM_BIMBINGAN"
    LAPORAN_KP = "LAPORAN_KP"
    FORM_KEHADIRAN_SEMINAR = "FORM_KEHADIRAN_SEMINAR"
    ID_SURAT_UNDANGAN = "ID_SURAT_UNDANGAN"
    SURAT_UNDANGAN_SEMINAR_HASIL = "SURAT_UNDANGAN_SEMINAR_HASIL"
    BERITA_ACARA_SEMINAR = "BERITA_ACARA_SEMINAR"
    DAFTAR_HADIR_SEMINAR = "DAFTAR_HADIR_SEMINAR"
    LEMBAR_PENGESAHAN_KP = "LEMBAR_PENGESAHAN_KP"
    REVISI_LAPORAN = "REVISI_LAPORAN"
    SISTEM_KP_FINAL = "SISTEM_KP_FINAL"


DOCUMENT_STEPS: Dict[DocumentKind, int] = {
    DocumentKind.SURAT_KETERANGAN_SELESAI_KP: 1,
    DocumentKind.FORM_BIMBINGAN: 1,
    DocumentKind.LAPORAN_KP: 1,
    DocumentKind.FORM_KEHADIRAN_SEMINAR: 1,
    DocumentKind.ID_SURAT_UNDANGAN: 2,
    DocumentKind.SURAT_UNDANGAN_SEMINAR_HASIL: 3,
    DocumentKind.BERITA_ACARA_SEMINAR: 5,
    DocumentKind.DAFTAR_HADIR_SEMINAR: 5,
    DocumentKind.LEMBAR_PENGESAHAN_KP: 5,
    DocumentKind.REVISI_LAPORAN: 5,
    DocumentKind.SISTEM_KP_FINAL: 5,
}

DOCUMENT_STEP_NUMBERS = (1, 2, 3, 5)

# status values as stored on SeminarDocument rows
VALIDATED = "Divalidasi"


def _status(doc) -> str:
    status = doc.status
    return getattr(status, "value", status)


def _kind(doc) -> str:
    kind = doc.kind
    return getattr(kind, "value", kind)


def step_for_document(kind) -> int:
    """Return the step number a document kind belongs to."""
    return DOCUMENT_STEPS[DocumentKind(kind)]


def kinds_for_step(step: int) -> List[DocumentKind]:
    return [k for k, s in DOCUMENT_STEPS.items() if s == step]


def group_by_step(documents: Iterable) -> Dict[str, list]:
    """Bucket documents into `step1`, `step2`, `step3` and `step5`."""
    grouped: Dict[str, list] = {f"step{n}": [] for n in DOCUMENT_STEP_NUMBERS}
    for doc in documents:
        grouped[f"step{step_for_document(_kind(doc))}"].append(doc)
    return grouped


def is_step_complete(step: int, documents: Sequence) -> bool:
    """Policy: a step counts as satisfied when every document kind it
    requires has been submitted and every submitted document of that step
    is validated. Steps without document kinds are always satisfied.
    """
    required = {k.value for k in kinds_for_step(step)}
    if not required:
        return True
    step_docs = [d for d in documents if _kind(d) in required]
    present = {_kind(d) for d in step_docs}
    if present != required:
        return False
    return all(_status(d) == VALIDATED for d in step_docs)


def step_accessible(step: int, documents: Sequence, eligible: bool) -> bool:
    """Return whether a registrant may currently work on `step`.

    Step 1 opens once the registrant is eligible; every later step needs
    the previous one to be both accessible and complete.
    """
    if step not in STEPS:
        return False
    if step == 1:
        return eligible
    return step_accessible(step - 1, documents, eligible) and is_step_complete(step - 1, documents)


def steps_info(documents: Sequence, eligible: bool) -> Dict[str, bool]:
    return {f"step{n}_accessible": step_accessible(n, documents, eligible) for n in STEPS}


def current_step(documents: Iterable) -> int:
    """Highest step the registrant has any document for; 1 when none."""
    steps = [step_for_document(_kind(d)) for d in documents]
    return max(steps, default=1)


def validate_link(link: str, kind) -> str | None:
    """Return an error message when `link` is not an acceptable document link."""
    if not link or not link.strip():
        return f"link for {DocumentKind(kind).value} is required"
    parsed = urlparse(link.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return f"link for {DocumentKind(kind).value} must be an http(s) URL"
    return None
