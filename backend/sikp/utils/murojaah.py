"""Client for the external murojaah (prerequisite completion) service."""

from __future__ import annotations

import logging

import requests

from ..config import settings

_LOGGER = logging.getLogger("sikp.murojaah")
SYARAT_SEMINAR_KP = "KP.SEMKP"


def check_murojaah(nim: str) -> bool:
    """Return True when the student has completed the seminar prerequisite.

    Calls `GET {MUROJAAH_API_URL}/mahasiswa/check-murojaah/{nim}?syarat=KP.SEMKP`
    which answers `{response: bool, data: {is_done: bool}}`. When the check
    is disabled by configuration the prerequisite is treated as met. An
    unreachable service or malformed answer counts as not met.
    """
    if not settings.MUROJAAH_CHECK_ENABLED:
        return True
    if not settings.MUROJAAH_API_URL:
        _LOGGER.warning("murojaah check enabled but MUROJAAH_API_URL is not set; nim=%s", nim)
        return False
    url = f"{settings.MUROJAAH_API_URL}/mahasiswa/check-murojaah/{nim}"
    try:
        resp = requests.get(url, params={"syarat": SYARAT_SEMINAR_KP}, timeout=settings.MUROJAAH_TIMEOUT_SECONDS)
        resp.raise_for_status()
        body = resp.json()
    except (requests.RequestException, ValueError) as exc:
        _LOGGER.warning("murojaah check failed nim=%s error=%s", nim, exc)
        return False
    if not isinstance(body, dict) or not body.get("response"):
        return False
    data = body.get("data") or {}
    return bool(data.get("is_done"))
