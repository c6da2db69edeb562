"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    DATABASE_URL: str
    TIMEZONE: str
    MUROJAAH_API_URL: str
    MUROJAAH_CHECK_ENABLED: bool
    MUROJAAH_TIMEOUT_SECONDS: float
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'sikp.db'}")
        self.TIMEZONE = os.getenv("TIMEZONE", "Asia/Jakarta")
        self.MUROJAAH_API_URL = os.getenv("MUROJAAH_API_URL", "").rstrip("/")
        self.MUROJAAH_CHECK_ENABLED = os.getenv("MUROJAAH_CHECK_ENABLED", "true").lower() == "true"
        self.MUROJAAH_TIMEOUT_SECONDS = float(os.getenv("MUROJAAH_TIMEOUT_SECONDS", "5"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.MUROJAAH_TIMEOUT_SECONDS <= 0:
            raise RuntimeError("MUROJAAH_TIMEOUT_SECONDS must be positive")


settings = Settings()
