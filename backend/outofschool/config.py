"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    DATABASE_URL: str
    ELASTICSEARCH_URL: str
    ELASTICSEARCH_INDEX: str
    ELASTICSEARCH_TIMEOUT_SECONDS: float
    ELASTICSEARCH_USER: str
    ELASTICSEARCH_PASSWORD: str
    SYNC_ENABLED: bool
    SYNC_INTERVAL_SECONDS: float
    LOG_LEVEL: str
    ALLOW_DEV_CORS: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'outofschool.db'}")
        self.ELASTICSEARCH_URL = os.getenv("ELASTICSEARCH_URL", "http://localhost:9200").rstrip("/")
        self.ELASTICSEARCH_INDEX = os.getenv("ELASTICSEARCH_INDEX", "workshop")
        self.ELASTICSEARCH_TIMEOUT_SECONDS = float(os.getenv("ELASTICSEARCH_TIMEOUT_SECONDS", "5"))
        self.ELASTICSEARCH_USER = os.getenv("ELASTICSEARCH_USER", "")
        self.ELASTICSEARCH_PASSWORD = os.getenv("ELASTICSEARCH_PASSWORD", "")
        self.SYNC_ENABLED = os.getenv("SYNC_ENABLED", "false").lower() == "true"
        self.SYNC_INTERVAL_SECONDS = float(os.getenv("SYNC_INTERVAL_SECONDS", "60"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self._validate()

    def _validate(self):
        if self.ELASTICSEARCH_TIMEOUT_SECONDS <= 0:
            raise RuntimeError("ELASTICSEARCH_TIMEOUT_SECONDS must be positive")
        if self.SYNC_INTERVAL_SECONDS <= 0:
            raise RuntimeError("SYNC_INTERVAL_SECONDS must be positive")
        if not self.ELASTICSEARCH_INDEX or self.ELASTICSEARCH_INDEX != self.ELASTICSEARCH_INDEX.lower():
            raise RuntimeError("ELASTICSEARCH_INDEX must be a non-empty lowercase name")
        if self.ENV != "dev" and self.DATABASE_URL.startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must point at a server database in non-dev environments")


settings = Settings()
