# backend/app/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the backend unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///lenspoint.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Booking dates and HH:MM times are wall-clock values in this zone.
    # Stored timestamps stay UTC-naive.
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    # Granularity of discrete slots when a caller asks for stepped slots.
    DEFAULT_SLOT_STEP_MINUTES = int(os.environ.get("DEFAULT_SLOT_STEP_MINUTES", "30"))

    # BK-/TXN- reference generation: fresh suffix per attempt.
    REFERENCE_MAX_ATTEMPTS = int(os.environ.get("REFERENCE_MAX_ATTEMPTS", "10"))

    # Lock-wait / deadlock retries for write transactions.
    WRITE_RETRY_ATTEMPTS = int(os.environ.get("WRITE_RETRY_ATTEMPTS", "5"))
    WRITE_RETRY_BACKOFF = float(os.environ.get("WRITE_RETRY_BACKOFF", "0.1"))
