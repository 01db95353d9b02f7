# backend/repairdesk/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/repairdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///repairdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fernet key (urlsafe base64, 32 bytes) used to encrypt payment processor
    # secrets at rest. Generate one with: flask security generate-key
    CREDENTIALS_ENCRYPTION_KEY = os.environ.get("CREDENTIALS_ENCRYPTION_KEY")

    # Webhook trial verification bounds
    WEBHOOK_CANDIDATE_TIMEOUT_SECONDS = float(os.environ.get("WEBHOOK_CANDIDATE_TIMEOUT_SECONDS", "2.0"))
    WEBHOOK_SIGNATURE_TOLERANCE_SECONDS = int(os.environ.get("WEBHOOK_SIGNATURE_TOLERANCE_SECONDS", "300"))

    # When False, any known status may follow any other (free-form status buttons)
    TICKET_STRICT_TRANSITIONS = _env_bool("TICKET_STRICT_TRANSITIONS", False)

    DEFAULT_WARRANTY_DAYS = int(os.environ.get("DEFAULT_WARRANTY_DAYS", "30"))

    # Used to build customer tracking links in outbound emails
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    }
