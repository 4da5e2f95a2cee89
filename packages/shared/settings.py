"""
Runtime settings for the notifier, read from the environment.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_optional_env(name: str) -> Optional[str]:
    raw = os.getenv(name, "").strip()
    return raw or None


def normalize_database_url(url: str) -> str:
    # Render (and Heroku) provide postgres:// but SQLAlchemy 2.0 requires postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


class NotifierSettings(BaseModel):
    database_url: str = "sqlite:///./data/emr_notify.db"
    data_dir: Path = Path("./data")
    facility_name: str = "General Hospital"
    facility_contact: str = "Contact the hospital front desk"
    sms_max_length: int = Field(default=320, ge=40)
    sms_timeout_seconds: float = Field(default=10.0, gt=0)
    email_timeout_seconds: float = Field(default=20.0, gt=0)
    dispatch_workers: int = Field(default=8, ge=1)
    event_bus_queue_size: int = Field(default=256, ge=1)
    sms_gateway_url: Optional[str] = None
    email_gateway_url: Optional[str] = None
    sms_gateway_token: Optional[str] = None
    email_gateway_token: Optional[str] = None
    sql_echo: bool = False

    @classmethod
    def from_env(cls) -> "NotifierSettings":
        return cls(
            database_url=normalize_database_url(
                os.environ.get("DATABASE_URL", "sqlite:///./data/emr_notify.db")
            ),
            data_dir=Path(os.environ.get("DATA_DIR", "./data")),
            facility_name=os.getenv("FACILITY_NAME", "General Hospital"),
            facility_contact=os.getenv("FACILITY_CONTACT", "Contact the hospital front desk"),
            sms_max_length=int(os.getenv("SMS_MAX_LENGTH", "320")),
            sms_timeout_seconds=float(os.getenv("SMS_TIMEOUT_SECONDS", "10")),
            email_timeout_seconds=float(os.getenv("EMAIL_TIMEOUT_SECONDS", "20")),
            dispatch_workers=int(os.getenv("DISPATCH_WORKERS", "8")),
            event_bus_queue_size=int(os.getenv("EVENT_BUS_QUEUE_SIZE", "256")),
            sms_gateway_url=_parse_optional_env("SMS_GATEWAY_URL"),
            email_gateway_url=_parse_optional_env("EMAIL_GATEWAY_URL"),
            sms_gateway_token=_parse_optional_env("SMS_GATEWAY_TOKEN"),
            email_gateway_token=_parse_optional_env("EMAIL_GATEWAY_TOKEN"),
            sql_echo=_parse_bool_env("SQL_ECHO", False),
        )
