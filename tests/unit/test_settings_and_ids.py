"""
Unit tests for environment settings and id generation.
"""
from __future__ import annotations

import time
from pathlib import Path

import pytest
from pydantic import ValidationError

from packages.shared.ids import new_artifact_id, new_event_id, new_record_id
from packages.shared.settings import NotifierSettings, normalize_database_url


def test_defaults(monkeypatch):
    for name in ("DATABASE_URL", "DATA_DIR", "SMS_MAX_LENGTH", "SMS_GATEWAY_URL", "SMS_GATEWAY_TOKEN", "SQL_ECHO"):
        monkeypatch.delenv(name, raising=False)
    settings = NotifierSettings.from_env()
    assert settings.sms_max_length == 320
    assert settings.sms_timeout_seconds == 10.0
    assert settings.email_timeout_seconds == 20.0
    assert settings.sms_gateway_url is None
    assert settings.sms_gateway_token is None
    assert settings.sql_echo is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db/emr")
    monkeypatch.setenv("DATA_DIR", "/srv/emr")
    monkeypatch.setenv("SMS_MAX_LENGTH", "160")
    monkeypatch.setenv("SMS_GATEWAY_URL", "  https://sms.example/send ")
    monkeypatch.setenv("SQL_ECHO", "yes")
    monkeypatch.setenv("SMS_GATEWAY_TOKEN", "sms-secret")
    settings = NotifierSettings.from_env()
    assert settings.database_url == "postgresql://u:p@db/emr"
    assert settings.data_dir == Path("/srv/emr")
    assert settings.sms_max_length == 160
    assert settings.sms_gateway_url == "https://sms.example/send"
    assert settings.sql_echo is True
    assert settings.sms_gateway_token == "sms-secret"


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        NotifierSettings(sms_timeout_seconds=0)


def test_normalize_database_url():
    assert normalize_database_url("sqlite:///x.db") == "sqlite:///x.db"
    assert normalize_database_url("postgres://h/db") == "postgresql://h/db"


def test_ids_are_prefixed_unique_and_time_ordered():
    first = new_record_id()
    time.sleep(0.002)
    second = new_record_id()
    assert first.startswith("ntf-") and second.startswith("ntf-")
    assert first < second
    assert new_event_id().startswith("evt-")
    assert new_artifact_id().startswith("doc-")
    assert len({new_record_id() for _ in range(1000)}) == 1000
