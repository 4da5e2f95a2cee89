"""
Shared fixtures: notifier services backed by memory or SQLite, with recording gateways.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from apps.notifier.service import NotifierService
from packages.shared.settings import NotifierSettings
from tests.fixtures.notify_fixtures import RecordingEmailGateway, RecordingSmsGateway


@pytest.fixture
def sms_gateway():
    return RecordingSmsGateway()


@pytest.fixture
def email_gateway():
    return RecordingEmailGateway()


@pytest.fixture
def settings(tmp_path: Path) -> NotifierSettings:
    return NotifierSettings(
        database_url=f"sqlite:///{tmp_path / 'notify.db'}",
        data_dir=tmp_path / "data",
        facility_name="Test Hospital",
        sms_timeout_seconds=0.5,
        email_timeout_seconds=0.5,
        dispatch_workers=4,
        event_bus_queue_size=8,
    )


@pytest.fixture
def memory_service(settings, sms_gateway, email_gateway):
    service = NotifierService.in_memory(settings, sms_gateway=sms_gateway, email_gateway=email_gateway)
    with service:
        yield service


@pytest.fixture
def sql_service(settings, sms_gateway, email_gateway):
    service = NotifierService.from_settings(settings, sms_gateway=sms_gateway, email_gateway=email_gateway)
    with service:
        yield service
