"""
Unit tests for event validation and payload schemas.
"""
from __future__ import annotations

import pytest

from apps.notifier.validation import validate_event
from packages.shared.errors import InvalidEvent
from packages.shared.models import NotificationKind
from packages.shared.schema_validator import missing_payload_schemas, validate_payload
from tests.fixtures.notify_fixtures import make_event


def test_every_kind_has_a_payload_schema():
    assert missing_payload_schemas() == []


@pytest.mark.parametrize("kind", [k.value for k in NotificationKind])
def test_sample_events_are_valid(kind):
    event = validate_event(make_event(kind))
    assert event.kind.value == kind
    assert event.patient.hospital_number == "HN000123"


def test_empty_hospital_number_rejected():
    raw = make_event()
    raw["patient"]["hospital_number"] = "  "
    with pytest.raises(InvalidEvent) as excinfo:
        validate_event(raw)
    assert "patient.hospital_number: required" in excinfo.value.errors


def test_missing_actor_is_accepted():
    raw = make_event()
    del raw["actor"]
    event = validate_event(raw)
    assert event.actor.id == ""
    assert event.actor.display_name == ""


def test_unknown_kind_rejected():
    with pytest.raises(InvalidEvent):
        validate_event(make_event(kind="appointment_created") | {"kind": "discharge_summary"})


def test_all_problems_reported_together():
    raw = make_event("appointment_created")
    raw["patient"]["hospital_number"] = ""
    raw["payload"] = {"doctor": "Dr. Somchai"}
    with pytest.raises(InvalidEvent) as excinfo:
        validate_event(raw)
    errors = excinfo.value.errors
    assert "patient.hospital_number: required" in errors
    assert any("'date' is a required property" in e for e in errors)
    assert any("'time' is a required property" in e for e in errors)


def test_payload_type_errors_carry_a_path():
    ok, errors = validate_payload(
        NotificationKind.RECORD_UPDATED,
        {"record_type": "lab_result", "message": "ok", "lab_results": [{"test": "HbA1c", "value": []}]},
    )
    assert not ok
    assert errors[0].startswith("payload.lab_results.0.value:")


def test_queue_status_requires_status():
    ok, errors = validate_payload(NotificationKind.QUEUE_STATUS_CHANGED, {"queue_number": "A1"})
    assert not ok
    assert errors == ["payload: 'status' is a required property"]
