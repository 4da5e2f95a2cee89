"""
Input validation for notification events.
Rejects events without an identifiable patient or with a payload that does not match its kind.
"""
from __future__ import annotations

from typing import Any, Union

from pydantic import ValidationError

from packages.shared.errors import InvalidEvent
from packages.shared.models import NotificationEvent
from packages.shared.schema_validator import validate_payload


def coerce_event(raw: Union[NotificationEvent, dict[str, Any]]) -> NotificationEvent:
    if isinstance(raw, NotificationEvent):
        return raw
    try:
        return NotificationEvent.model_validate(raw)
    except ValidationError as exc:
        messages = []
        for err in exc.errors():
            where = ".".join(str(p) for p in err.get("loc", ()))
            messages.append(f"{where}: {err.get('msg')}")
        raise InvalidEvent(messages) from exc


def validate_event(raw: Union[NotificationEvent, dict[str, Any]]) -> NotificationEvent:
    """
    Return the validated event or raise InvalidEvent listing every problem found.
    """
    event = coerce_event(raw)
    errors: list[str] = []

    if not (event.patient.hospital_number or "").strip():
        errors.append("patient.hospital_number: required")

    ok, payload_errors = validate_payload(event.kind, event.payload)
    if not ok:
        errors.extend(payload_errors)

    if errors:
        raise InvalidEvent(errors)
    return event
