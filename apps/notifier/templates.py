"""
Template resolver: one template per (kind, channel) pair, checked exhaustively at construction.

Templates are pure functions of the template context (event payload plus patient,
actor and facility fields added by build_template_context). No I/O happens here.
"""
from __future__ import annotations

import html
import re
from collections.abc import Callable, Mapping
from typing import Any, Optional, Union

from packages.shared.errors import TemplateMissing
from packages.shared.models import Channel, NotificationEvent, NotificationKind, RecordType

TemplateOutput = Union[str, list[str]]
Template = Callable[[Mapping[str, Any]], TemplateOutput]

NOT_PROVIDED = "Not provided"
ELLIPSIS = "…"

RECORD_TYPE_LABELS: dict[str, str] = {
    RecordType.HISTORY_TAKING.value: "history taking",
    RecordType.VITAL_SIGNS.value: "vital signs",
    RecordType.DOCTOR_VISIT.value: "doctor visit",
    RecordType.LAB_RESULT.value: "lab result",
    RecordType.PRESCRIPTION.value: "prescription",
    RecordType.DOCUMENT.value: "medical document",
    RecordType.PATIENT_REGISTRATION.value: "patient registration",
}
DEFAULT_RECORD_LABEL = "medical information"

APPOINTMENT_ADVICE = (
    "Please arrive 15 minutes before your appointment.",
    "Bring your national ID card and any related documents.",
    "If you cannot attend, please let us know in advance.",
)


def record_type_label(record_type: Optional[str]) -> str:
    return RECORD_TYPE_LABELS.get((record_type or "").strip().lower(), DEFAULT_RECORD_LABEL)


def build_template_context(event: NotificationEvent, facility_name: str) -> dict[str, Any]:
    context = dict(event.payload)
    context.update({
        "patient_name": event.patient.display_name or event.patient.hospital_number,
        "hospital_number": event.patient.hospital_number,
        "actor_name": event.actor.display_name or event.actor.id,
        "facility_name": facility_name,
        "occurred_at": event.occurred_at.isoformat(),
    })
    return context


def _text(ctx: Mapping[str, Any], key: str, default: str = "") -> str:
    value = ctx.get(key)
    if value is None:
        return default
    value = str(value).strip()
    return value or default


def _clause(template: str, ctx: Mapping[str, Any], *keys: str) -> Optional[str]:
    values = {k: _text(ctx, k) for k in keys}
    if not all(values.values()):
        return None
    return template.format(**values)


def fit_sms(clauses: list[str], limit: int) -> str:
    """
    Join clauses (most essential first) and drop trailing clauses until the text fits.
    A single over-long clause is cut and ends with an ellipsis.
    """
    kept = [c.strip() for c in clauses if c and c.strip()]
    while len(kept) > 1 and len(" ".join(kept)) > limit:
        kept.pop()
    text = " ".join(kept)
    if len(text) > limit:
        text = text[: limit - 1].rstrip() + ELLIPSIS
    return text


def _one_sentence(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


# ── SMS ──────────────────────────────────────────────────────────────────────

def _sms_appointment(ctx: Mapping[str, Any]) -> list[str]:
    return [
        f"{_text(ctx, 'facility_name')}: {_text(ctx, 'patient_name')}, your appointment with "
        f"{_text(ctx, 'doctor')} is on {_text(ctx, 'date')} at {_text(ctx, 'time')}.",
        _clause("Queue no. {queue_number}.", ctx, "queue_number"),
        _clause("Department: {department}.", ctx, "department"),
        _clause("Estimated wait {estimated_wait_minutes} min.", ctx, "estimated_wait_minutes"),
        "Please arrive 15 minutes early.",
    ]


def _sms_record_update(ctx: Mapping[str, Any]) -> list[str]:
    label = record_type_label(_text(ctx, "record_type"))
    return [
        f"{_text(ctx, 'facility_name')}: your {label} record was updated, {_text(ctx, 'patient_name')}.",
        _clause("Recorded by {actor_name}.", ctx, "actor_name"),
        _clause("{message}", ctx, "message"),
    ]


def _sms_registration(ctx: Mapping[str, Any]) -> list[str]:
    return [
        f"{_text(ctx, 'facility_name')}: welcome {_text(ctx, 'patient_name')}. "
        f"Your hospital number (HN) is {_text(ctx, 'hospital_number')}.",
        _clause("Department: {department}.", ctx, "department"),
        "Please keep this number for future visits.",
    ]


def _sms_queue_status(ctx: Mapping[str, Any]) -> list[str]:
    return [
        f"{_text(ctx, 'facility_name')}: queue no. {_text(ctx, 'queue_number')} "
        f"is now {_text(ctx, 'status')}.",
        _clause("Position: {current_position}.", ctx, "current_position"),
        _clause("Estimated wait {estimated_wait_minutes} min.", ctx, "estimated_wait_minutes"),
        _clause("Doctor: {doctor}.", ctx, "doctor"),
    ]


# ── E-mail ───────────────────────────────────────────────────────────────────

def _email_html(
    ctx: Mapping[str, Any],
    title: str,
    intro: str,
    rows: list[tuple[str, str]],
    advice: tuple[str, ...] = (),
) -> str:
    esc = html.escape
    facility = esc(_text(ctx, "facility_name"))
    row_html = "\n".join(
        f"        <tr><th>{esc(label)}</th><td>{esc(value or NOT_PROVIDED)}</td></tr>"
        for label, value in rows
    )
    parts = [
        "<!DOCTYPE html>",
        "<html>",
        "<head><meta charset=\"utf-8\"><title>" + esc(title) + "</title></head>",
        "<body>",
        f"  <h1>{facility}</h1>",
        f"  <h2>{esc(title)}</h2>",
        f"  <p>Dear {esc(_text(ctx, 'patient_name'))},</p>",
        f"  <p>{esc(intro)}</p>",
        "  <table>",
        row_html,
        "  </table>",
    ]
    if advice:
        parts.append("  <ul>")
        parts.extend(f"    <li>{esc(line)}</li>" for line in advice)
        parts.append("  </ul>")
    parts.extend([
        f"  <p class=\"footer\">{facility} | Electronic Medical Record System</p>",
        f"  <p class=\"footer\">Sent on behalf of {esc(_text(ctx, 'actor_name', _text(ctx, 'facility_name')))}</p>",
        "</body>",
        "</html>",
    ])
    return "\n".join(parts)


def _email_appointment(ctx: Mapping[str, Any]) -> str:
    return _email_html(
        ctx,
        "Appointment Confirmation",
        "A new appointment has been booked for you.",
        [
            ("Hospital number", _text(ctx, "hospital_number")),
            ("Queue number", _text(ctx, "queue_number")),
            ("Doctor", _text(ctx, "doctor")),
            ("Department", _text(ctx, "department")),
            ("Treatment type", _text(ctx, "treatment_type")),
            ("Date", _text(ctx, "date")),
            ("Time", _text(ctx, "time")),
            ("Estimated wait (minutes)", _text(ctx, "estimated_wait_minutes")),
            ("Symptoms", _text(ctx, "symptoms")),
            ("Notes", _text(ctx, "notes")),
        ],
        advice=APPOINTMENT_ADVICE,
    )


def _email_record_update(ctx: Mapping[str, Any]) -> str:
    label = record_type_label(_text(ctx, "record_type"))
    return _email_html(
        ctx,
        f"Medical Record Update: {label.title()}",
        _text(ctx, "message"),
        [
            ("Hospital number", _text(ctx, "hospital_number")),
            ("Record type", label),
            ("Record id", _text(ctx, "record_id")),
            ("Chief complaint", _text(ctx, "chief_complaint")),
            ("Recorded by", _text(ctx, "actor_name")),
            ("Recorded at", _text(ctx, "recorded_at") or _text(ctx, "occurred_at")),
        ],
    )


def _email_registration(ctx: Mapping[str, Any]) -> str:
    return _email_html(
        ctx,
        "Welcome to the EMR System",
        "Your registration is complete. Please keep your hospital number for future visits.",
        [
            ("Hospital number", _text(ctx, "hospital_number")),
            ("Department", _text(ctx, "department")),
            ("Registered at", _text(ctx, "registered_at") or _text(ctx, "occurred_at")),
            ("Registered by", _text(ctx, "actor_name")),
        ],
    )


def _email_queue_status(ctx: Mapping[str, Any]) -> str:
    return _email_html(
        ctx,
        "Queue Status Update",
        f"Your queue status is now {_text(ctx, 'status')}.",
        [
            ("Queue number", _text(ctx, "queue_number")),
            ("Status", _text(ctx, "status")),
            ("Current position", _text(ctx, "current_position")),
            ("Estimated wait (minutes)", _text(ctx, "estimated_wait_minutes")),
            ("Doctor", _text(ctx, "doctor")),
            ("Department", _text(ctx, "department")),
        ],
    )


# ── In-app ───────────────────────────────────────────────────────────────────

def _in_app_appointment(ctx: Mapping[str, Any]) -> str:
    queue = _text(ctx, "queue_number")
    queue_part = f" (queue no. {queue})" if queue else ""
    return (
        f"Appointment with {_text(ctx, 'doctor')} on {_text(ctx, 'date')} "
        f"at {_text(ctx, 'time')}{queue_part}."
    )


def _in_app_record_update(ctx: Mapping[str, Any]) -> str:
    label = record_type_label(_text(ctx, "record_type"))
    actor = _text(ctx, "actor_name")
    by_part = f" by {actor}" if actor else ""
    return f"{label.capitalize()} updated{by_part}: {_text(ctx, 'message')}"


def _in_app_registration(ctx: Mapping[str, Any]) -> str:
    return f"Registered with hospital number {_text(ctx, 'hospital_number')}."


def _in_app_queue_status(ctx: Mapping[str, Any]) -> str:
    return f"Queue no. {_text(ctx, 'queue_number')} is now {_text(ctx, 'status')}."


# ── Subjects ─────────────────────────────────────────────────────────────────

def _subject_appointment(ctx: Mapping[str, Any]) -> str:
    queue = _text(ctx, "queue_number")
    return f"New appointment - queue no. {queue}" if queue else f"New appointment with {_text(ctx, 'doctor')}"


def _subject_record_update(ctx: Mapping[str, Any]) -> str:
    return f"Medical record update - {record_type_label(_text(ctx, 'record_type'))}"


def _subject_registration(ctx: Mapping[str, Any]) -> str:
    return f"Welcome to the EMR system - HN {_text(ctx, 'hospital_number')}"


def _subject_queue_status(ctx: Mapping[str, Any]) -> str:
    return f"Queue status update - queue no. {_text(ctx, 'queue_number')}"


DEFAULT_TEMPLATES: dict[tuple[NotificationKind, Channel], Template] = {
    (NotificationKind.APPOINTMENT_CREATED, Channel.SMS): _sms_appointment,
    (NotificationKind.APPOINTMENT_CREATED, Channel.EMAIL): _email_appointment,
    (NotificationKind.APPOINTMENT_CREATED, Channel.IN_APP): _in_app_appointment,
    (NotificationKind.RECORD_UPDATED, Channel.SMS): _sms_record_update,
    (NotificationKind.RECORD_UPDATED, Channel.EMAIL): _email_record_update,
    (NotificationKind.RECORD_UPDATED, Channel.IN_APP): _in_app_record_update,
    (NotificationKind.PATIENT_REGISTERED, Channel.SMS): _sms_registration,
    (NotificationKind.PATIENT_REGISTERED, Channel.EMAIL): _email_registration,
    (NotificationKind.PATIENT_REGISTERED, Channel.IN_APP): _in_app_registration,
    (NotificationKind.QUEUE_STATUS_CHANGED, Channel.SMS): _sms_queue_status,
    (NotificationKind.QUEUE_STATUS_CHANGED, Channel.EMAIL): _email_queue_status,
    (NotificationKind.QUEUE_STATUS_CHANGED, Channel.IN_APP): _in_app_queue_status,
}

DEFAULT_SUBJECTS: dict[NotificationKind, Callable[[Mapping[str, Any]], str]] = {
    NotificationKind.APPOINTMENT_CREATED: _subject_appointment,
    NotificationKind.RECORD_UPDATED: _subject_record_update,
    NotificationKind.PATIENT_REGISTERED: _subject_registration,
    NotificationKind.QUEUE_STATUS_CHANGED: _subject_queue_status,
}


class TemplateResolver:
    """Resolves (kind, channel, context) to channel-shaped text."""

    def __init__(
        self,
        templates: Optional[Mapping[tuple[NotificationKind, Channel], Template]] = None,
        subjects: Optional[Mapping[NotificationKind, Callable[[Mapping[str, Any]], str]]] = None,
        sms_max_length: int = 320,
    ):
        self._templates = dict(DEFAULT_TEMPLATES if templates is None else templates)
        self._subjects = dict(DEFAULT_SUBJECTS if subjects is None else subjects)
        self.sms_max_length = sms_max_length
        self.validate()

    def validate(self) -> None:
        missing = [
            f"{kind.value}/{channel.value}"
            for kind in NotificationKind
            for channel in Channel
            if (kind, channel) not in self._templates
        ]
        missing.extend(f"{kind.value}/subject" for kind in NotificationKind if kind not in self._subjects)
        if missing:
            raise TemplateMissing(f"No template registered for: {', '.join(missing)}")

    def resolve(self, kind: NotificationKind, channel: Channel, context: Mapping[str, Any]) -> str:
        output = self._templates[(kind, channel)](context)
        if channel == Channel.SMS:
            clauses = output if isinstance(output, list) else [output]
            return fit_sms(clauses, self.sms_max_length)
        if channel == Channel.IN_APP:
            return _one_sentence(output if isinstance(output, str) else " ".join(c for c in output if c))
        return output if isinstance(output, str) else "\n".join(c for c in output if c)

    def subject(self, kind: NotificationKind, context: Mapping[str, Any]) -> str:
        return _one_sentence(self._subjects[kind](context))
