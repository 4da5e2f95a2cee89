"""
Event-specific detail sections, one layout per document kind.

Every row is always emitted; missing values print as "Not provided" so that the layout
stays the same for every document of a kind.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from packages.shared.artifacts import DOCUMENT_KINDS
from packages.shared.errors import TemplateMissing
from packages.shared.models import NotificationKind
from apps.notifier.render.common import NOT_PROVIDED, display, humanize_key
from apps.notifier.templates import APPOINTMENT_ADVICE, record_type_label


@dataclass
class DetailSection:
    title: str
    rows: list[tuple[str, str]] = field(default_factory=list)
    table_header: Optional[list[str]] = None
    table_rows: list[list[str]] = field(default_factory=list)
    bullets: list[str] = field(default_factory=list)


SectionBuilder = Callable[[Mapping[str, Any]], list[DetailSection]]


def _rows(payload: Mapping[str, Any], fields: list[tuple[str, str]]) -> list[tuple[str, str]]:
    return [(label, display(payload.get(key))) for label, key in fields]


def appointment_sections(payload: Mapping[str, Any]) -> list[DetailSection]:
    details = DetailSection(
        title="Appointment Details",
        rows=_rows(payload, [
            ("Doctor", "doctor"),
            ("Department", "department"),
            ("Date", "date"),
            ("Time", "time"),
            ("Queue number", "queue_number"),
            ("Treatment type", "treatment_type"),
            ("Estimated wait (minutes)", "estimated_wait_minutes"),
            ("Patients ahead in queue", "current_queue"),
            ("Symptoms", "symptoms"),
            ("Notes", "notes"),
        ]),
    )
    advice = DetailSection(title="Patient Instructions", bullets=list(APPOINTMENT_ADVICE))
    return [details, advice]


def record_update_sections(payload: Mapping[str, Any]) -> list[DetailSection]:
    sections = [
        DetailSection(
            title="Record Details",
            rows=[("Record type", record_type_label(payload.get("record_type")).title())]
            + _rows(payload, [
                ("Record id", "record_id"),
                ("Visit id", "visit_id"),
                ("Recorded at", "recorded_at"),
                ("Chief complaint", "chief_complaint"),
                ("Summary", "message"),
            ]),
        )
    ]

    vitals = payload.get("vitals") or {}
    vital_rows = [(humanize_key(str(name)), display(value)) for name, value in vitals.items()]
    sections.append(DetailSection(title="Vital Signs", rows=vital_rows or [("Measurements", NOT_PROVIDED)]))

    labs = payload.get("lab_results") or []
    lab_section = DetailSection(title="Laboratory Results", table_header=["Test", "Value", "Unit", "Reference range"])
    for item in labs:
        lab_section.table_rows.append([
            display(item.get("test")),
            display(item.get("value")),
            display(item.get("unit")),
            display(item.get("reference_range")),
        ])
    if not lab_section.table_rows:
        lab_section.table_rows.append([NOT_PROVIDED, NOT_PROVIDED, NOT_PROVIDED, NOT_PROVIDED])
    sections.append(lab_section)
    return sections


def registration_sections(payload: Mapping[str, Any]) -> list[DetailSection]:
    return [
        DetailSection(
            title="Registration Details",
            rows=_rows(payload, [
                ("Department", "department"),
                ("Registered at", "registered_at"),
                ("Notes", "notes"),
            ]),
        )
    ]


SECTION_BUILDERS: dict[NotificationKind, SectionBuilder] = {
    NotificationKind.APPOINTMENT_CREATED: appointment_sections,
    NotificationKind.RECORD_UPDATED: record_update_sections,
    NotificationKind.PATIENT_REGISTERED: registration_sections,
}


def validate_section_builders(builders: Mapping[NotificationKind, SectionBuilder]) -> None:
    missing = [kind.value for kind in DOCUMENT_KINDS if kind not in builders]
    if missing:
        raise TemplateMissing(f"No document layout registered for: {', '.join(missing)}")
