"""
Central document-artifact registry for the orchestrator, API, and tests.
"""
from __future__ import annotations

from collections.abc import Iterable

from packages.shared.models.enums import NotificationKind

ARTIFACT_MIME_TYPE = "application/pdf"
ARTIFACT_EXTENSION = "pdf"

# Kinds that produce a document alongside the notification.
DOCUMENT_KINDS: tuple[NotificationKind, ...] = (
    NotificationKind.APPOINTMENT_CREATED,
    NotificationKind.RECORD_UPDATED,
    NotificationKind.PATIENT_REGISTERED,
)

DOCUMENT_TITLES: dict[NotificationKind, str] = {
    NotificationKind.APPOINTMENT_CREATED: "Appointment Confirmation",
    NotificationKind.RECORD_UPDATED: "Clinical Record Update",
    NotificationKind.PATIENT_REGISTERED: "Patient Registration Record",
}


def warrants_document(kind: NotificationKind) -> bool:
    return kind in DOCUMENT_KINDS


def document_title(kind: NotificationKind) -> str:
    return DOCUMENT_TITLES.get(kind, kind.value.replace("_", " ").title())


def missing_document_titles(kinds: Iterable[NotificationKind] = DOCUMENT_KINDS) -> list[NotificationKind]:
    return [kind for kind in kinds if kind not in DOCUMENT_TITLES]
