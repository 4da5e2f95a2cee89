from .enums import Channel, DeliveryStatus, NotificationKind, OutcomeReason, RecordType
from .domain import (
    Actor,
    ArtifactMetadata,
    DispatchOutcome,
    DocumentArtifact,
    NotificationEvent,
    NotificationRecord,
    NotifyOptions,
    NotifyResult,
    PatientRef,
    StoredDocument,
    as_utc,
    utcnow,
)

__all__ = [
    "Actor",
    "ArtifactMetadata",
    "Channel",
    "DeliveryStatus",
    "DispatchOutcome",
    "DocumentArtifact",
    "NotificationEvent",
    "NotificationKind",
    "NotificationRecord",
    "NotifyOptions",
    "NotifyResult",
    "OutcomeReason",
    "PatientRef",
    "RecordType",
    "StoredDocument",
    "as_utc",
    "utcnow",
]
