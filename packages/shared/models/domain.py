from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import Channel, DeliveryStatus, NotificationKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PatientRef(BaseModel):
    hospital_number: str = ""
    national_id: Optional[str] = None
    display_name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None


class Actor(BaseModel):
    id: str = ""
    display_name: str = ""


class NotificationEvent(BaseModel):
    """A single clinical occurrence submitted to the orchestrator."""
    kind: NotificationKind
    patient: PatientRef
    payload: dict[str, Any] = Field(default_factory=dict)
    actor: Actor = Field(default_factory=Actor)
    occurred_at: datetime = Field(default_factory=utcnow)

    def visit_or_record_id(self) -> Optional[str]:
        for key in ("visit_id", "record_id", "queue_number"):
            value = self.payload.get(key)
            if value not in (None, ""):
                return str(value)
        return None


class NotifyOptions(BaseModel):
    """Per-event channel switches. A disabled channel is not attempted and leaves no record."""
    sms: bool = True
    email: bool = True
    in_app: bool = True
    render_document: bool = True

    def enabled_channels(self) -> list[Channel]:
        flags = {Channel.SMS: self.sms, Channel.EMAIL: self.email, Channel.IN_APP: self.in_app}
        return [channel for channel, enabled in flags.items() if enabled]


class DispatchOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel: Channel
    status: DeliveryStatus
    reason: Optional[str] = None

    @classmethod
    def sent(cls, channel: Channel) -> "DispatchOutcome":
        return cls(channel=channel, status=DeliveryStatus.SENT)

    @classmethod
    def failed(cls, channel: Channel, reason: str) -> "DispatchOutcome":
        return cls(channel=channel, status=DeliveryStatus.FAILED, reason=reason)

    @classmethod
    def skipped(cls, channel: Channel, reason: str) -> "DispatchOutcome":
        return cls(channel=channel, status=DeliveryStatus.SKIPPED, reason=reason)


class NotificationRecord(BaseModel):
    """One channel attempt. Immutable once appended, apart from read_at."""
    model_config = ConfigDict(frozen=True)

    id: str
    event_id: str
    patient_hospital_number: str
    event_kind: NotificationKind
    channel: Channel
    status: DeliveryStatus
    reason: Optional[str] = None
    sent_at: datetime
    read_at: Optional[datetime] = None
    rendered_summary: str = ""
    context: dict[str, Any] = Field(default_factory=dict)


class ArtifactMetadata(BaseModel):
    """Caller-supplied metadata for a new artifact. The id is always generated by the store."""
    patient_hospital_number: str
    kind: NotificationKind
    created_by_actor_id: str
    visit_or_record_id: Optional[str] = None
    event_id: Optional[str] = None
    created_at: Optional[datetime] = None


class DocumentArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    event_id: Optional[str] = None
    patient_hospital_number: str
    visit_or_record_id: Optional[str] = None
    kind: NotificationKind
    created_at: datetime
    created_by_actor_id: str
    byte_size: int = Field(ge=0)
    sha256: str
    content_ref: str


class StoredDocument(BaseModel):
    artifact: DocumentArtifact
    content: bytes


class NotifyResult(BaseModel):
    event_id: str
    records: list[NotificationRecord] = Field(default_factory=list)
    artifact: Optional[DocumentArtifact] = None
    document_error: Optional[str] = None

    def record_for(self, channel: Channel) -> Optional[NotificationRecord]:
        for record in self.records:
            if record.channel == channel:
                return record
        return None

    def status_for(self, channel: Channel) -> Optional[DeliveryStatus]:
        record = self.record_for(channel)
        return record.status if record else None


def as_utc(value: datetime) -> datetime:
    """Normalise to an aware UTC datetime (SQLite hands back naive values)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
