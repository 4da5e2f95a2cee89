"""
SQLAlchemy ORM models for notifier persistence.
"""
from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class NotificationRecordRow(Base):
    __tablename__ = "notification_records"

    id = Column(String(64), primary_key=True)
    event_id = Column(String(64), nullable=False, index=True)
    patient_hospital_number = Column(String(64), nullable=False)
    event_kind = Column(String(40), nullable=False)
    channel = Column(String(16), nullable=False)  # sms | email | in_app
    status = Column(String(16), nullable=False)  # sent | failed | skipped
    reason = Column(String(500), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    rendered_summary = Column(Text, nullable=False, default="")
    context_json = Column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_notification_records_patient_sent", "patient_hospital_number", "sent_at"),
    )


class DocumentArtifactRow(Base):
    __tablename__ = "document_artifacts"

    id = Column(String(64), primary_key=True)
    event_id = Column(String(64), nullable=True)
    patient_hospital_number = Column(String(64), nullable=False, index=True)
    visit_or_record_id = Column(String(120), nullable=True, index=True)
    kind = Column(String(40), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    created_by_actor_id = Column(String(120), nullable=False)
    byte_size = Column(Integer, nullable=False)
    sha256 = Column(String(64), nullable=False)
    content_ref = Column(String(500), nullable=False)
