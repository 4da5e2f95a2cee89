"""
Notification log: append-only record of every channel attempt.

Two implementations share one contract: an in-memory log for tests and embedding, and a
SQLAlchemy-backed log for production. Both return patient listings newest-first by sent_at,
whatever order the records were appended in.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from packages.db.database import Database
from packages.db.models import NotificationRecordRow
from packages.shared.errors import RecordNotFound, StorageUnavailable
from packages.shared.models import (
    Channel,
    DeliveryStatus,
    NotificationKind,
    NotificationRecord,
    as_utc,
    utcnow,
)

logger = logging.getLogger("emrnotify.log")


def _newest_first(records: list[NotificationRecord]) -> list[NotificationRecord]:
    return sorted(records, key=lambda r: (as_utc(r.sent_at), r.id), reverse=True)


class NotificationLogStore(ABC):

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    @abstractmethod
    def append(self, record: NotificationRecord) -> NotificationRecord:
        """Persist one record. Raises StorageUnavailable when the log cannot be written."""

    @abstractmethod
    def get(self, record_id: str) -> NotificationRecord:
        ...

    @abstractmethod
    def list_by_patient(self, hospital_number: str) -> list[NotificationRecord]:
        ...

    @abstractmethod
    def list_by_event(self, event_id: str) -> list[NotificationRecord]:
        ...

    @abstractmethod
    def mark_read(self, record_id: str, at: Optional[datetime] = None) -> NotificationRecord:
        """
        Set read_at on an in_app record. Idempotent: a second call keeps the first timestamp.
        Raises RecordNotFound for unknown ids and for non in_app records.
        """

    def count_unread(self, hospital_number: str) -> int:
        return sum(
            1
            for r in self.list_by_patient(hospital_number)
            if r.channel == Channel.IN_APP and r.status == DeliveryStatus.SENT and r.read_at is None
        )


class InMemoryNotificationLog(NotificationLogStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, NotificationRecord] = {}

    def append(self, record: NotificationRecord) -> NotificationRecord:
        with self._lock:
            if record.id in self._records:
                raise StorageUnavailable(f"Notification record {record.id} already appended")
            self._records[record.id] = record
        return record

    def get(self, record_id: str) -> NotificationRecord:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    def list_by_patient(self, hospital_number: str) -> list[NotificationRecord]:
        with self._lock:
            matches = [r for r in self._records.values() if r.patient_hospital_number == hospital_number]
        return _newest_first(matches)

    def list_by_event(self, event_id: str) -> list[NotificationRecord]:
        with self._lock:
            matches = [r for r in self._records.values() if r.event_id == event_id]
        return _newest_first(matches)

    def mark_read(self, record_id: str, at: Optional[datetime] = None) -> NotificationRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None or record.channel != Channel.IN_APP:
                raise RecordNotFound(record_id)
            if record.read_at is None:
                record = record.model_copy(update={"read_at": as_utc(at or utcnow())})
                self._records[record_id] = record
            return record


def _row_to_record(row: NotificationRecordRow) -> NotificationRecord:
    return NotificationRecord(
        id=row.id,
        event_id=row.event_id,
        patient_hospital_number=row.patient_hospital_number,
        event_kind=NotificationKind(row.event_kind),
        channel=Channel(row.channel),
        status=DeliveryStatus(row.status),
        reason=row.reason,
        sent_at=as_utc(row.sent_at),
        read_at=as_utc(row.read_at) if row.read_at else None,
        rendered_summary=row.rendered_summary or "",
        context=row.context_json or {},
    )


class SqlNotificationLog(NotificationLogStore):
    def __init__(self, database: Database):
        self.database = database

    def open(self) -> None:
        self.database.open()

    def append(self, record: NotificationRecord) -> NotificationRecord:
        with self.database.session() as session:
            session.add(NotificationRecordRow(
                id=record.id,
                event_id=record.event_id,
                patient_hospital_number=record.patient_hospital_number,
                event_kind=record.event_kind.value,
                channel=record.channel.value,
                status=record.status.value,
                reason=record.reason,
                sent_at=as_utc(record.sent_at),
                read_at=as_utc(record.read_at) if record.read_at else None,
                rendered_summary=record.rendered_summary,
                context_json=record.context or None,
            ))
        logger.debug("Appended %s record %s for HN %s", record.channel.value, record.id, record.patient_hospital_number)
        return record

    def get(self, record_id: str) -> NotificationRecord:
        with self.database.session() as session:
            row = session.get(NotificationRecordRow, record_id)
            if row is None:
                raise RecordNotFound(record_id)
            return _row_to_record(row)

    def list_by_patient(self, hospital_number: str) -> list[NotificationRecord]:
        with self.database.session() as session:
            rows = (
                session.query(NotificationRecordRow)
                .filter(NotificationRecordRow.patient_hospital_number == hospital_number)
                .order_by(NotificationRecordRow.sent_at.desc(), NotificationRecordRow.id.desc())
                .all()
            )
            return [_row_to_record(r) for r in rows]

    def list_by_event(self, event_id: str) -> list[NotificationRecord]:
        with self.database.session() as session:
            rows = (
                session.query(NotificationRecordRow)
                .filter(NotificationRecordRow.event_id == event_id)
                .order_by(NotificationRecordRow.sent_at.desc(), NotificationRecordRow.id.desc())
                .all()
            )
            return [_row_to_record(r) for r in rows]

    def mark_read(self, record_id: str, at: Optional[datetime] = None) -> NotificationRecord:
        with self.database.session() as session:
            row = session.get(NotificationRecordRow, record_id)
            if row is None or row.channel != Channel.IN_APP.value:
                raise RecordNotFound(record_id)
            # Conditional update keeps the first read timestamp under concurrent acknowledgements.
            (
                session.query(NotificationRecordRow)
                .filter(NotificationRecordRow.id == record_id, NotificationRecordRow.read_at.is_(None))
                .update({"read_at": as_utc(at or utcnow())}, synchronize_session=False)
            )
            session.flush()
            session.refresh(row)
            return _row_to_record(row)

    def count_unread(self, hospital_number: str) -> int:
        with self.database.session() as session:
            return (
                session.query(NotificationRecordRow)
                .filter(
                    NotificationRecordRow.patient_hospital_number == hospital_number,
                    NotificationRecordRow.channel == Channel.IN_APP.value,
                    NotificationRecordRow.status == DeliveryStatus.SENT.value,
                    NotificationRecordRow.read_at.is_(None),
                )
                .count()
            )
