"""
Integration tests for NotificationOrchestrator.notify() through a wired NotifierService.
"""
from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from apps.notifier.artifact_store import InMemoryArtifactStore
from apps.notifier.log_store import InMemoryNotificationLog
from apps.notifier.render.document_pdf import DocumentRenderer
from apps.notifier.service import NotifierService
from packages.shared.errors import InvalidEvent, RenderFailure, StorageUnavailable
from packages.shared.models import Channel, DeliveryStatus, NotifyOptions
from tests.fixtures.notify_fixtures import (
    FailingGateway,
    SlowGateway,
    make_event,
)


class _BrokenLog(InMemoryNotificationLog):
    def append(self, record):
        raise StorageUnavailable("log offline")


class _BrokenArtifactStore(InMemoryArtifactStore):
    def store(self, content, metadata):
        raise StorageUnavailable("disk full")


class _FailingRenderer(DocumentRenderer):
    def render(self, kind, payload, patient, actor, generated_at=None):
        raise RenderFailure("layout overflow")


class _CancellingRenderer(DocumentRenderer):
    """Sets the cancel token while the document is being rendered."""

    def __init__(self, cancel: threading.Event):
        super().__init__()
        self.cancel = cancel

    def render(self, kind, payload, patient, actor, generated_at=None):
        content = super().render(kind, payload, patient, actor, generated_at)
        self.cancel.set()
        return content


def _statuses(result) -> dict[str, str]:
    return {r.channel.value: r.status.value for r in result.records}


class TestHappyPath:
    def test_all_channels_sent_and_document_stored(self, memory_service, sms_gateway, email_gateway):
        result = memory_service.notify(make_event())

        assert _statuses(result) == {"sms": "sent", "email": "sent", "in_app": "sent"}
        assert len({r.id for r in result.records}) == 3
        assert all(r.event_id == result.event_id for r in result.records)

        assert result.artifact is not None
        assert result.document_error is None
        assert result.artifact.visit_or_record_id == "V-1001"
        stored = memory_service.get_document(result.artifact.id)
        assert stored.content.startswith(b"%PDF")

        in_app = result.record_for(Channel.IN_APP)
        assert in_app.context["artifact_id"] == result.artifact.id
        assert in_app.context["actor_id"] == "staff-7"
        assert in_app.context["payload"]["doctor"] == "Dr. Somchai"

        assert len(sms_gateway.sent) == 1
        assert len(sms_gateway.sent[0][1]) <= 320
        assert email_gateway.sent[0][1] == "New appointment - queue no. A012"

        logged = memory_service.list_notifications("HN000123")
        assert {r.id for r in logged} == {r.id for r in result.records}

    def test_minimal_appointment_without_actor(self, memory_service):
        result = memory_service.notify({
            "kind": "appointment_created",
            "patient": {"hospital_number": "HN250001", "phone": "0812345678", "email": "a@b.com"},
            "payload": {"doctor": "Dr. A", "date": "2025-09-10", "time": "09:00"},
        })
        assert _statuses(result) == {"sms": "sent", "email": "sent", "in_app": "sent"}
        assert result.artifact is not None
        assert result.artifact.created_by_actor_id == ""
        assert [d.id for d in memory_service.list_documents_by_patient("HN250001")] == [result.artifact.id]
        assert len(memory_service.list_notifications("HN250001")) == 3

    def test_sms_and_email_records_mask_destination(self, memory_service):
        result = memory_service.notify(make_event())
        assert result.record_for(Channel.SMS).context == {"destination": "081***"}
        assert result.record_for(Channel.EMAIL).context == {"destination": "mal***"}

    def test_queue_status_has_no_document(self, memory_service):
        result = memory_service.notify(make_event("queue_status_changed"))
        assert result.artifact is None
        assert result.document_error is None
        assert memory_service.list_documents_by_patient("HN000123") == []

    def test_in_app_published_to_subscribers(self, memory_service):
        subscription = memory_service.subscribe()
        result = memory_service.notify(make_event("record_updated"))
        published = subscription.get(timeout=1.0)
        assert published == result.record_for(Channel.IN_APP)
        assert subscription.get(timeout=0.05) is None
        subscription.close()


class TestChannelOutcomes:
    def test_missing_contacts_are_skipped(self, memory_service, sms_gateway, email_gateway):
        raw = make_event()
        raw["patient"]["phone"] = None
        raw["patient"]["email"] = ""
        result = memory_service.notify(raw)

        assert _statuses(result) == {"sms": "skipped", "email": "skipped", "in_app": "sent"}
        assert result.record_for(Channel.SMS).reason == "NoDestination"
        assert sms_gateway.sent == []
        assert email_gateway.sent == []
        assert len(memory_service.list_notifications("HN000123")) == 3

    def test_disabled_channels_leave_no_record(self, memory_service):
        result = memory_service.notify(make_event(), NotifyOptions(sms=False, email=False, render_document=False))
        assert _statuses(result) == {"in_app": "sent"}
        assert result.artifact is None

    def test_sms_gateway_failure_does_not_block_others(self, settings, email_gateway):
        with NotifierService.in_memory(settings, FailingGateway("carrier down"), email_gateway) as service:
            result = service.notify(make_event())
        assert _statuses(result) == {"sms": "failed", "email": "sent", "in_app": "sent"}
        assert "carrier down" in result.record_for(Channel.SMS).reason
        assert result.artifact is not None

    def test_gateway_timeout_is_bounded(self, settings, email_gateway):
        slow = SlowGateway(delay=10.0)
        with NotifierService.in_memory(settings, slow, email_gateway) as service:
            started = time.monotonic()
            result = service.notify(make_event())
            elapsed = time.monotonic() - started
            slow.release.set()
        assert elapsed < 3.0
        assert result.record_for(Channel.SMS).status == DeliveryStatus.FAILED
        assert result.record_for(Channel.SMS).reason == "Timeout"
        assert result.status_for(Channel.EMAIL) == DeliveryStatus.SENT

    def test_cancellation_skips_pending_channels(self, settings, email_gateway):
        settings = settings.model_copy(update={"sms_timeout_seconds": 10.0})
        slow = SlowGateway(delay=10.0)
        cancel = threading.Event()
        with NotifierService.in_memory(settings, slow, email_gateway) as service:
            threading.Thread(target=lambda: slow.started.wait(2) and cancel.set()).start()
            started = time.monotonic()
            result = service.notify(make_event(), cancel=cancel)
            elapsed = time.monotonic() - started
            slow.release.set()
        assert elapsed < 3.0
        assert result.record_for(Channel.SMS).status == DeliveryStatus.SKIPPED
        assert result.record_for(Channel.SMS).reason == "Cancelled"
        assert result.status_for(Channel.IN_APP) == DeliveryStatus.SENT


class TestFailures:
    def test_invalid_event_has_no_side_effects(self, memory_service, sms_gateway, email_gateway):
        raw = make_event()
        raw["patient"]["hospital_number"] = ""
        with pytest.raises(InvalidEvent):
            memory_service.notify(raw)
        assert sms_gateway.sent == []
        assert email_gateway.sent == []
        assert memory_service.list_notifications("") == []
        assert memory_service.list_documents_by_patient("") == []

    def test_log_unavailable_raises(self, settings, sms_gateway, email_gateway):
        service = NotifierService(
            settings=settings,
            log=_BrokenLog(),
            artifacts=InMemoryArtifactStore(),
            sms_gateway=sms_gateway,
            email_gateway=email_gateway,
        )
        with service:
            with pytest.raises(StorageUnavailable):
                service.notify(make_event())

    def test_artifact_store_failure_is_reported_not_raised(self, settings, sms_gateway, email_gateway):
        service = NotifierService(
            settings=settings,
            log=InMemoryNotificationLog(),
            artifacts=_BrokenArtifactStore(),
            sms_gateway=sms_gateway,
            email_gateway=email_gateway,
        )
        with service:
            result = service.notify(make_event())
        assert result.artifact is None
        assert result.document_error.startswith("StorageUnavailable")
        assert _statuses(result) == {"sms": "sent", "email": "sent", "in_app": "sent"}
        assert "artifact_id" not in result.record_for(Channel.IN_APP).context

    def test_render_failure_skips_document_only(self, settings, sms_gateway, email_gateway):
        service = NotifierService(
            settings=settings,
            log=InMemoryNotificationLog(),
            artifacts=InMemoryArtifactStore(),
            sms_gateway=sms_gateway,
            email_gateway=email_gateway,
            renderer=_FailingRenderer(),
        )
        with service:
            result = service.notify(make_event())
            assert service.list_documents_by_patient("HN000123") == []
        assert result.artifact is None
        assert result.document_error.startswith("RenderFailure")
        assert "layout overflow" in result.document_error
        assert _statuses(result) == {"sms": "sent", "email": "sent", "in_app": "sent"}
        assert "artifact_id" not in result.record_for(Channel.IN_APP).context

    def test_cancel_during_render_stores_no_document(self, settings, sms_gateway, email_gateway):
        cancel = threading.Event()
        service = NotifierService(
            settings=settings,
            log=InMemoryNotificationLog(),
            artifacts=InMemoryArtifactStore(),
            sms_gateway=sms_gateway,
            email_gateway=email_gateway,
            renderer=_CancellingRenderer(cancel),
        )
        with service:
            result = service.notify(make_event(), cancel=cancel)
            assert service.list_documents_by_patient("HN000123") == []
        assert result.artifact is None
        assert result.document_error == "Cancelled"
        assert result.status_for(Channel.IN_APP) == DeliveryStatus.SENT


def test_concurrent_events_get_distinct_ids(memory_service):
    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda _: memory_service.notify(make_event("record_updated")), range(12)))

    event_ids = {r.event_id for r in results}
    record_ids = {rec.id for r in results for rec in r.records}
    assert len(event_ids) == 12
    assert len(record_ids) == 36
    assert len(memory_service.list_notifications("HN000123")) == 36
    assert memory_service.count_unread("HN000123") == 12


class TestSqlBackedService:
    def test_full_flow_persists_records_and_documents(self, sql_service):
        result = sql_service.notify(make_event())

        docs = sql_service.list_documents_by_visit("V-1001")
        assert [d.id for d in docs] == [result.artifact.id]
        assert sql_service.get_document(result.artifact.id).content.startswith(b"%PDF")

        in_app = result.record_for(Channel.IN_APP)
        assert sql_service.count_unread("HN000123") == 1
        read = sql_service.mark_read(in_app.id)
        assert read.read_at is not None
        assert sql_service.mark_read(in_app.id).read_at == read.read_at
        assert sql_service.count_unread("HN000123") == 0

    def test_history_is_newest_first_across_events(self, sql_service):
        first = sql_service.notify(make_event("patient_registered"))
        second = sql_service.notify(make_event("record_updated"))
        history = sql_service.list_notifications("HN000123")
        assert len(history) == 6
        assert history[0].sent_at >= history[-1].sent_at
        assert {r.event_id for r in history[:3]} == {second.event_id}
        assert {r.event_id for r in history[3:]} == {first.event_id}
