"""
Notification orchestrator: the single entry point used by clinical workflows.

notify() validates the event, fans SMS and e-mail out concurrently on a worker pool,
renders and stores the event document alongside them, then appends one record per
enabled channel in a single sequential phase and publishes in_app records on the bus.

Only InvalidEvent (nothing dispatched, nothing logged) and StorageUnavailable (the log
accepted none of the event's records) escape to the caller.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any, Optional, Union

from packages.shared.artifacts import warrants_document
from packages.shared.errors import RenderFailure, StorageUnavailable
from packages.shared.ids import new_event_id, new_record_id
from packages.shared.models import (
    ArtifactMetadata,
    Channel,
    DeliveryStatus,
    DispatchOutcome,
    DocumentArtifact,
    NotificationEvent,
    NotificationRecord,
    NotifyOptions,
    NotifyResult,
    OutcomeReason,
    utcnow,
)
from apps.notifier.artifact_store import ArtifactStore
from apps.notifier.channels import (
    ChannelDispatcher,
    DispatchContext,
    EmailDispatcher,
    InAppDispatcher,
    SmsDispatcher,
)
from apps.notifier.event_bus import IN_APP_TOPIC, EventBus
from apps.notifier.gateways import mask_destination
from apps.notifier.log_store import NotificationLogStore
from apps.notifier.render.document_pdf import DocumentRenderer
from apps.notifier.templates import TemplateResolver, build_template_context
from apps.notifier.validation import validate_event

logger = logging.getLogger("emrnotify.orchestrator")

# How often a waiting notify() re-checks its cancel token.
CANCEL_POLL_SECONDS = 0.05


class _DocumentResult:
    def __init__(self, artifact: Optional[DocumentArtifact] = None, error: Optional[str] = None):
        self.artifact = artifact
        self.error = error


class NotificationOrchestrator:
    def __init__(
        self,
        log: NotificationLogStore,
        artifacts: ArtifactStore,
        renderer: DocumentRenderer,
        resolver: TemplateResolver,
        sms: SmsDispatcher,
        email: EmailDispatcher,
        bus: EventBus,
        facility_name: str = "General Hospital",
        max_workers: int = 8,
    ):
        self.log = log
        self.artifacts = artifacts
        self.renderer = renderer
        self.resolver = resolver
        self.bus = bus
        self.facility_name = facility_name
        self.in_app = InAppDispatcher(log)
        self.dispatchers: dict[Channel, ChannelDispatcher] = {
            Channel.SMS: sms,
            Channel.EMAIL: email,
            Channel.IN_APP: self.in_app,
        }
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)

    # ── entry point ──────────────────────────────────────────────────────

    def notify(
        self,
        event: Union[NotificationEvent, dict[str, Any]],
        options: Optional[NotifyOptions] = None,
        cancel: Optional[threading.Event] = None,
    ) -> NotifyResult:
        event = validate_event(event)
        options = options or NotifyOptions()
        event_id = new_event_id()
        enabled = options.enabled_channels()
        context = build_template_context(event, self.facility_name)

        logger.info(
            "Notify %s for HN %s (event %s, channels %s)",
            event.kind.value, event.patient.hospital_number, event_id, ",".join(c.value for c in enabled),
        )

        pending: dict[Future, Channel] = {}
        for channel in (Channel.SMS, Channel.EMAIL):
            if channel in enabled:
                future = self._executor.submit(self._dispatch_external, channel, event, event_id, context)
                pending[future] = channel

        doc_future: Optional[Future] = None
        if options.render_document and warrants_document(event.kind):
            doc_future = self._executor.submit(self._create_document, event, event_id, cancel)

        outcomes = self._await_outcomes(pending, cancel)
        document = self._await_document(doc_future, cancel)

        records, appended = self._append_phase(event, event_id, enabled, outcomes, context, document)

        result = NotifyResult(
            event_id=event_id,
            records=records,
            artifact=document.artifact,
            document_error=document.error,
        )
        if enabled and appended == 0:
            raise StorageUnavailable(f"Notification log rejected every record for event {event_id}")

        in_app_record = result.record_for(Channel.IN_APP)
        if in_app_record is not None and in_app_record.status == DeliveryStatus.SENT:
            self.bus.publish(IN_APP_TOPIC, in_app_record)

        logger.info(
            "Event %s done: %s%s",
            event_id,
            summarize_outcomes(result),
            f", document {document.artifact.id}" if document.artifact else "",
        )
        return result

    # ── fan-out ──────────────────────────────────────────────────────────

    def _dispatch_external(
        self,
        channel: Channel,
        event: NotificationEvent,
        event_id: str,
        context: dict[str, Any],
    ) -> DispatchOutcome:
        destination = event.patient.phone if channel == Channel.SMS else event.patient.email
        subject = self.resolver.subject(event.kind, context) if channel == Channel.EMAIL else ""
        try:
            text = self.resolver.resolve(event.kind, channel, context)
        except Exception as exc:
            logger.exception("Template for %s/%s failed (event %s)", event.kind.value, channel.value, event_id)
            return DispatchOutcome.failed(channel, f"TemplateError: {exc}"[:200])
        dispatch_context = DispatchContext(
            event_id=event_id,
            kind=event.kind,
            hospital_number=event.patient.hospital_number,
            subject=subject,
        )
        return self.dispatchers[channel].send(destination, text, dispatch_context)

    def _await_outcomes(
        self,
        pending: dict[Future, Channel],
        cancel: Optional[threading.Event],
    ) -> dict[Channel, DispatchOutcome]:
        """
        Wait for every channel future. Dispatchers bound their own gateway time, so this only
        needs to watch for cancellation; channels still running when cancelled become skipped.
        """
        outcomes: dict[Channel, DispatchOutcome] = {}
        remaining = set(pending)
        while remaining:
            if cancel is not None and cancel.is_set():
                for future in remaining:
                    future.cancel()
                    channel = pending[future]
                    outcomes[channel] = DispatchOutcome.skipped(channel, OutcomeReason.CANCELLED.value)
                break
            done, remaining = wait(remaining, timeout=CANCEL_POLL_SECONDS, return_when=FIRST_COMPLETED)
            for future in done:
                channel = pending[future]
                try:
                    outcomes[channel] = future.result()
                except Exception as exc:
                    logger.exception("Dispatcher for %s raised", channel.value)
                    outcomes[channel] = DispatchOutcome.failed(channel, f"{type(exc).__name__}: {exc}"[:200])
        return outcomes

    # ── document ─────────────────────────────────────────────────────────

    def _create_document(
        self,
        event: NotificationEvent,
        event_id: str,
        cancel: Optional[threading.Event] = None,
    ) -> _DocumentResult:
        try:
            content = self.renderer.render(event.kind, event.payload, event.patient, event.actor)
        except RenderFailure as exc:
            logger.error("Document render failed for event %s: %s", event_id, exc)
            return _DocumentResult(error=f"RenderFailure: {exc}")
        if cancel is not None and cancel.is_set():
            logger.info("Event %s cancelled before its document was stored", event_id)
            return _DocumentResult(error=OutcomeReason.CANCELLED.value)
        metadata = ArtifactMetadata(
            patient_hospital_number=event.patient.hospital_number,
            kind=event.kind,
            created_by_actor_id=event.actor.id,
            visit_or_record_id=event.visit_or_record_id(),
            event_id=event_id,
        )
        try:
            artifact = self.artifacts.store(content, metadata)
        except StorageUnavailable as exc:
            logger.error("Artifact store unavailable for event %s: %s", event_id, exc)
            return _DocumentResult(error=f"StorageUnavailable: {exc}")
        return _DocumentResult(artifact=artifact)

    def _await_document(self, future: Optional[Future], cancel: Optional[threading.Event]) -> _DocumentResult:
        """
        A document step that has not started is cancelled outright. One already running is
        waited for: it stops before storing, or reports the artifact it has stored.
        """
        if future is None:
            return _DocumentResult()
        while True:
            if cancel is not None and cancel.is_set() and future.cancel():
                return _DocumentResult(error=OutcomeReason.CANCELLED.value)
            try:
                return future.result(timeout=CANCEL_POLL_SECONDS)
            except FuturesTimeout:
                continue
            except Exception as exc:
                logger.exception("Document step crashed")
                return _DocumentResult(error=f"{type(exc).__name__}: {exc}")

    # ── log phase ────────────────────────────────────────────────────────

    def _append_phase(
        self,
        event: NotificationEvent,
        event_id: str,
        enabled: list[Channel],
        outcomes: dict[Channel, DispatchOutcome],
        context: dict[str, Any],
        document: _DocumentResult,
    ) -> tuple[list[NotificationRecord], int]:
        records: list[NotificationRecord] = []
        appended = 0
        hn = event.patient.hospital_number

        for channel in (Channel.SMS, Channel.EMAIL):
            if channel not in enabled:
                continue
            outcome = outcomes[channel]
            summary = self._summary(event, context)
            record = NotificationRecord(
                id=new_record_id(),
                event_id=event_id,
                patient_hospital_number=hn,
                event_kind=event.kind,
                channel=channel,
                status=outcome.status,
                reason=outcome.reason,
                sent_at=utcnow(),
                rendered_summary=summary,
                context={"destination": mask_destination(
                    event.patient.phone if channel == Channel.SMS else event.patient.email
                )},
            )
            if self._safe_append(record):
                appended += 1
            records.append(record)

        if Channel.IN_APP in enabled:
            record, ok = self._dispatch_in_app(event, event_id, context, document)
            if ok:
                appended += 1
            records.append(record)

        return records, appended

    def _dispatch_in_app(
        self,
        event: NotificationEvent,
        event_id: str,
        context: dict[str, Any],
        document: _DocumentResult,
    ) -> tuple[NotificationRecord, bool]:
        summary = self._summary(event, context)
        data: dict[str, Any] = {"payload": dict(event.payload), "actor_id": event.actor.id}
        if document.artifact is not None:
            data["artifact_id"] = document.artifact.id
        dispatch_context = DispatchContext(
            event_id=event_id,
            kind=event.kind,
            hospital_number=event.patient.hospital_number,
            record_id=new_record_id(),
            data=data,
        )
        outcome, record = self.in_app.deliver(event.patient.hospital_number, summary, dispatch_context)
        if outcome.status == DeliveryStatus.SENT:
            return record, True
        # The log refused the sent record; one more try to leave a failed entry behind.
        failed = record.model_copy(update={"id": new_record_id()})
        return failed, self._safe_append(failed)

    def _safe_append(self, record: NotificationRecord) -> bool:
        try:
            self.log.append(record)
        except StorageUnavailable as exc:
            logger.error("Could not append %s record for event %s: %s", record.channel.value, record.event_id, exc)
            return False
        return True

    def _summary(self, event: NotificationEvent, context: dict[str, Any]) -> str:
        return self.resolver.resolve(event.kind, Channel.IN_APP, context)


def summarize_outcomes(result: NotifyResult) -> dict[str, str]:
    return {r.channel.value: r.status.value for r in result.records}
