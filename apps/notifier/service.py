"""
NotifierService: builds and owns every pipeline component for one process.

Nothing is a module-level singleton; the API constructs one service at startup, the tests
construct one per case, and close() releases the worker pools, the bus and the database.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Optional, Union

from packages.db.database import Database
from packages.shared.artifacts import missing_document_titles
from packages.shared.errors import TemplateMissing
from packages.shared.models import (
    DocumentArtifact,
    NotificationEvent,
    NotificationRecord,
    NotifyOptions,
    NotifyResult,
    StoredDocument,
)
from packages.shared.schema_validator import missing_payload_schemas
from packages.shared.settings import NotifierSettings
from packages.shared.storage import ensure_dirs
from apps.notifier.artifact_store import ArtifactStore, InMemoryArtifactStore, SqlArtifactStore
from apps.notifier.channels import EmailDispatcher, SmsDispatcher
from apps.notifier.event_bus import IN_APP_TOPIC, EventBus, Subscription
from apps.notifier.gateways import (
    EmailGateway,
    HttpEmailGateway,
    HttpSmsGateway,
    LoggingEmailGateway,
    LoggingSmsGateway,
    SmsGateway,
)
from apps.notifier.log_store import InMemoryNotificationLog, NotificationLogStore, SqlNotificationLog
from apps.notifier.orchestrator import NotificationOrchestrator
from apps.notifier.render.document_pdf import DocumentRenderer
from apps.notifier.templates import TemplateResolver

logger = logging.getLogger("emrnotify.service")


def _check_registries() -> None:
    """Fail startup when a kind has no payload schema or a document kind has no title."""
    problems = []
    missing_schemas = missing_payload_schemas()
    if missing_schemas:
        problems.append("payload schemas: " + ", ".join(k.value for k in missing_schemas))
    missing_titles = missing_document_titles()
    if missing_titles:
        problems.append("document titles: " + ", ".join(k.value for k in missing_titles))
    if problems:
        raise TemplateMissing("Missing registrations for " + "; ".join(problems))


class NotifierService:
    def __init__(
        self,
        settings: NotifierSettings,
        log: NotificationLogStore,
        artifacts: ArtifactStore,
        sms_gateway: SmsGateway,
        email_gateway: EmailGateway,
        database: Optional[Database] = None,
        resolver: Optional[TemplateResolver] = None,
        renderer: Optional[DocumentRenderer] = None,
    ):
        _check_registries()
        self.settings = settings
        self.database = database
        self.log = log
        self.artifacts = artifacts
        self.resolver = resolver or TemplateResolver(sms_max_length=settings.sms_max_length)
        self.renderer = renderer or DocumentRenderer(
            facility_name=settings.facility_name,
            facility_contact=settings.facility_contact,
        )
        self.bus = EventBus(queue_size=settings.event_bus_queue_size)
        self.sms = SmsDispatcher(sms_gateway, timeout_seconds=settings.sms_timeout_seconds)
        self.email = EmailDispatcher(email_gateway, timeout_seconds=settings.email_timeout_seconds)
        self.orchestrator = NotificationOrchestrator(
            log=self.log,
            artifacts=self.artifacts,
            renderer=self.renderer,
            resolver=self.resolver,
            sms=self.sms,
            email=self.email,
            bus=self.bus,
            facility_name=settings.facility_name,
            max_workers=settings.dispatch_workers,
        )
        self._opened = False
        self._lock = threading.Lock()

    # ── construction ─────────────────────────────────────────────────────

    @classmethod
    def from_settings(
        cls,
        settings: Optional[NotifierSettings] = None,
        sms_gateway: Optional[SmsGateway] = None,
        email_gateway: Optional[EmailGateway] = None,
    ) -> "NotifierService":
        """Production wiring: SQL log and artifact metadata, PDF bytes on local disk."""
        settings = settings or NotifierSettings.from_env()
        database = Database(settings.database_url, echo=settings.sql_echo)
        if sms_gateway is None:
            sms_gateway = (
                HttpSmsGateway(
                    settings.sms_gateway_url,
                    timeout=settings.sms_timeout_seconds,
                    token=settings.sms_gateway_token,
                )
                if settings.sms_gateway_url
                else LoggingSmsGateway()
            )
        if email_gateway is None:
            email_gateway = (
                HttpEmailGateway(
                    settings.email_gateway_url,
                    timeout=settings.email_timeout_seconds,
                    token=settings.email_gateway_token,
                )
                if settings.email_gateway_url
                else LoggingEmailGateway()
            )
        return cls(
            settings=settings,
            log=SqlNotificationLog(database),
            artifacts=SqlArtifactStore(database, settings.data_dir),
            sms_gateway=sms_gateway,
            email_gateway=email_gateway,
            database=database,
        )

    @classmethod
    def in_memory(
        cls,
        settings: Optional[NotifierSettings] = None,
        sms_gateway: Optional[SmsGateway] = None,
        email_gateway: Optional[EmailGateway] = None,
    ) -> "NotifierService":
        return cls(
            settings=settings or NotifierSettings(),
            log=InMemoryNotificationLog(),
            artifacts=InMemoryArtifactStore(),
            sms_gateway=sms_gateway or LoggingSmsGateway(),
            email_gateway=email_gateway or LoggingEmailGateway(),
        )

    # ── lifecycle ────────────────────────────────────────────────────────

    def open(self) -> "NotifierService":
        with self._lock:
            if self._opened:
                return self
            if self.database is not None:
                ensure_dirs(self.settings.data_dir)
                self.database.open()
            self.log.open()
            self.artifacts.open()
            self._opened = True
        logger.info("Notifier service ready (facility %s)", self.settings.facility_name)
        return self

    def close(self) -> None:
        with self._lock:
            if not self._opened:
                return
            self._opened = False
        self.orchestrator.close()
        self.sms.close()
        self.email.close()
        self.bus.close()
        self.log.close()
        self.artifacts.close()
        if self.database is not None:
            self.database.close()
        logger.info("Notifier service stopped")

    def __enter__(self) -> "NotifierService":
        return self.open()

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ── operations ───────────────────────────────────────────────────────

    def notify(
        self,
        event: Union[NotificationEvent, dict[str, Any]],
        options: Optional[NotifyOptions] = None,
        cancel: Optional[threading.Event] = None,
    ) -> NotifyResult:
        return self.orchestrator.notify(event, options=options, cancel=cancel)

    def list_notifications(self, hospital_number: str) -> list[NotificationRecord]:
        return self.log.list_by_patient(hospital_number)

    def mark_read(self, record_id: str) -> NotificationRecord:
        return self.log.mark_read(record_id)

    def count_unread(self, hospital_number: str) -> int:
        return self.log.count_unread(hospital_number)

    def subscribe(self) -> Subscription:
        return self.bus.subscribe(IN_APP_TOPIC)

    def list_documents_by_patient(self, hospital_number: str) -> list[DocumentArtifact]:
        return self.artifacts.list_by_patient(hospital_number)

    def list_documents_by_visit(self, visit_or_record_id: str) -> list[DocumentArtifact]:
        return self.artifacts.list_by_visit_or_record(visit_or_record_id)

    def get_document(self, artifact_id: str) -> StoredDocument:
        return self.artifacts.get_by_id(artifact_id)

    def delete_document(self, artifact_id: str) -> None:
        self.artifacts.delete(artifact_id)
