"""
Channel dispatchers.

Each dispatcher turns (destination, rendered text, context) into a DispatchOutcome and never
raises. SMS and e-mail run their gateway call on a private executor so the call can be
bounded by a timeout; dispatchers share no mutable state with each other.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from packages.shared.errors import StorageUnavailable
from packages.shared.models import (
    Channel,
    DispatchOutcome,
    NotificationKind,
    NotificationRecord,
    OutcomeReason,
    utcnow,
)
from apps.notifier.gateways import EmailGateway, SmsGateway, mask_destination
from apps.notifier.log_store import NotificationLogStore

logger = logging.getLogger("emrnotify.channels")

MAX_REASON_CHARS = 200


@dataclass(frozen=True)
class DispatchContext:
    event_id: str
    kind: NotificationKind
    hospital_number: str
    subject: str = ""
    record_id: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)


def _diagnostic(exc: BaseException) -> str:
    text = f"{type(exc).__name__}: {exc}".strip()
    return text[:MAX_REASON_CHARS]


class ChannelDispatcher(ABC):
    channel: Channel

    @abstractmethod
    def send(self, destination: Optional[str], text: str, context: DispatchContext) -> DispatchOutcome:
        ...

    def close(self) -> None:
        pass


class GatewayDispatcher(ChannelDispatcher):
    """Shared behaviour for dispatchers that call an external gateway."""

    def __init__(self, timeout_seconds: float, max_workers: int = 4):
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=f"{self.channel.value}-gateway"
        )

    @abstractmethod
    def _call_gateway(self, destination: str, text: str, context: DispatchContext) -> None:
        ...

    def send(self, destination: Optional[str], text: str, context: DispatchContext) -> DispatchOutcome:
        destination = (destination or "").strip()
        if not destination:
            return DispatchOutcome.skipped(self.channel, OutcomeReason.NO_DESTINATION.value)

        try:
            future = self._executor.submit(self._call_gateway, destination, text, context)
            future.result(timeout=self.timeout_seconds)
        except FuturesTimeout:
            future.cancel()
            logger.warning(
                "%s to %s timed out after %.1fs (event %s)",
                self.channel.value, mask_destination(destination), self.timeout_seconds, context.event_id,
            )
            return DispatchOutcome.failed(self.channel, OutcomeReason.TIMEOUT.value)
        except Exception as exc:
            logger.warning(
                "%s to %s failed (event %s): %s",
                self.channel.value, mask_destination(destination), context.event_id, exc,
            )
            return DispatchOutcome.failed(self.channel, _diagnostic(exc))

        logger.info("%s sent to %s (event %s)", self.channel.value, mask_destination(destination), context.event_id)
        return DispatchOutcome.sent(self.channel)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


class SmsDispatcher(GatewayDispatcher):
    channel = Channel.SMS

    def __init__(self, gateway: SmsGateway, timeout_seconds: float = 10.0, max_workers: int = 4):
        self.gateway = gateway
        super().__init__(timeout_seconds, max_workers)

    def _call_gateway(self, destination: str, text: str, context: DispatchContext) -> None:
        self.gateway.send(destination, text)


class EmailDispatcher(GatewayDispatcher):
    channel = Channel.EMAIL

    def __init__(self, gateway: EmailGateway, timeout_seconds: float = 20.0, max_workers: int = 4):
        self.gateway = gateway
        super().__init__(timeout_seconds, max_workers)

    def _call_gateway(self, destination: str, text: str, context: DispatchContext) -> None:
        self.gateway.send(destination, context.subject, text)


class InAppDispatcher(ChannelDispatcher):
    """
    "Sends" by appending the record to the notification log. Fails only when the log does.
    The destination is the patient's hospital number.
    """
    channel = Channel.IN_APP

    def __init__(self, log: NotificationLogStore):
        self.log = log

    def build_record(
        self,
        destination: str,
        text: str,
        context: DispatchContext,
        outcome: DispatchOutcome,
        sent_at: Optional[datetime] = None,
    ) -> NotificationRecord:
        return NotificationRecord(
            id=context.record_id,
            event_id=context.event_id,
            patient_hospital_number=destination,
            event_kind=context.kind,
            channel=self.channel,
            status=outcome.status,
            reason=outcome.reason,
            sent_at=sent_at or utcnow(),
            rendered_summary=text,
            context=dict(context.data),
        )

    def deliver(
        self, destination: Optional[str], text: str, context: DispatchContext
    ) -> tuple[DispatchOutcome, NotificationRecord]:
        """Append the record; returns the outcome and the record as it was (or would have been) written."""
        if not context.record_id:
            raise ValueError("In-app dispatch needs a pre-assigned record id")
        destination = destination or context.hospital_number
        outcome = DispatchOutcome.sent(self.channel)
        record = self.build_record(destination, text, context, outcome)
        try:
            self.log.append(record)
        except StorageUnavailable as exc:
            logger.error("In-app append failed (event %s): %s", context.event_id, exc)
            outcome = DispatchOutcome.failed(self.channel, OutcomeReason.LOG_UNAVAILABLE.value)
            return outcome, self.build_record(destination, text, context, outcome, sent_at=record.sent_at)
        return outcome, record

    def send(self, destination: Optional[str], text: str, context: DispatchContext) -> DispatchOutcome:
        outcome, _ = self.deliver(destination, text, context)
        return outcome

