"""
API route: Notifications
"""
from __future__ import annotations

import logging
from typing import Any, Iterator, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from apps.api.deps import get_service
from apps.notifier.event_bus import Subscription
from apps.notifier.service import NotifierService
from packages.shared.errors import InvalidEvent, RecordNotFound, StorageUnavailable
from packages.shared.models import NotificationRecord, NotifyOptions, NotifyResult

router = APIRouter(tags=["notifications"])
logger = logging.getLogger("emrnotify.api")

KEEPALIVE_SECONDS = 15.0


class NotifyRequest(BaseModel):
    event: dict[str, Any]
    options: NotifyOptions = Field(default_factory=NotifyOptions)


class UnreadCountResponse(BaseModel):
    hospital_number: str
    unread: int


@router.post("/notifications/events", response_model=NotifyResult)
def submit_event(req: NotifyRequest, service: NotifierService = Depends(get_service)):
    """Run one clinical event through the notification pipeline."""
    try:
        return service.notify(req.event, options=req.options)
    except InvalidEvent as exc:
        raise HTTPException(status_code=422, detail={"errors": exc.errors})
    except StorageUnavailable as exc:
        logger.error("Event rejected, log unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="Notification log unavailable")


@router.get("/patients/{hospital_number}/notifications", response_model=list[NotificationRecord])
def list_notifications(hospital_number: str, service: NotifierService = Depends(get_service)):
    """Notification history for a patient, newest first."""
    try:
        return service.list_notifications(hospital_number)
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Notification log unavailable")


@router.get("/patients/{hospital_number}/notifications/unread-count", response_model=UnreadCountResponse)
def unread_count(hospital_number: str, service: NotifierService = Depends(get_service)):
    try:
        count = service.count_unread(hospital_number)
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Notification log unavailable")
    return UnreadCountResponse(hospital_number=hospital_number, unread=count)


@router.post("/notifications/{record_id}/read", response_model=NotificationRecord)
def mark_read(record_id: str, service: NotifierService = Depends(get_service)):
    """Acknowledge an in-app notification. Repeated calls keep the first read time."""
    try:
        return service.mark_read(record_id)
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Notification not found")
    except StorageUnavailable:
        raise HTTPException(status_code=503, detail="Notification log unavailable")


def format_sse(record: NotificationRecord) -> str:
    return f"id: {record.id}\nevent: notification\ndata: {record.model_dump_json()}\n\n"


def sse_stream(
    subscription: Subscription,
    hospital_number: Optional[str] = None,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> Iterator[str]:
    """
    Yield server-sent events for in-app records until the subscription closes.
    Idle periods produce comment lines so proxies keep the connection open.
    """
    try:
        yield ": connected\n\n"
        while True:
            record = subscription.get(timeout=keepalive_seconds)
            if record is None:
                if subscription.closed:
                    return
                yield ": keep-alive\n\n"
                continue
            if hospital_number and record.patient_hospital_number != hospital_number:
                continue
            yield format_sse(record)
    finally:
        subscription.close()


@router.get("/notifications/stream")
def stream_notifications(
    hospital_number: Optional[str] = None,
    service: NotifierService = Depends(get_service),
):
    """Live in-app notifications as text/event-stream. Only events published after connecting are sent."""
    subscription = service.subscribe()
    return StreamingResponse(
        sse_stream(subscription, hospital_number),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
