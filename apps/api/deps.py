"""
Shared FastAPI dependencies.
"""
from __future__ import annotations

from fastapi import HTTPException, Request

from apps.notifier.service import NotifierService


def get_service(request: Request) -> NotifierService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Notifier service is not running")
    return service
