"""
EMR Notify API - FastAPI application entry point.
"""
from __future__ import annotations

import logging
import os
import sys
import time
import uuid
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from apps.notifier.service import NotifierService


def _parse_csv_env(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return [value.strip() for value in raw.split(",") if value.strip()]


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("emrnotify")

ServiceFactory = Callable[[], NotifierService]


def create_app(service_factory: Optional[ServiceFactory] = None) -> FastAPI:
    """
    Build the application. The service is created on startup and closed on shutdown;
    tests pass a factory that returns an in-memory service.
    """
    app = FastAPI(
        title="EMR Notify API",
        description="Patient notifications and clinical document dispatch",
        version="0.1.0",
    )

    cors_allow_origins = _parse_csv_env(
        "CORS_ALLOW_ORIGINS",
        [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
    )
    audit_logging_enabled = _parse_bool_env("REQUEST_AUDIT_LOGGING", True)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_allow_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
    )

    @app.middleware("http")
    async def request_audit_middleware(request: Request, call_next):
        started = time.perf_counter()
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        if audit_logging_enabled:
            duration_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                "request_audit request_id=%s method=%s path=%s status=%s duration_ms=%s",
                request_id,
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
            )
        return response

    @app.on_event("startup")
    def startup():
        """Build and open the notifier service."""
        logger.info("Starting notifier service...")
        factory = service_factory or NotifierService.from_settings
        app.state.service = factory().open()

    @app.on_event("shutdown")
    def shutdown():
        service = getattr(app.state, "service", None)
        if service is not None:
            service.close()

    # Register routes
    from apps.api.routes.documents import router as docs_router
    from apps.api.routes.notifications import router as notifications_router

    app.include_router(notifications_router)
    app.include_router(docs_router)

    @app.get("/health")
    def health():
        return {"status": "ok", "version": "0.1.0"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("apps.api.main:app", host="0.0.0.0", port=8000, reload=True)
