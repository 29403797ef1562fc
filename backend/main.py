# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
FastAPI application factory.

Responsibilities
----------------
* Build every shared collaborator once from the immutable Settings and keep
  it on ``app.state`` (engine, session factory, identity verifier, password
  hasher, TOTP engine, secret box, email, file storage, audit recorder).
* Register CORS, request logging and the error handlers.
* Mount the feature routers and the /health endpoint.
* Start the daily job scheduler for the lifetime of the app.

Run with::

    uvicorn --factory main:create_app --app-dir backend
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from admin.router import router as admin_router
from audit.recorder import AuditRecorder
from auth.router import router as auth_router
from contracts.router import router as contracts_router
from core.config import Settings, get_settings
from core.email import EmailService
from core.errors import register_exception_handlers
from core.identity import build_identity_verifier
from core.logger import get_logger, logger
from core.security import PasswordHasher, SecretBox, request_ip
from core.totp import TotpEngine
from database import build_engine, build_session_factory, utcnow
from deadlines.router import router as reminders_router
from documents.router import router as documents_router
from documents.storage import LocalFileStorage
from jobs import build_scheduler
from partners.router import router as partners_router


# ---------------------------------------------------------------------------
# Request-logging middleware
# ---------------------------------------------------------------------------
# Logs every inbound request: method, path, client IP, status, latency.
# Sensitive payloads (login, passwords) are NOT echoed – only the URL and
# metadata are recorded.

http_log = get_logger("http")


class _RequestLogMiddleware(BaseHTTPMiddleware):
    """Log method, path, client IP, response status and latency (ms)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        http_log.info(
            "%s %s | client=%s status=%d latency=%.1fms",
            request.method,
            request.url.path,
            request_ip(request),
            response.status_code,
            elapsed_ms,
        )
        return response


@asynccontextmanager
async def _lifespan(app: FastAPI):
    logger.info("Contract Manager service starting up")
    scheduler = None
    if app.state.settings.scheduler_enabled:
        scheduler = build_scheduler(app.state)
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        app.state.engine.dispose()
        logger.info("Contract Manager service shutting down")


def create_app(settings: Optional[Settings] = None, engine=None) -> FastAPI:
    """
    Build the application.  *settings* defaults to the environment /
    ``etc/app.conf``; *engine* lets tests hand in their own database.
    """
    settings = settings or get_settings()
    engine = engine or build_engine(settings.database_url)

    app = FastAPI(title="Contract Manager", version="1.0.0", lifespan=_lifespan)

    state = app.state
    state.settings = settings
    state.clock = utcnow
    state.engine = engine
    state.session_factory = build_session_factory(engine)
    state.identity_verifier = build_identity_verifier(settings)
    state.password_hasher = PasswordHasher(settings.password_hash_rounds)
    state.totp = TotpEngine(settings.totp_issuer)
    state.secret_box = SecretBox(settings.master_encryption_key)
    state.email = EmailService.from_settings(settings)
    state.storage = LocalFileStorage(settings.storage_path)
    state.audit_recorder = AuditRecorder(state.session_factory)

    # -----------------------------------------------------------------------
    # CORS
    # -----------------------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_middleware(_RequestLogMiddleware)

    register_exception_handlers(app)

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(auth_router)
    app.include_router(admin_router)
    app.include_router(partners_router)
    app.include_router(contracts_router)
    app.include_router(reminders_router)
    app.include_router(documents_router)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app
