from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pythonjsonlogger import jsonlogger

from .api import routes_admin
from .auth.routes_auth import router as auth_router
from .auth.seed import seed_admin
from .config import Settings, get_settings
from .database import init_db
from .middleware import GateMiddleware
from .security.errors import GateError
from .security.services import SecurityServices, build_security

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------

_logging_configured = False


def _configure_logging(settings: Settings) -> None:
    """Configure structured JSON logging when log_format=json (default)."""
    global _logging_configured
    if _logging_configured:
        return
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        ))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root.addHandler(handler)
    _logging_configured = True


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    *,
    security: Optional[SecurityServices] = None,
) -> FastAPI:
    """
    Build an app with its own, isolated security registries.

    The sweep threads start with the ASGI lifespan and stop on shutdown,
    so every TestClient used as a context manager cleans up after itself.
    """
    settings = settings or get_settings()
    _configure_logging(settings)

    init_db()
    seed_admin(settings.environment)

    security = security or build_security(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.security.start()
        try:
            yield
        finally:
            app.state.security.stop()

    app = FastAPI(
        title="Gatekeeper",
        version=VERSION,
        description=(
            "Web API backend whose requests pass through a security gate: "
            "per-client rate limiting, JWT validation with revocation, "
            "and per-account brute-force lockout."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.security = security

    @app.exception_handler(GateError)
    async def _gate_error_handler(request: Request, exc: GateError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=exc.headers)

    app.add_middleware(GateMiddleware)

    app.include_router(auth_router)
    app.include_router(routes_admin.router)

    @app.get("/", tags=["meta"])
    def root() -> dict:
        return {"status": "ok", "service": "gatekeeper", "version": VERSION}

    @app.get("/health", tags=["meta"])
    def health() -> dict:
        return {
            "status": "UP",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "security": "ENABLED",
        }

    @app.get("/healthz", tags=["meta"])
    def healthz() -> dict:
        """Lightweight health check for load balancer probes."""
        return {"status": "ok"}

    return app


app = create_app()
