"""FastAPI application factory for Warden."""

import json
import logging
import sys
import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from warden.config import settings
from warden.db.session import dispose_db, init_db
from warden.dependencies import get_engine

logger = logging.getLogger("warden")


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record. Messages are escaped, tracebacks inlined."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging() -> None:
    """Route every ``warden.*`` logger to stdout as JSON lines."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonLogFormatter())
    root = logging.getLogger("warden")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags each request with an X-Request-ID and logs its outcome and latency."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_id=%s %s %s -> %d (%.2f ms)",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    configure_logging()
    await init_db()
    policy_engine = get_engine()
    if settings.watch_permissions:
        policy_engine.start_watching()
    logger.info("Warden started (rules v%d)", policy_engine.rules.version)
    yield
    policy_engine.stop_watching()
    await dispose_db()
    logger.info("Warden shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Warden",
        description=(
            "Policy engine for AI agent tool invocations: "
            "allows, denies or asks for confirmation."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    from warden.api.health import router as health_router
    from warden.api.v1.audit import router as audit_router
    from warden.api.v1.policies import router as policies_router
    from warden.api.v1.stats import router as stats_router
    from warden.api.v1.warden import router as warden_router

    app.include_router(health_router)
    app.include_router(warden_router)
    app.include_router(audit_router)
    app.include_router(policies_router)
    app.include_router(stats_router)

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("warden.main:app", host=settings.host, port=settings.port, log_level=settings.log_level)
