from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import AuthError
from .config import get_settings
from .engine import ErrorEnvelope, error_response
from .routers import auth as auth_router
from .routers import chat as chat_router
from .routers import logs as logs_router
from .routers import settings as settings_router
from .routers import validate as validate_router
from .storage import kv_store
from .trigger_catalog import TriggerLoadError, load_builtin_triggers
from .validation import ValidationError

logger = logging.getLogger("onyxgpt")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the key-value store on startup."""
    kv_store.init_db()
    yield


app = FastAPI(title="OnyxGPT Core", version="0.1.0", lifespan=lifespan)


# CORS: controlled by env CORS_ORIGINS (e.g. * or http://localhost:5173)
_cors_origins_list = [o.strip() for o in get_settings().cors_origins.strip().split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(validate_router.router)
app.include_router(chat_router.router)
app.include_router(settings_router.router)
app.include_router(logs_router.router)
app.include_router(auth_router.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.monotonic()
    response = await call_next(request)
    latency_ms = (time.monotonic() - start) * 1000.0
    logger.info(
        "request method=%s path=%s status=%s latency_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response


@app.exception_handler(ErrorEnvelope)
async def handle_error_envelope(request: Request, exc: ErrorEnvelope) -> JSONResponse:
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return error_response(422, "VALIDATION_ERROR", str(exc), exc.errors)


@app.exception_handler(AuthError)
async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
    return error_response(401, "UNAUTHORIZED", str(exc))


@app.get("/")
async def root() -> Dict[str, Any]:
    """
    Service metadata endpoint.
    """
    return {
        "service": get_settings().service_name,
        "docs": "/docs",
        "health": "/health",
        "logs": "/logs",
    }


@app.get("/health")
async def health() -> JSONResponse:
    """
    Simple health check. Returns 200 when the trigger catalog loads and the
    store is reachable.
    """
    try:
        triggers = load_builtin_triggers()
        kv_store.init_db()
    except TriggerLoadError as exc:
        return error_response(500, "INTERNAL_ERROR", str(exc))

    settings = get_settings()
    payload = {
        "status": "ok",
        "provider": settings.provider_name,
        "builtin_triggers": len(triggers),
    }
    return JSONResponse(status_code=200, content=payload)


def get_app() -> FastAPI:
    """Convenience accessor for external runners."""
    return app
