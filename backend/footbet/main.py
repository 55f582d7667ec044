"""
backend/footbet/main.py

Purpose:
    FastAPI application bootstrap: logging, database and index setup,
    realtime manager and scheduler lifecycle, middleware, routers, and the
    mapping of domain errors onto HTTP responses.

Dependencies:
    - footbet.database
    - footbet.services.websocket_manager
    - footbet.services.results_service
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, DuplicateKeyError, ServerSelectionTimeoutError

from footbet.config import settings
import footbet.database as _db
from footbet.database import close_db, connect_db
from footbet.errors import FootbetError, ValidationError
from footbet.middleware.logging import StructuredLoggingMiddleware, setup_logging

logger = logging.getLogger("footbet")
scheduler = AsyncIOScheduler()


def _register_jobs() -> None:
    from footbet.services.results_service import settle_recent_days

    if settings.RESULTS_CHECK_ENABLED:
        scheduler.add_job(
            settle_recent_days,
            "interval",
            minutes=settings.RESULTS_CHECK_INTERVAL_MINUTES,
            id="results_checker",
            replace_existing=True,
        )
        logger.info("Results checker scheduled every %d min", settings.RESULTS_CHECK_INTERVAL_MINUTES)
    else:
        logger.info("Results checker disabled via config")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set.")
    await connect_db()

    from footbet.providers.api_football import api_football_provider
    from footbet.services.websocket_manager import websocket_manager

    if not settings.FOOTBALL_API_KEY:
        logger.warning("FOOTBALL_API_KEY is not set; generation runs will fail until it is configured")
    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set; generation runs will fail until it is configured")

    _register_jobs()
    scheduler.start()
    if settings.WS_EVENTS_ENABLED:
        await websocket_manager.start()
    else:
        logger.info("WebSocket realtime manager disabled via config")

    yield

    if settings.WS_EVENTS_ENABLED:
        await websocket_manager.stop()
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await api_football_provider.aclose()
    await close_db()


app = FastAPI(
    title="FootBet-Win",
    description="Football prediction subscriptions with AI-generated daily picks",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)
app.add_middleware(StructuredLoggingMiddleware)

from footbet.routers.admin_predictions import router as admin_predictions_router
from footbet.routers.auth import router as auth_router
from footbet.routers.payments import admin_router as admin_payments_router
from footbet.routers.payments import router as payments_router
from footbet.routers.predictions import router as predictions_router
from footbet.routers.ws import router as ws_router

app.include_router(auth_router)
app.include_router(predictions_router)
app.include_router(payments_router)
app.include_router(admin_predictions_router)
app.include_router(admin_payments_router)
app.include_router(ws_router)


@app.exception_handler(FootbetError)
async def footbet_error_handler(request: Request, exc: FootbetError):
    """Domain failures carry their own status; the message is shown as-is."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    else:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    content = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(InvalidId)
async def invalid_object_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=400, content={"detail": "Invalid ID."})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        field = ".".join(str(part) for part in loc[1:]) if len(loc) > 1 else (str(loc[-1]) if loc else "unknown")
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate entry."})


@app.exception_handler(ServerSelectionTimeoutError)
@app.exception_handler(ConnectionFailure)
async def db_unavailable_handler(request: Request, exc: Exception):
    logger.error("Database unavailable: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Database ping plus fixture-provider circuit state."""
    from footbet.providers.api_football import api_football_provider
    from footbet.services.websocket_manager import websocket_manager

    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "fixture_provider": {"circuit_open": api_football_provider.circuit_open},
        "realtime": websocket_manager.stats(),
    }
