"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from meeting_broker.api.v1.router import router as api_router
from meeting_broker.core.config import get_settings
from meeting_broker.core.logging import setup_logging
from meeting_broker.core.middleware import RequestLoggingMiddleware
from meeting_broker.domains.credentials.resolver import select_auth_mode

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info(
        "Starting meeting broker auth_mode=%s use_meet=%s",
        select_auth_mode(settings),
        settings.use_meet,
    )
    if not settings.calendar_id:
        logger.error("CALENDAR_ID is not set; calendar routes will fail until it is configured")
    yield
    logger.info("Shutting down meeting broker...")


app = FastAPI(
    title="Meeting Broker API",
    description="Books sessions on a shared Google Calendar, with optional Meet links",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed requests with the broker's 400 error body."""
    details = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(
            {"detail": {"error": "Invalid request", "code": "VALIDATION_ERROR", "details": details}}
        ),
    )


@app.get("/healthz")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "auth_mode": select_auth_mode(get_settings())}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Meeting Broker API",
        "version": "0.1.0",
        "docs": "/docs",
    }
