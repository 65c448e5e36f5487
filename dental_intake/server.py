"""FastAPI server for the dental intake agent.

Run with:
    uvicorn dental_intake.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from dental_intake.api.routes import router
from dental_intake.config import CORS_ORIGINS, DATA_STORE_BACKEND, SERVER_HOST, SERVER_PORT
from dental_intake.intake.service import create_intake_service
from dental_intake.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: build the intake service once and store it in app state."""
    logger.info("Building intake service (data store: %s)…", DATA_STORE_BACKEND)
    application.state.intake_service = create_intake_service()
    logger.info("Intake service ready.")
    yield
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Dental Intake Agent",
    description=(
        "AI-driven patient intake - collects symptoms, assesses urgency "
        "and matches patients with the right dentist."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (needed for the patient-facing frontend) ───────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header so clients can
    reference it in support tickets.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Dental Intake Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting dental intake API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "dental_intake.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
