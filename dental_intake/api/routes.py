"""FastAPI route definitions for the intake API.

Every ``IntakeFlowService`` method is synchronous (it talks to Supabase and
the Anthropic API), so each handler offloads it with ``asyncio.to_thread``
to keep the event loop free for other requests.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Request

from dental_intake.api.schemas import (
    AbandonRequest,
    AbandonResponse,
    CompleteRequest,
    CreateSessionRequest,
    HealthResponse,
    MessageRequest,
    SelectDentistRequest,
)
from dental_intake.intake.errors import (
    CallerMisuseError,
    SessionNotFoundError,
    UpstreamUnavailableError,
)
from dental_intake.intake.models import (
    IntakeSession,
    IntakeStatistics,
    MatchingResult,
    OperationResult,
    TurnResult,
)
from dental_intake.intake.service import IntakeFlowService

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service(request: Request) -> IntakeFlowService:
    """Retrieve the intake service initialised during the FastAPI lifespan."""
    service = getattr(request.app.state, "intake_service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="The intake service is still starting up. Please try again in a moment.",
        )
    return service


async def _call(http_request: Request, func, *args):
    """Run a blocking service call in a worker thread and map domain errors."""
    request_id = getattr(http_request.state, "request_id", "?")
    try:
        return await asyncio.to_thread(func, *args)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except CallerMisuseError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except UpstreamUnavailableError as e:
        logger.warning("[%s] Upstream unavailable: %s", request_id, e)
        raise HTTPException(
            status_code=502,
            detail="A dependent service is unavailable. Please try again.",
        ) from e
    except Exception as e:
        # Full traceback server-side only.
        logger.exception("[%s] Error processing intake request", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/intake/sessions", response_model=IntakeSession, status_code=201)
async def create_session(body: CreateSessionRequest, http_request: Request):
    service = _get_service(http_request)
    session = await _call(http_request, service.create_session, body.business_id, body.patient_id)
    if session is None:
        raise HTTPException(status_code=502, detail="Could not create intake session.")
    return session


@router.get("/intake/sessions/{session_id}", response_model=IntakeSession)
async def get_session(session_id: str, http_request: Request):
    service = _get_service(http_request)
    session = await _call(http_request, service.get_session, session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Intake session {session_id} not found")
    return session


@router.post("/intake/sessions/{session_id}/messages", response_model=TurnResult)
async def post_message(session_id: str, body: MessageRequest, http_request: Request):
    """Send one patient message and get the assistant's reply plus the next widget."""
    service = _get_service(http_request)
    return await _call(http_request, service.process_patient_message, session_id, body.message)


@router.post("/intake/sessions/{session_id}/matching", response_model=MatchingResult)
async def match_dentists(session_id: str, http_request: Request):
    service = _get_service(http_request)
    result = await _call(http_request, service.perform_dentist_matching, session_id)
    if result is None:
        raise HTTPException(
            status_code=404,
            detail="No dentists could be matched for this session.",
        )
    return result


@router.post("/intake/sessions/{session_id}/selection", response_model=OperationResult)
async def select_dentist(session_id: str, body: SelectDentistRequest, http_request: Request):
    service = _get_service(http_request)
    result = await _call(http_request, service.select_dentist, session_id, body.dentist_id)
    if not result:
        session = await _call(http_request, service.get_session, session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Intake session {session_id} not found")
        if session.status.is_terminal:
            raise HTTPException(
                status_code=409, detail=f"Intake session is already {session.status.value}.",
            )
        raise HTTPException(status_code=502, detail="Could not record dentist selection.")
    return result


@router.post("/intake/sessions/{session_id}/abandon", response_model=AbandonResponse)
async def abandon_intake(session_id: str, body: AbandonRequest, http_request: Request):
    service = _get_service(http_request)
    ok = await _call(http_request, service.abandon_intake, session_id, body.current_status)
    return AbandonResponse(success=ok)


@router.post("/intake/sessions/{session_id}/complete", response_model=OperationResult)
async def complete_intake(session_id: str, body: CompleteRequest, http_request: Request):
    service = _get_service(http_request)
    result = await _call(http_request, service.complete_intake, session_id, body.appointment_id)
    if not result:
        raise HTTPException(status_code=409, detail="Intake session could not be completed.")
    return result


@router.get("/intake/statistics", response_model=IntakeStatistics)
async def intake_statistics(
    business_id: str,
    http_request: Request,
    start: datetime | None = None,
    end: datetime | None = None,
):
    service = _get_service(http_request)
    return await _call(http_request, service.get_intake_statistics, business_id, start, end)
