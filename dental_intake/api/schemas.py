"""Pydantic schemas for the FastAPI endpoints.

Responses reuse the intake models directly; only request bodies and the
small envelope types are declared here.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from dental_intake.intake.models import IntakeStatus


class CreateSessionRequest(BaseModel):
    business_id: str = Field(..., min_length=1, max_length=100, description="Practice (tenant) id")
    patient_id: str | None = Field(None, max_length=100)


class MessageRequest(BaseModel):
    """Incoming patient message from the frontend."""

    message: str = Field(..., min_length=1, max_length=2000, description="The patient's message")


class SelectDentistRequest(BaseModel):
    dentist_id: str = Field(..., min_length=1, max_length=100)


class AbandonRequest(BaseModel):
    current_status: IntakeStatus = Field(
        ..., description="The step the patient was on when they left",
    )


class CompleteRequest(BaseModel):
    appointment_id: str = Field(..., min_length=1, max_length=100)


class AbandonResponse(BaseModel):
    success: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "dental-intake-agent"
