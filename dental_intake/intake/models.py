"""Pydantic models for the AI intake flow.

Everything the intake core reads or writes is declared here: the persisted
``IntakeSession`` record and its typed patch, the request/response shapes
exchanged with the AI backends, the read-only dentist roster, and the
widget/statistics payloads handed back to callers.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


# ── Enums ────────────────────────────────────────────────────────────


class IntakeStatus(str, Enum):
    STARTED = "started"
    COLLECTING_SYMPTOMS = "collecting_symptoms"
    ASSESSING_URGENCY = "assessing_urgency"
    COLLECTING_HISTORY = "collecting_history"
    MATCHING_DENTIST = "matching_dentist"
    SELECTING_APPOINTMENT = "selecting_appointment"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (IntakeStatus.COMPLETED, IntakeStatus.ABANDONED)


class SymptomCategory(str, Enum):
    PAIN = "pain"
    BLEEDING = "bleeding"
    SWELLING = "swelling"
    SENSITIVITY = "sensitivity"
    COSMETIC = "cosmetic"
    BROKEN_TOOTH = "broken_tooth"
    MISSING_TOOTH = "missing_tooth"
    JAW_ISSUES = "jaw_issues"
    GUM_ISSUES = "gum_issues"
    ROUTINE_CHECKUP = "routine_checkup"
    OTHER = "other"


class WidgetType(str, Enum):
    SYMPTOM_SELECTOR = "symptom-selector"
    PAIN_SCALE = "pain-scale"
    URGENCY_ASSESSMENT = "urgency-assessment"
    MEDICAL_HISTORY = "medical-history"
    DENTIST_RECOMMENDATION = "dentist-recommendation"
    APPOINTMENT_CALENDAR = "appointment-calendar"
    TIME_SLOT_SELECTOR = "time-slot-selector"
    CONFIRMATION = "confirmation"


# ── Conversation values ──────────────────────────────────────────────


class Symptom(BaseModel):
    """A symptom the patient reported. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Symptom in the patient's words, e.g. 'aching molar'")
    category: SymptomCategory
    severity: int | None = Field(None, ge=1, le=10)
    duration: str | None = None


class ChatMessage(BaseModel):
    role: Literal["patient", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    # Assistant turns carry what the AI extracted on that turn.
    metadata: dict[str, Any] = Field(default_factory=dict)


class UrgencyAssessment(BaseModel):
    score: int = Field(..., ge=1, le=10)
    level: Literal["low", "medium", "high", "urgent", "emergency"]
    reasoning: str
    requires_immediate_care: bool = False
    recommended_timeframe: str = Field(
        "", description='e.g. "within 24 hours", "within a week"',
    )


class MedicalHistoryUpdate(BaseModel):
    notes: str | None = None
    allergies: list[str] = Field(default_factory=list)
    medications: list[str] = Field(default_factory=list)


# ── Dentist roster (read-only) ───────────────────────────────────────


class DentistSpecialization(BaseModel):
    model_config = ConfigDict(extra="ignore")

    specialization_type: str
    is_primary: bool = False
    proficiency_level: int = 3
    keywords: list[str] = Field(default_factory=list)
    symptom_categories: list[SymptomCategory] = Field(default_factory=list)
    description: str | None = None


class DentistInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    first_name: str
    last_name: str
    email: str = ""
    phone: str | None = None
    avatar_url: str | None = None
    bio: str = ""
    specializations: list[DentistSpecialization] = Field(default_factory=list)
    experience_years: int | None = None
    languages: list[str] = Field(default_factory=lambda: ["English"])
    next_available_slot: str | None = None
    clinic_address: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class SpecializationMatch(BaseModel):
    matched_categories: list[SymptomCategory] = Field(default_factory=list)
    matched_keywords: list[str] = Field(default_factory=list)
    confidence: float = 0


class AvailabilitySummary(BaseModel):
    earliest_slot: str
    total_available_slots: int = 0


class DentistMatchReasoning(BaseModel):
    dentist_id: str
    score: float
    reasoning: str
    highlights: list[str] = Field(default_factory=list)
    specialization_match: SpecializationMatch
    availability: AvailabilitySummary


# ── The persisted session ────────────────────────────────────────────


class IntakeSession(BaseModel):
    """One intake conversation, from first message to booking or abandonment."""

    model_config = ConfigDict(extra="ignore")

    session_id: str
    business_id: str
    patient_id: str | None = None

    status: IntakeStatus = IntakeStatus.STARTED
    conversation_history: list[ChatMessage] = Field(default_factory=list)
    total_messages: int = 0
    patient_response_count: int = 0

    symptoms_collected: list[Symptom] = Field(default_factory=list)
    pain_level: int | None = None
    urgency_score: int | None = None
    urgency_reasoning: str | None = None
    medical_history_notes: str | None = None
    allergies: list[str] | None = None
    current_medications: list[str] | None = None

    matched_dentist_ids: list[str] | None = None
    matching_reasoning: list[DentistMatchReasoning] | None = None
    selected_dentist_id: str | None = None
    alternative_dentists_shown: bool = False

    appointment_id: str | None = None

    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    abandoned_at_step: IntakeStatus | None = None
    intake_duration_seconds: int | None = None
    conversion_score: int | None = None
    updated_at: datetime | None = None


class IntakeSessionPatch(BaseModel):
    """Typed partial update of an ``IntakeSession``.

    Only attributes that were explicitly assigned are written; ``session_id``,
    ``business_id`` and ``started_at`` are deliberately absent.
    """

    patient_id: str | None = None
    status: IntakeStatus | None = None
    conversation_history: list[ChatMessage] | None = None
    total_messages: int | None = None
    patient_response_count: int | None = None
    symptoms_collected: list[Symptom] | None = None
    pain_level: int | None = None
    urgency_score: int | None = None
    urgency_reasoning: str | None = None
    medical_history_notes: str | None = None
    allergies: list[str] | None = None
    current_medications: list[str] | None = None
    matched_dentist_ids: list[str] | None = None
    matching_reasoning: list[DentistMatchReasoning] | None = None
    selected_dentist_id: str | None = None
    alternative_dentists_shown: bool | None = None
    appointment_id: str | None = None
    completed_at: datetime | None = None
    abandoned_at_step: IntakeStatus | None = None
    intake_duration_seconds: int | None = None
    conversion_score: int | None = None
    updated_at: datetime | None = None

    def to_row(self) -> dict[str, Any]:
        """JSON-ready dict of the fields that were set.

        Nested models are dumped whole, defaults included.
        """
        return self.model_dump(mode="json", include=self.model_fields_set)


# ── AI backend contracts ─────────────────────────────────────────────


class IntakeAIRequest(BaseModel):
    session_id: str
    patient_message: str
    conversation_history: list[ChatMessage]
    current_status: IntakeStatus
    collected_symptoms: list[Symptom]
    business_id: str


class IntakeAIResponse(BaseModel):
    response_message: str
    next_step: IntakeStatus
    extracted_symptoms: list[Symptom] | None = None
    urgency_assessment: UrgencyAssessment | None = None
    pain_level: int | None = Field(None, ge=0, le=10)
    medical_history: MedicalHistoryUpdate | None = None
    should_match_dentist: bool = False


class DentistMatchingRequest(BaseModel):
    session_id: str
    symptoms: list[Symptom]
    urgency_score: int
    candidate_dentists: list[DentistInfo]
    business_id: str


class DentistMatchResult(BaseModel):
    dentist_id: str
    dentist_info: DentistInfo
    overall_match_score: float = Field(..., ge=0, le=100)
    specialization_match_score: float = Field(0, ge=0, le=100)
    match_reasoning: str
    match_highlights: list[str] = Field(default_factory=list)
    recommendation_rank: int = 0


class MatchingResult(BaseModel):
    matched_dentists: list[DentistMatchResult]
    matching_summary: str = ""
    reasoning: str = ""

    @property
    def top_recommendation(self) -> DentistMatchResult | None:
        return self.matched_dentists[0] if self.matched_dentists else None

    @property
    def alternative_recommendations(self) -> list[DentistMatchResult]:
        return self.matched_dentists[1:]


# ── Caller-facing payloads ───────────────────────────────────────────


class IntakeWidget(BaseModel):
    type: WidgetType
    data: dict[str, Any] = Field(default_factory=dict)
    title: str | None = None
    description: str | None = None


class TurnResult(BaseModel):
    ai_response: IntakeAIResponse
    widget: IntakeWidget | None = None
    session: IntakeSession


class SymptomCount(BaseModel):
    symptom: str
    count: int


class IntakeStatistics(BaseModel):
    total_started: int = 0
    total_completed: int = 0
    total_abandoned: int = 0
    completion_rate: float = 0
    average_duration: float = 0
    top_symptoms: list[SymptomCount] = Field(default_factory=list)


class OperationResult(BaseModel):
    """Outcome of an operation with a best-effort secondary write.

    ``secondary_success`` is ``None`` when the secondary write was never
    attempted (primary failed).
    """

    success: bool
    secondary_success: bool | None = None

    def __bool__(self) -> bool:
        return self.success
