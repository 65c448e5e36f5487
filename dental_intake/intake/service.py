"""The intake flow service: conversation engine, dentist matching and
session lifecycle.

Every public method is one logical, synchronous request.  A method either
performs all of its described persistence or none of it; the only writes
allowed to fail independently are the auxiliary ones reported through
``OperationResult.secondary_success`` (match-result marker, clinical
summary on the appointment).

Concurrency: turns on the same session must be serialized by the caller.
Two concurrent ``process_patient_message`` calls read the same history and
the later write wins, silently dropping the other turn.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from dental_intake.config import DEFAULT_URGENCY_SCORE
from dental_intake.intake.backends import ConversationClassifier, DentistMatcher, DentistSummarizer
from dental_intake.intake.errors import (
    CallerMisuseError,
    UpstreamUnavailableError,
)
from dental_intake.intake.models import (
    AvailabilitySummary,
    ChatMessage,
    DentistInfo,
    DentistMatchingRequest,
    DentistMatchReasoning,
    DentistMatchResult,
    IntakeAIRequest,
    IntakeAIResponse,
    IntakeSession,
    IntakeSessionPatch,
    IntakeStatistics,
    IntakeStatus,
    MatchingResult,
    OperationResult,
    SpecializationMatch,
    Symptom,
    TurnResult,
    utcnow,
)
from dental_intake.intake.scoring import calculate_conversion_score, summarize_sessions
from dental_intake.intake.session_store import SessionStore
from dental_intake.intake.widgets import select_widget
from dental_intake.services.data_store import DataStoreError, IntakeDataStore
from dental_intake.services.metrics import metrics

logger = logging.getLogger(__name__)

NO_SLOT_PLACEHOLDER = "Check availability"


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _turn_metadata(ai_response: IntakeAIResponse) -> dict:
    """What the AI extracted on this turn, kept on the assistant message."""
    metadata: dict = {"next_step": ai_response.next_step.value}
    if ai_response.extracted_symptoms:
        metadata["symptoms_extracted"] = [
            s.model_dump(mode="json") for s in ai_response.extracted_symptoms
        ]
    if ai_response.urgency_assessment is not None:
        metadata["urgency_detected"] = ai_response.urgency_assessment.score
    if ai_response.pain_level is not None:
        metadata["pain_level"] = ai_response.pain_level
    return metadata


def _specialization_match(match: DentistMatchResult, symptoms: list[Symptom]) -> SpecializationMatch:
    """Overlap between the dentist's declared specializations and the symptoms."""
    categories = {s.category for s in symptoms}
    symptom_text = " ".join(s.text.lower() for s in symptoms)

    matched_categories = []
    matched_keywords = []
    for specialization in match.dentist_info.specializations:
        for category in specialization.symptom_categories:
            if category in categories and category not in matched_categories:
                matched_categories.append(category)
        for keyword in specialization.keywords:
            if keyword.lower() in symptom_text and keyword not in matched_keywords:
                matched_keywords.append(keyword)

    return SpecializationMatch(
        matched_categories=matched_categories,
        matched_keywords=matched_keywords,
        confidence=match.specialization_match_score,
    )


def _match_reasoning(match: DentistMatchResult, symptoms: list[Symptom]) -> DentistMatchReasoning:
    return DentistMatchReasoning(
        dentist_id=match.dentist_id,
        score=match.overall_match_score,
        reasoning=match.match_reasoning,
        highlights=match.match_highlights,
        specialization_match=_specialization_match(match, symptoms),
        availability=AvailabilitySummary(
            earliest_slot=match.dentist_info.next_available_slot or NO_SLOT_PLACEHOLDER,
            total_available_slots=0,
        ),
    )


class IntakeFlowService:
    """Drives intake sessions from first message to booking or abandonment."""

    def __init__(
        self,
        data_store: IntakeDataStore,
        conversation: ConversationClassifier,
        matcher: DentistMatcher,
        summarizer: DentistSummarizer,
        *,
        default_urgency_score: int = DEFAULT_URGENCY_SCORE,
    ) -> None:
        self._data = data_store
        self.sessions = SessionStore(data_store)
        self._conversation = conversation
        self._matcher = matcher
        self._summarizer = summarizer
        self._default_urgency = default_urgency_score

    # ── Sessions ─────────────────────────────────────────────────────

    def create_session(
        self, business_id: str, patient_id: str | None = None,
    ) -> IntakeSession | None:
        session = self.sessions.create(business_id, patient_id)
        if session is not None:
            logger.info(
                "Started intake session %s (business %s)", session.session_id, business_id,
            )
            metrics.record_event("intake_started")
        return session

    def get_session(self, session_id: str) -> IntakeSession | None:
        return self.sessions.get(session_id)

    # ── Conversation engine ──────────────────────────────────────────

    def process_patient_message(self, session_id: str, message: str) -> TurnResult:
        """Advance the conversation by one patient turn.

        Raises:
            SessionNotFoundError: *session_id* does not exist.
            CallerMisuseError: the session is already completed or abandoned.
            UpstreamUnavailableError: the AI backend or the store failed;
                nothing was persisted and the turn may be retried.
        """
        session = self.sessions.require(session_id)
        if session.status.is_terminal:
            raise CallerMisuseError(
                f"Intake session {session_id} is already {session.status.value}",
                session_id,
            )

        history = [*session.conversation_history, ChatMessage(role="patient", content=message)]
        request = IntakeAIRequest(
            session_id=session_id,
            patient_message=message,
            conversation_history=history,
            current_status=session.status,
            collected_symptoms=session.symptoms_collected,
            business_id=session.business_id,
        )

        try:
            ai_response = self._conversation.process_conversation(request)
        except Exception as exc:
            logger.exception("Conversation backend failed for session %s", session_id)
            raise UpstreamUnavailableError(
                f"Conversation backend unavailable: {exc}", session_id,
            ) from exc

        history.append(
            ChatMessage(
                role="assistant",
                content=ai_response.response_message,
                metadata=_turn_metadata(ai_response),
            )
        )

        patch = IntakeSessionPatch(
            status=ai_response.next_step,
            conversation_history=history,
            symptoms_collected=[
                *session.symptoms_collected, *(ai_response.extracted_symptoms or []),
            ],
            total_messages=session.total_messages + 2,
            patient_response_count=session.patient_response_count + 1,
        )
        if ai_response.urgency_assessment is not None:
            patch.urgency_score = ai_response.urgency_assessment.score
            patch.urgency_reasoning = ai_response.urgency_assessment.reasoning
        if ai_response.pain_level is not None:
            patch.pain_level = ai_response.pain_level
        if ai_response.medical_history is not None:
            history_update = ai_response.medical_history
            if history_update.notes:
                patch.medical_history_notes = history_update.notes
            if history_update.allergies:
                patch.allergies = [*(session.allergies or []), *history_update.allergies]
            if history_update.medications:
                patch.current_medications = [
                    *(session.current_medications or []), *history_update.medications,
                ]

        if not self.sessions.update(session_id, patch):
            raise UpstreamUnavailableError(
                f"Could not persist turn for intake session {session_id}", session_id,
            )

        updated = IntakeSession.model_validate(
            {**session.model_dump(mode="json"), **patch.to_row()}
        )
        logger.debug(
            "Session %s: %s -> %s (%d symptoms)",
            session_id, session.status.value, updated.status.value,
            len(updated.symptoms_collected),
        )
        return TurnResult(
            ai_response=ai_response,
            widget=select_widget(ai_response, session),
            session=updated,
        )

    # ── Dentist matching ─────────────────────────────────────────────

    def _fetch_candidate_dentists(self, business_id: str) -> list[DentistInfo]:
        candidates = []
        for row in self._data.list_active_dentists(business_id):
            specializations = self._data.get_dentist_specializations(row["id"])
            candidates.append(DentistInfo.model_validate({**row, "specializations": specializations}))
        return candidates

    def perform_dentist_matching(self, session_id: str) -> MatchingResult | None:
        """Rank the tenant's active dentists for this session.

        Returns ``None`` when the roster is empty or a backend fails; the
        session is left untouched in both cases.  Raises
        ``SessionNotFoundError`` for an unknown session and
        ``CallerMisuseError`` for a completed or abandoned one.
        """
        try:
            session = self.sessions.require(session_id)
        except UpstreamUnavailableError:
            logger.exception("Could not load session %s for matching", session_id)
            return None
        if session.status.is_terminal:
            raise CallerMisuseError(
                f"Intake session {session_id} is already {session.status.value}",
                session_id,
            )

        try:
            dentists = self._fetch_candidate_dentists(session.business_id)
        except DataStoreError:
            logger.exception("Could not fetch dentist roster for session %s", session_id)
            return None
        if not dentists:
            logger.error(
                "No active dentists for business %s (session %s)",
                session.business_id, session_id,
            )
            return None

        request = DentistMatchingRequest(
            session_id=session_id,
            symptoms=session.symptoms_collected,
            urgency_score=(
                session.urgency_score
                if session.urgency_score is not None
                else self._default_urgency
            ),
            candidate_dentists=dentists,
            business_id=session.business_id,
        )
        try:
            result = self._matcher.match_dentists(request)
        except Exception:
            logger.exception("Matching backend failed for session %s", session_id)
            return None

        patch = IntakeSessionPatch(
            status=IntakeStatus.MATCHING_DENTIST,
            matched_dentist_ids=[m.dentist_id for m in result.matched_dentists],
            matching_reasoning=[
                _match_reasoning(m, session.symptoms_collected) for m in result.matched_dentists
            ],
            alternative_dentists_shown=bool(result.alternative_recommendations),
        )
        if not self.sessions.update(session_id, patch):
            return None

        try:
            self._data.record_match_results(
                session_id,
                [
                    {
                        "dentist_id": m.dentist_id,
                        "overall_match_score": m.overall_match_score,
                        "specialization_match_score": m.specialization_match_score,
                        "match_reasoning": m.match_reasoning,
                        "match_highlights": m.match_highlights,
                        "recommendation_rank": rank,
                        "was_shown_to_patient": True,
                        "was_selected": False,
                    }
                    for rank, m in enumerate(result.matched_dentists, start=1)
                ],
            )
        except DataStoreError:
            logger.warning("Could not record match results for session %s", session_id)

        logger.info(
            "Session %s matched %d of %d dentists",
            session_id, len(result.matched_dentists), len(dentists),
        )
        metrics.record_event("dentist_matched")
        return result

    # ── Lifecycle ────────────────────────────────────────────────────

    def select_dentist(self, session_id: str, dentist_id: str) -> OperationResult:
        session = self.sessions.get(session_id)
        if session is None:
            return OperationResult(success=False)
        if session.status.is_terminal:
            logger.warning(
                "Refusing dentist selection for session %s: already %s",
                session_id, session.status.value,
            )
            return OperationResult(success=False)

        patch = IntakeSessionPatch(
            selected_dentist_id=dentist_id,
            status=IntakeStatus.SELECTING_APPOINTMENT,
        )
        if not self.sessions.update(session_id, patch):
            return OperationResult(success=False)

        try:
            self._data.mark_match_result_selected(session_id, dentist_id)
            marked = True
        except DataStoreError:
            logger.warning(
                "Could not mark dentist %s as selected for session %s", dentist_id, session_id,
            )
            marked = False

        metrics.record_event("dentist_selected")
        return OperationResult(success=True, secondary_success=marked)

    def abandon_intake(self, session_id: str, current_status: IntakeStatus | str) -> bool:
        """Mark the session abandoned at the step the caller last saw.

        *current_status* is recorded as given, even if the stored status
        has moved on.  Sessions already completed or abandoned are left alone.
        """
        session = self.sessions.get(session_id)
        if session is None:
            return False
        if session.status.is_terminal:
            logger.warning(
                "Refusing to abandon session %s: already %s", session_id, session.status.value,
            )
            return False

        ok = self.sessions.update(
            session_id,
            IntakeSessionPatch(
                status=IntakeStatus.ABANDONED,
                abandoned_at_step=IntakeStatus(current_status),
            ),
        )
        if ok:
            metrics.record_event("intake_abandoned")
        return ok

    def complete_intake(self, session_id: str, appointment_id: str) -> OperationResult:
        """Close the session against a booked appointment.

        The primary write records completion, duration and conversion
        score.  The clinical summary written onto the appointment is
        best-effort and never undoes completion.
        """
        session = self.sessions.get(session_id)
        if session is None:
            return OperationResult(success=False)
        if session.status.is_terminal:
            logger.warning(
                "Refusing to complete session %s: already %s", session_id, session.status.value,
            )
            return OperationResult(success=False)

        now = utcnow()
        patch = IntakeSessionPatch(
            status=IntakeStatus.COMPLETED,
            appointment_id=appointment_id,
            completed_at=now,
            intake_duration_seconds=int((now - session.started_at).total_seconds()),
            conversion_score=calculate_conversion_score(session),
        )
        if not self.sessions.update(session_id, patch):
            return OperationResult(success=False)
        logger.info(
            "Completed intake session %s (appointment %s, score %d)",
            session_id, appointment_id, patch.conversion_score,
        )
        metrics.record_event("intake_completed")

        try:
            summary = self._summarizer.summarize_for_dentist(session)
            self._data.update_appointment_notes(appointment_id, summary)
            summary_saved = True
        except Exception:
            logger.exception(
                "Could not attach clinical summary to appointment %s (session %s)",
                appointment_id, session_id,
            )
            summary_saved = False

        return OperationResult(success=True, secondary_success=summary_saved)

    # ── Analytics ────────────────────────────────────────────────────

    def get_intake_statistics(
        self,
        business_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> IntakeStatistics:
        """Funnel statistics for sessions started within ``[start, end]``."""
        try:
            rows = self._data.list_intake_sessions(business_id, _as_utc(start), _as_utc(end))
        except DataStoreError:
            logger.exception("Could not load intake sessions for business %s", business_id)
            return IntakeStatistics()
        return summarize_sessions(IntakeSession.model_validate(row) for row in rows)


def create_intake_service(data_store: IntakeDataStore | None = None) -> IntakeFlowService:
    """Wire the service to the configured data store and Claude backends."""
    from dental_intake.agent import IntakeConversationAgent  # noqa: PLC0415
    from dental_intake.config import DATA_STORE_BACKEND  # noqa: PLC0415
    from dental_intake.matcher import ClaudeDentistMatcher  # noqa: PLC0415
    from dental_intake.summarizer import ClaudeSummarizer  # noqa: PLC0415

    if data_store is None:
        if DATA_STORE_BACKEND == "memory":
            from dental_intake.services.data_store import InMemoryDataStore  # noqa: PLC0415

            data_store = InMemoryDataStore()
        else:
            from dental_intake.services.supabase_client import get_supabase_client  # noqa: PLC0415

            data_store = get_supabase_client()

    return IntakeFlowService(
        data_store,
        conversation=IntakeConversationAgent(),
        matcher=ClaudeDentistMatcher(),
        summarizer=ClaudeSummarizer(),
    )
