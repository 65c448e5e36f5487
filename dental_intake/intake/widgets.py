"""Widget selection: which interactive prompt the UI should render next.

``select_widget`` is a pure function of the AI response and the session; it
performs no I/O.
"""

from __future__ import annotations

from dental_intake.intake.models import (
    IntakeAIResponse,
    IntakeSession,
    IntakeStatus,
    IntakeWidget,
    SymptomCategory,
    WidgetType,
)


def _symptom_widget(session: IntakeSession) -> IntakeWidget | None:
    if not session.symptoms_collected:
        return IntakeWidget(
            type=WidgetType.SYMPTOM_SELECTOR,
            title="What brings you in today?",
            description="Select your symptoms",
        )
    has_pain = any(s.category == SymptomCategory.PAIN for s in session.symptoms_collected)
    if has_pain and session.pain_level is None:
        return IntakeWidget(type=WidgetType.PAIN_SCALE, title="Rate your pain level")
    return None


def select_widget(ai_response: IntakeAIResponse, session: IntakeSession) -> IntakeWidget | None:
    """Map the AI's next step plus session state to a widget descriptor."""
    step = ai_response.next_step

    if step == IntakeStatus.COLLECTING_SYMPTOMS:
        return _symptom_widget(session)

    if step == IntakeStatus.ASSESSING_URGENCY:
        if ai_response.urgency_assessment is None:
            return None
        return IntakeWidget(
            type=WidgetType.URGENCY_ASSESSMENT,
            data=ai_response.urgency_assessment.model_dump(mode="json"),
            title="Urgency Assessment",
        )

    if step == IntakeStatus.COLLECTING_HISTORY:
        return IntakeWidget(
            type=WidgetType.MEDICAL_HISTORY,
            title="Medical History",
            description="Help us provide safer care",
        )

    if step == IntakeStatus.SELECTING_APPOINTMENT:
        return IntakeWidget(
            type=WidgetType.APPOINTMENT_CALENDAR,
            data=(
                {"dentist_id": session.selected_dentist_id}
                if session.selected_dentist_id else {}
            ),
            title="Select Appointment Time",
        )

    # matching_dentist: results arrive from perform_dentist_matching instead.
    return None
