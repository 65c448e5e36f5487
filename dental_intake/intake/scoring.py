"""Conversion scoring and intake statistics.

Both functions are pure: they only read the sessions they are given.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from dental_intake.intake.models import (
    IntakeSession,
    IntakeStatistics,
    IntakeStatus,
    SymptomCount,
)

BASE_SCORE = 50
POINTS_PER_SYMPTOM = 5
MAX_SYMPTOM_POINTS = 20
SIGNAL_POINTS = 10
ENGAGED_RESPONSE_COUNT = 5
MAX_SCORE = 100
TOP_SYMPTOM_LIMIT = 10


def calculate_conversion_score(session: IntakeSession) -> int:
    """Heuristic 0-100 measure of how complete and engaged an intake was.

    Analytics only; nothing gates on it.
    """
    score = BASE_SCORE
    score += min(len(session.symptoms_collected) * POINTS_PER_SYMPTOM, MAX_SYMPTOM_POINTS)

    if session.pain_level is not None:
        score += SIGNAL_POINTS
    if session.urgency_score is not None:
        score += SIGNAL_POINTS
    if session.medical_history_notes or session.allergies or session.current_medications:
        score += SIGNAL_POINTS
    if session.patient_response_count >= ENGAGED_RESPONSE_COUNT:
        score += SIGNAL_POINTS
    if session.selected_dentist_id:
        score += SIGNAL_POINTS

    return min(score, MAX_SCORE)


def summarize_sessions(sessions: Iterable[IntakeSession]) -> IntakeStatistics:
    sessions = list(sessions)
    started = len(sessions)
    completed = [s for s in sessions if s.status == IntakeStatus.COMPLETED]
    abandoned = sum(1 for s in sessions if s.status == IntakeStatus.ABANDONED)

    durations = [
        s.intake_duration_seconds for s in completed if s.intake_duration_seconds is not None
    ]

    # Counter keeps first-seen order and most_common sorts stably, so ties
    # stay in encounter order.
    counts = Counter(symptom.text for s in sessions for symptom in s.symptoms_collected)

    return IntakeStatistics(
        total_started=started,
        total_completed=len(completed),
        total_abandoned=abandoned,
        completion_rate=(len(completed) / started * 100) if started else 0,
        average_duration=(sum(durations) / len(durations)) if durations else 0,
        top_symptoms=[
            SymptomCount(symptom=text, count=count)
            for text, count in counts.most_common(TOP_SYMPTOM_LIMIT)
        ],
    )
