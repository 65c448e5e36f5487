"""Interfaces of the AI backends the intake flow delegates to.

The conversation engine never talks to a model directly: it is handed an
object satisfying ``ConversationClassifier`` (and the matching / summary
counterparts).  Production implementations live in ``dental_intake.agent``,
``dental_intake.matcher`` and ``dental_intake.summarizer``; tests inject
deterministic stubs.
"""

from __future__ import annotations

from typing import Protocol

from dental_intake.intake.models import (
    DentistMatchingRequest,
    IntakeAIRequest,
    IntakeAIResponse,
    IntakeSession,
    MatchingResult,
)


class ConversationClassifier(Protocol):
    def process_conversation(self, request: IntakeAIRequest) -> IntakeAIResponse:
        """Reply to the patient and decide the next intake step."""
        ...


class DentistMatcher(Protocol):
    def match_dentists(self, request: DentistMatchingRequest) -> MatchingResult:
        """Rank candidate dentists, best match first."""
        ...


class DentistSummarizer(Protocol):
    def summarize_for_dentist(self, session: IntakeSession) -> str:
        """Write a clinical pre-visit summary of the whole conversation."""
        ...
