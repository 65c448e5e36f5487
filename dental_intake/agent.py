"""LangGraph-based conversation backend for the dental intake flow.

Architecture:
  One patient turn runs through a small StateGraph with **multi-model
  routing**:

    1. **converse**        - Haiku call with structured output: the reply to
                             the patient, the next intake step and whatever
                             symptoms / pain / history the latest message gave
    2. **assess_urgency**  - Opus call with structured output producing an
                             ``UrgencyAssessment``; only runs when the turn
                             moves the session into ``assessing_urgency``

  Routing:
    converse → (next step is assessing_urgency?) → assess_urgency → END
             → (otherwise)                       → END

  Most turns only touch Haiku; the heavier model is reserved for the one
  clinical judgement that drives the urgency widget and matching.

  Memory:
    The graph is stateless.  The conversation history arrives in every
    ``IntakeAIRequest`` because the session store is the source of truth.
"""

from __future__ import annotations

import logging
import time
from typing import Literal

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage
from langgraph.graph import END, StateGraph
from pydantic import BaseModel, Field
from typing_extensions import TypedDict

from dental_intake.config import ANTHROPIC_API_KEY, FAST_MODEL_NAME, MODEL_NAME
from dental_intake.intake.models import (
    ChatMessage,
    IntakeAIRequest,
    IntakeAIResponse,
    IntakeStatus,
    MedicalHistoryUpdate,
    Symptom,
    UrgencyAssessment,
)
from dental_intake.prompts import (
    URGENCY_PROMPT_TEMPLATE,
    format_symptoms,
    format_transcript,
    get_intake_system_prompt,
)
from dental_intake.services.metrics import metrics

logger = logging.getLogger(__name__)

URGENCY_CONTEXT_MESSAGES = 6


# ── Structured output schema ─────────────────────────────────────────


class ConversationTurn(BaseModel):
    """What the conversation model returns for one patient message.

    ``next_step`` is restricted to the conversational steps: completion and
    abandonment are lifecycle events, never a model decision.
    """

    response_message: str = Field(..., description="Reply shown to the patient")
    next_step: Literal[
        "collecting_symptoms", "assessing_urgency", "collecting_history", "matching_dentist",
    ]
    extracted_symptoms: list[Symptom] = Field(
        default_factory=list,
        description="New symptoms from the patient's latest message only",
    )
    pain_level: int | None = Field(None, ge=0, le=10)
    medical_history: MedicalHistoryUpdate | None = None
    should_match_dentist: bool = False


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict):
    """The state that flows through the graph for a single turn."""

    request: IntakeAIRequest
    turn: ConversationTurn | None
    urgency: UrgencyAssessment | None


# ── LLM builders ────────────────────────────────────────────────────


def _build_fast_llm():
    """Build the Haiku LLM that runs the turn-by-turn conversation."""
    llm = ChatAnthropic(
        model=FAST_MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.1,
        max_tokens=1024,
    )
    return llm.with_structured_output(ConversationTurn)


def _build_llm():
    """Build the Opus LLM used for urgency triage."""
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.0,
        max_tokens=512,
    )
    return llm.with_structured_output(UrgencyAssessment)


def _to_langchain_messages(history: list[ChatMessage]) -> list[AnyMessage]:
    return [
        HumanMessage(content=m.content) if m.role == "patient" else AIMessage(content=m.content)
        for m in history
    ]


# ── Node: converse (Haiku) ──────────────────────────────────────────


def _make_converse_node():
    converse_llm = _build_fast_llm()

    def converse_node(state: AgentState) -> dict:
        request = state["request"]
        system = SystemMessage(
            content=get_intake_system_prompt(request.current_status, request.collected_symptoms)
        )
        messages = [system, *_to_langchain_messages(request.conversation_history)]
        logger.debug(
            "converse node invoked - model: %s, session %s, %d messages",
            FAST_MODEL_NAME, request.session_id, len(messages) - 1,
        )
        with metrics.track("anthropic", "intake_converse"):
            turn = converse_llm.invoke(messages)
        return {"turn": turn}

    return converse_node


# ── Node: assess_urgency (Opus) ─────────────────────────────────────


def _make_urgency_node():
    urgency_llm = _build_llm()

    def urgency_node(state: AgentState) -> dict:
        request = state["request"]
        turn = state["turn"]
        prompt = URGENCY_PROMPT_TEMPLATE.format(
            symptoms=format_symptoms([*request.collected_symptoms, *turn.extracted_symptoms]),
            pain_level="not reported" if turn.pain_level is None else f"{turn.pain_level}/10",
            transcript=format_transcript(
                request.conversation_history, max_messages=URGENCY_CONTEXT_MESSAGES,
            ),
        )
        t0 = time.perf_counter()
        try:
            assessment = urgency_llm.invoke([HumanMessage(content=prompt)])
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_success("anthropic", "urgency_assess", latency_ms=elapsed)
            logger.debug(
                "Urgency for session %s: %d (%s, %.0fms)",
                request.session_id, assessment.score, assessment.level, elapsed,
            )
            return {"urgency": assessment}
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "urgency_assess",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            # The turn still stands; the urgency widget is skipped this time.
            logger.warning(
                "Urgency assessment failed for session %s: %s", request.session_id, exc,
            )
            return {"urgency": None}

    return urgency_node


# ── Conditional edges ────────────────────────────────────────────────


def should_assess_urgency(state: AgentState) -> str:
    turn = state.get("turn")
    if turn is not None and turn.next_step == IntakeStatus.ASSESSING_URGENCY.value:
        return "assess_urgency"
    return END


# ── Graph assembly ───────────────────────────────────────────────────


def create_intake_graph():
    """Build and compile the intake conversation graph.

    Returns a compiled graph that can be invoked with:
        graph.invoke({"request": request, "turn": None, "urgency": None})
    """
    graph = StateGraph(AgentState)

    graph.add_node("converse", _make_converse_node())
    graph.add_node("assess_urgency", _make_urgency_node())

    graph.set_entry_point("converse")
    graph.add_conditional_edges(
        "converse",
        should_assess_urgency,
        {"assess_urgency": "assess_urgency", END: END},
    )
    graph.add_edge("assess_urgency", END)

    compiled = graph.compile()
    logger.debug(
        "Intake graph compiled - converse: %s, urgency: %s", FAST_MODEL_NAME, MODEL_NAME,
    )
    return compiled


class IntakeConversationAgent:
    """``ConversationClassifier`` backed by the intake graph."""

    def __init__(self, graph=None) -> None:
        self._graph = graph if graph is not None else create_intake_graph()

    def process_conversation(self, request: IntakeAIRequest) -> IntakeAIResponse:
        result = self._graph.invoke({"request": request, "turn": None, "urgency": None})
        turn: ConversationTurn = result["turn"]
        return IntakeAIResponse(
            response_message=turn.response_message,
            next_step=IntakeStatus(turn.next_step),
            extracted_symptoms=turn.extracted_symptoms or None,
            urgency_assessment=result.get("urgency"),
            pain_level=turn.pain_level,
            medical_history=turn.medical_history,
            should_match_dentist=(
                turn.should_match_dentist or turn.next_step == IntakeStatus.MATCHING_DENTIST.value
            ),
        )
