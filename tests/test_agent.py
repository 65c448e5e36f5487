"""Tests for the LangGraph intake conversation backend.

Covers:
  - converse node (Haiku, structured output)
  - urgency routing and the assess_urgency node (Opus)
  - end-to-end graph → IntakeAIResponse with mocked LLMs
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langgraph.graph import END

from dental_intake.agent import (
    AgentState,
    ConversationTurn,
    IntakeConversationAgent,
    _make_converse_node,
    _make_urgency_node,
    create_intake_graph,
    should_assess_urgency,
)
from dental_intake.intake.models import (
    ChatMessage,
    IntakeAIRequest,
    IntakeStatus,
    Symptom,
    SymptomCategory,
    UrgencyAssessment,
)

# ── Helpers ──────────────────────────────────────────────────────────


def _mock_llm(result):
    mock_llm = MagicMock()
    mock_llm.invoke.return_value = result
    return mock_llm


def _request(*, status=IntakeStatus.STARTED, history=None, collected=None) -> IntakeAIRequest:
    history = history or [ChatMessage(role="patient", content="My tooth hurts")]
    return IntakeAIRequest(
        session_id="intake_1_abcdefghi",
        patient_message=history[-1].content,
        conversation_history=history,
        current_status=status,
        collected_symptoms=collected or [],
        business_id="biz-1",
    )


def _turn(step: str = "collecting_symptoms", **fields) -> ConversationTurn:
    return ConversationTurn(response_message="Where does it hurt?", next_step=step, **fields)


URGENCY = UrgencyAssessment(score=8, level="urgent", reasoning="Facial swelling")


# ── Converse node ───────────────────────────────────────────────────


class TestConverseNode:
    @patch("dental_intake.agent._build_fast_llm")
    def test_returns_structured_turn(self, mock_build):
        mock_build.return_value = _mock_llm(_turn())
        node = _make_converse_node()
        result = node({"request": _request(), "turn": None, "urgency": None})
        assert result["turn"].next_step == "collecting_symptoms"

    @patch("dental_intake.agent._build_fast_llm")
    def test_sends_system_prompt_and_history(self, mock_build):
        llm = _mock_llm(_turn())
        mock_build.return_value = llm
        history = [
            ChatMessage(role="patient", content="Hi"),
            ChatMessage(role="assistant", content="Hello! What brings you in?"),
            ChatMessage(role="patient", content="My gums bleed"),
        ]
        node = _make_converse_node()
        node({
            "request": _request(status=IntakeStatus.COLLECTING_SYMPTOMS, history=history),
            "turn": None,
            "urgency": None,
        })

        messages = llm.invoke.call_args[0][0]
        assert isinstance(messages[0], SystemMessage)
        assert "collecting_symptoms" in messages[0].content
        assert [type(m) for m in messages[1:]] == [HumanMessage, AIMessage, HumanMessage]
        assert messages[-1].content == "My gums bleed"

    @patch("dental_intake.agent._build_fast_llm")
    def test_llm_error_propagates(self, mock_build):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("overloaded")
        mock_build.return_value = llm
        node = _make_converse_node()
        with pytest.raises(RuntimeError):
            node({"request": _request(), "turn": None, "urgency": None})


# ── Urgency routing ─────────────────────────────────────────────────


class TestUrgencyRouting:
    def test_routes_to_urgency_when_assessing(self):
        state: AgentState = {"request": _request(), "turn": _turn("assessing_urgency"), "urgency": None}
        assert should_assess_urgency(state) == "assess_urgency"

    @pytest.mark.parametrize("step", ["collecting_symptoms", "collecting_history", "matching_dentist"])
    def test_other_steps_end(self, step):
        state: AgentState = {"request": _request(), "turn": _turn(step), "urgency": None}
        assert should_assess_urgency(state) == END

    def test_turn_schema_rejects_terminal_steps(self):
        with pytest.raises(ValueError):
            _turn("completed")


class TestUrgencyNode:
    @patch("dental_intake.agent._build_llm")
    def test_returns_assessment(self, mock_build):
        llm = _mock_llm(URGENCY)
        mock_build.return_value = llm
        node = _make_urgency_node()
        swelling = Symptom(text="swollen cheek", category=SymptomCategory.SWELLING)
        result = node({
            "request": _request(),
            "turn": _turn("assessing_urgency", extracted_symptoms=[swelling], pain_level=8),
            "urgency": None,
        })
        assert result["urgency"] == URGENCY
        prompt = llm.invoke.call_args[0][0][0].content
        assert "swollen cheek" in prompt
        assert "8/10" in prompt

    @patch("dental_intake.agent._build_llm")
    def test_failure_falls_back_to_no_assessment(self, mock_build):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("timeout")
        mock_build.return_value = llm
        node = _make_urgency_node()
        result = node({"request": _request(), "turn": _turn("assessing_urgency"), "urgency": None})
        assert result["urgency"] is None


# ── End-to-end graph ────────────────────────────────────────────────


class TestIntakeGraph:
    @patch("dental_intake.agent._build_llm")
    @patch("dental_intake.agent._build_fast_llm")
    def test_simple_turn_skips_urgency_model(self, mock_fast, mock_primary):
        mock_fast.return_value = _mock_llm(
            _turn(extracted_symptoms=[Symptom(text="tooth pain", category=SymptomCategory.PAIN)])
        )
        primary = _mock_llm(URGENCY)
        mock_primary.return_value = primary

        agent = IntakeConversationAgent(create_intake_graph())
        response = agent.process_conversation(_request())

        assert response.next_step == IntakeStatus.COLLECTING_SYMPTOMS
        assert response.extracted_symptoms[0].text == "tooth pain"
        assert response.urgency_assessment is None
        assert response.should_match_dentist is False
        primary.invoke.assert_not_called()

    @patch("dental_intake.agent._build_llm")
    @patch("dental_intake.agent._build_fast_llm")
    def test_urgency_turn_includes_assessment(self, mock_fast, mock_primary):
        mock_fast.return_value = _mock_llm(_turn("assessing_urgency"))
        mock_primary.return_value = _mock_llm(URGENCY)

        response = IntakeConversationAgent(create_intake_graph()).process_conversation(_request())

        assert response.next_step == IntakeStatus.ASSESSING_URGENCY
        assert response.urgency_assessment == URGENCY
        assert response.extracted_symptoms is None

    @patch("dental_intake.agent._build_llm")
    @patch("dental_intake.agent._build_fast_llm")
    def test_matching_step_sets_match_flag(self, mock_fast, mock_primary):
        mock_fast.return_value = _mock_llm(_turn("matching_dentist"))
        mock_primary.return_value = _mock_llm(URGENCY)

        response = IntakeConversationAgent(create_intake_graph()).process_conversation(_request())

        assert response.next_step == IntakeStatus.MATCHING_DENTIST
        assert response.should_match_dentist is True
