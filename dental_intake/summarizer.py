"""Clinical pre-visit summary written onto the booked appointment."""

from __future__ import annotations

import logging

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage

from dental_intake.config import ANTHROPIC_API_KEY, MODEL_NAME
from dental_intake.intake.models import IntakeSession
from dental_intake.prompts import get_summary_prompt
from dental_intake.services.metrics import metrics

logger = logging.getLogger(__name__)


def _build_llm() -> ChatAnthropic:
    return ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.2,
        max_tokens=1024,
    )


class ClaudeSummarizer:
    def __init__(self, llm: ChatAnthropic | None = None) -> None:
        self._llm = llm or _build_llm()

    def summarize_for_dentist(self, session: IntakeSession) -> str:
        with metrics.track("anthropic", "clinical_summary"):
            response = self._llm.invoke([HumanMessage(content=get_summary_prompt(session))])
        summary = response.content if isinstance(response.content, str) else "".join(
            block.get("text", "") for block in response.content if isinstance(block, dict)
        )
        summary = summary.strip()
        logger.debug("Summary for session %s: %d chars", session.session_id, len(summary))
        return summary
