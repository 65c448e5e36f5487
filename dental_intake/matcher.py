"""Claude-backed dentist matching.

The model sees the patient's symptoms and urgency plus a compact profile of
every candidate and returns a ranked list.  Its ordering is kept as-is; ids
the model invents are dropped and each surviving entry is enriched with the
full ``DentistInfo`` from the request.
"""

from __future__ import annotations

import logging

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import HumanMessage
from pydantic import BaseModel, Field

from dental_intake.config import ANTHROPIC_API_KEY, MODEL_NAME
from dental_intake.intake.models import (
    DentistMatchingRequest,
    DentistMatchResult,
    MatchingResult,
)
from dental_intake.prompts import MATCHING_PROMPT_TEMPLATE, format_dentists, format_symptoms
from dental_intake.services.metrics import metrics

logger = logging.getLogger(__name__)


class RankedDentist(BaseModel):
    dentist_id: str
    overall_match_score: float = Field(..., ge=0, le=100)
    specialization_match_score: float = Field(0, ge=0, le=100)
    match_reasoning: str
    match_highlights: list[str] = Field(default_factory=list)


class DentistRanking(BaseModel):
    rankings: list[RankedDentist] = Field(..., description="Best match first")
    matching_summary: str = ""
    reasoning: str = ""


def _build_llm():
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.0,
        max_tokens=2048,
    )
    return llm.with_structured_output(DentistRanking)


class ClaudeDentistMatcher:
    def __init__(self, llm=None) -> None:
        self._llm = llm or _build_llm()

    def match_dentists(self, request: DentistMatchingRequest) -> MatchingResult:
        prompt = MATCHING_PROMPT_TEMPLATE.format(
            urgency_score=request.urgency_score,
            symptoms=format_symptoms(request.symptoms),
            dentists=format_dentists(request.candidate_dentists),
        )
        with metrics.track("anthropic", "dentist_match"):
            ranking: DentistRanking = self._llm.invoke([HumanMessage(content=prompt)])

        roster = {d.id: d for d in request.candidate_dentists}
        matched: list[DentistMatchResult] = []
        seen: set[str] = set()
        for entry in ranking.rankings:
            if entry.dentist_id not in roster:
                logger.warning(
                    "Matcher returned unknown dentist %s for session %s",
                    entry.dentist_id, request.session_id,
                )
                continue
            if entry.dentist_id in seen:
                continue
            seen.add(entry.dentist_id)
            matched.append(
                DentistMatchResult(
                    dentist_id=entry.dentist_id,
                    dentist_info=roster[entry.dentist_id],
                    overall_match_score=entry.overall_match_score,
                    specialization_match_score=entry.specialization_match_score,
                    match_reasoning=entry.match_reasoning,
                    match_highlights=entry.match_highlights,
                    recommendation_rank=len(matched) + 1,
                )
            )

        logger.debug(
            "Ranked %d of %d candidates for session %s",
            len(matched), len(request.candidate_dentists), request.session_id,
        )
        return MatchingResult(
            matched_dentists=matched,
            matching_summary=ranking.matching_summary,
            reasoning=ranking.reasoning,
        )
