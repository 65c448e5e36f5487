"""Shared test fixtures for the dental intake test suite."""

from __future__ import annotations

import os

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("DATA_STORE_BACKEND", "memory")
    os.environ.setdefault("METRICS_ENABLED", "false")


# ── Stub AI backends ─────────────────────────────────────────────────


class StubConversation:
    """Replays queued ``IntakeAIResponse`` objects and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.error: Exception | None = None

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    def process_conversation(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


class StubMatcher:
    """Returns the candidates in a fixed order (or the request order)."""

    def __init__(self, order: list[str] | None = None):
        self.order = order
        self.requests = []
        self.error: Exception | None = None

    def match_dentists(self, request):
        from dental_intake.intake.models import DentistMatchResult, MatchingResult

        self.requests.append(request)
        if self.error is not None:
            raise self.error
        roster = {d.id: d for d in request.candidate_dentists}
        ids = self.order if self.order is not None else list(roster)
        return MatchingResult(
            matched_dentists=[
                DentistMatchResult(
                    dentist_id=dentist_id,
                    dentist_info=roster[dentist_id],
                    overall_match_score=90 - rank * 10,
                    specialization_match_score=80,
                    match_reasoning=f"Good fit ({dentist_id})",
                    match_highlights=["Gentle care"],
                    recommendation_rank=rank + 1,
                )
                for rank, dentist_id in enumerate(ids)
            ],
            matching_summary="Here are your best matches.",
        )


class StubSummarizer:
    def __init__(self, summary: str = "Chief complaint: toothache."):
        self.summary = summary
        self.sessions = []
        self.error: Exception | None = None

    def summarize_for_dentist(self, session):
        self.sessions.append(session)
        if self.error is not None:
            raise self.error
        return self.summary


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def data_store():
    from dental_intake.services.data_store import InMemoryDataStore

    return InMemoryDataStore()


@pytest.fixture
def conversation():
    return StubConversation()


@pytest.fixture
def matcher():
    return StubMatcher()


@pytest.fixture
def summarizer():
    return StubSummarizer()


@pytest.fixture
def service(data_store, conversation, matcher, summarizer):
    from dental_intake.intake.service import IntakeFlowService

    return IntakeFlowService(data_store, conversation, matcher, summarizer)


@pytest.fixture
def seed_dentists(data_store):
    """Add three active dentists (and one inactive) to business ``biz-1``."""

    def _seed(business_id: str = "biz-1"):
        data_store.add_dentist(
            business_id,
            {"id": "d1", "first_name": "Ana", "last_name": "Silva", "next_available_slot": "Mon 9:00"},
            [{
                "specialization_type": "endodontics",
                "is_primary": True,
                "keywords": ["Root Canal", "toothache"],
                "symptom_categories": ["pain", "sensitivity"],
            }],
        )
        data_store.add_dentist(
            business_id,
            {"id": "d2", "first_name": "Ben", "last_name": "Okafor"},
            [{"specialization_type": "periodontics", "symptom_categories": ["gum_issues", "bleeding"]}],
        )
        data_store.add_dentist(
            business_id,
            {"id": "d3", "first_name": "Chloe", "last_name": "Martin"},
        )
        data_store.add_dentist(
            business_id,
            {"id": "d4", "first_name": "Dan", "last_name": "Retired"},
            is_active=False,
        )

    return _seed

