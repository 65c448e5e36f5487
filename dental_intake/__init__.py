"""Dental Intake Agent - AI-driven patient intake for dental practices.

Architecture Overview
=====================

A patient chats with the intake assistant before booking.  The flow is a
small state machine persisted per session:

    started → collecting_symptoms → assessing_urgency → collecting_history
            → matching_dentist → selecting_appointment → completed
                                          (any non-terminal) → abandoned

1. **Conversation engine** (``intake.service``) - one call per patient turn:
   read the session, ask the conversation backend for a reply plus
   extracted symptoms / urgency / pain / history, persist everything in a
   single update and pick the widget the UI should render next.

2. **Dentist matching** - fetches the practice's active dentists and their
   specializations, asks Claude to rank them, and stores the ranking with a
   locally computed specialization overlap.

3. **Lifecycle** - dentist selection, abandonment and completion (which
   computes a conversion score and attaches a clinical summary to the
   booked appointment).

Key Design Decisions
--------------------
- **LLMs**: a LangGraph graph routes each turn through Claude Haiku and
  only calls Claude Opus for urgency triage; matching and summaries use Opus.
- **Persistence**: Supabase (PostgREST) over httpx with exponential-backoff
  retries, or an in-memory store for local development and tests.
- **Backends are injected**: the intake core depends on small protocols,
  never on a model client, so every operation is testable with stubs.
- **Dual Interface**: FastAPI server (production) + CLI intake loop (development).
"""
