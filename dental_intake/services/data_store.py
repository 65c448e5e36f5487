"""Tenant-scoped data store used by the intake flow.

``IntakeDataStore`` is the row-level contract (plain JSON dicts in and out)
that the Supabase REST client and the in-memory store both satisfy.  Model
conversion happens one layer up, in ``dental_intake.intake.session_store``.

Every method raises ``DataStoreError`` (or a subclass) on failure.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Any, Protocol


Row = dict[str, Any]


class DataStoreError(Exception):
    """Raised when a data store read or write fails."""


class IntakeDataStore(Protocol):
    # ── ai_intake_sessions ───────────────────────────────────────────
    def insert_intake_session(self, row: Row) -> Row: ...

    def get_intake_session(self, session_id: str) -> Row | None: ...

    def update_intake_session(self, session_id: str, fields: Row) -> None: ...

    def list_intake_sessions(
        self,
        business_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Row]: ...

    # ── dentists ─────────────────────────────────────────────────────
    def list_active_dentists(self, business_id: str) -> list[Row]: ...

    def get_dentist_specializations(self, dentist_id: str) -> list[Row]: ...

    # ── intake_match_results ─────────────────────────────────────────
    def record_match_results(self, session_id: str, rows: list[Row]) -> None: ...

    def mark_match_result_selected(self, session_id: str, dentist_id: str) -> None: ...

    # ── appointments ─────────────────────────────────────────────────
    def update_appointment_notes(self, appointment_id: str, notes: str) -> None: ...


def _parse_ts(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class InMemoryDataStore:
    """Process-local ``IntakeDataStore`` for development and tests.

    Rows are deep-copied on the way in and out so callers can never mutate
    stored state by holding a reference.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sessions: dict[str, Row] = {}
        self.dentists: dict[str, Row] = {}
        self.specializations: dict[str, list[Row]] = {}
        self.match_results: dict[str, list[Row]] = {}
        self.appointment_notes: dict[str, str] = {}

    # ── Seeding ───────────────────────────────────────────────────────

    def add_dentist(
        self,
        business_id: str,
        dentist: Row,
        specializations: list[Row] | None = None,
        *,
        is_active: bool = True,
    ) -> None:
        row = {**copy.deepcopy(dentist), "business_id": business_id, "is_active": is_active}
        with self._lock:
            self.dentists[row["id"]] = row
            self.specializations[row["id"]] = copy.deepcopy(specializations or [])

    # ── Sessions ──────────────────────────────────────────────────────

    def insert_intake_session(self, row: Row) -> Row:
        with self._lock:
            session_id = row["session_id"]
            if session_id in self.sessions:
                raise DataStoreError(f"Duplicate session_id {session_id}")
            self.sessions[session_id] = copy.deepcopy(row)
            return copy.deepcopy(row)

    def get_intake_session(self, session_id: str) -> Row | None:
        with self._lock:
            row = self.sessions.get(session_id)
            return copy.deepcopy(row) if row is not None else None

    def update_intake_session(self, session_id: str, fields: Row) -> None:
        with self._lock:
            row = self.sessions.get(session_id)
            if row is None:
                raise DataStoreError(f"No intake session {session_id} to update")
            row.update(copy.deepcopy(fields))

    def list_intake_sessions(
        self,
        business_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Row]:
        with self._lock:
            rows = [r for r in self.sessions.values() if r["business_id"] == business_id]
            if start is not None:
                rows = [r for r in rows if _parse_ts(r["started_at"]) >= start]
            if end is not None:
                rows = [r for r in rows if _parse_ts(r["started_at"]) <= end]
            return copy.deepcopy(rows)

    # ── Dentists ──────────────────────────────────────────────────────

    def list_active_dentists(self, business_id: str) -> list[Row]:
        with self._lock:
            return [
                copy.deepcopy(d) for d in self.dentists.values()
                if d["business_id"] == business_id and d["is_active"]
            ]

    def get_dentist_specializations(self, dentist_id: str) -> list[Row]:
        with self._lock:
            return copy.deepcopy(self.specializations.get(dentist_id, []))

    # ── Match results / appointments ──────────────────────────────────

    def record_match_results(self, session_id: str, rows: list[Row]) -> None:
        with self._lock:
            self.match_results[session_id] = copy.deepcopy(rows)

    def mark_match_result_selected(self, session_id: str, dentist_id: str) -> None:
        with self._lock:
            for row in self.match_results.get(session_id, []):
                if row["dentist_id"] == dentist_id:
                    row["was_selected"] = True

    def update_appointment_notes(self, appointment_id: str, notes: str) -> None:
        with self._lock:
            self.appointment_notes[appointment_id] = notes
