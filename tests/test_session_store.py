"""Tests for the session store adapter and the in-memory data store."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from dental_intake.intake.errors import SessionNotFoundError, UpstreamUnavailableError
from dental_intake.intake.models import IntakeSessionPatch, IntakeStatus
from dental_intake.intake.session_store import SessionStore, new_session_id
from dental_intake.services.data_store import DataStoreError, InMemoryDataStore


@pytest.fixture
def store(data_store):
    return SessionStore(data_store)


class TestNewSessionId:
    def test_format(self):
        assert re.fullmatch(r"intake_\d{13}_[a-z0-9]{9}", new_session_id())

    def test_unique(self):
        assert len({new_session_id() for _ in range(200)}) == 200


class TestSessionStore:
    def test_create_and_get(self, store):
        session = store.create("biz-1")
        fetched = store.get(session.session_id)
        assert fetched == session
        assert fetched.updated_at == fetched.started_at

    def test_update_writes_only_set_fields(self, store, data_store):
        session = store.create("biz-1", patient_id="p-1")
        assert store.update(session.session_id, IntakeSessionPatch(pain_level=3)) is True

        row = data_store.sessions[session.session_id]
        assert row["pain_level"] == 3
        assert row["patient_id"] == "p-1"
        assert row["status"] == "started"

    def test_update_refreshes_updated_at(self, store):
        session = store.create("biz-1")
        store.update(session.session_id, IntakeSessionPatch(status=IntakeStatus.COLLECTING_SYMPTOMS))
        assert store.get(session.session_id).updated_at >= session.updated_at

    def test_update_can_clear_a_field(self, store):
        session = store.create("biz-1")
        store.update(session.session_id, IntakeSessionPatch(selected_dentist_id="d1"))
        store.update(session.session_id, IntakeSessionPatch(selected_dentist_id=None))
        assert store.get(session.session_id).selected_dentist_id is None

    def test_update_missing_session_returns_false(self, store):
        assert store.update("intake_0_missing", IntakeSessionPatch(pain_level=1)) is False

    def test_get_store_failure_returns_none(self):
        data_store = MagicMock()
        data_store.get_intake_session.side_effect = DataStoreError("down")
        assert SessionStore(data_store).get("intake_1_x") is None

    def test_require_missing_raises_not_found(self, store):
        with pytest.raises(SessionNotFoundError) as exc_info:
            store.require("intake_0_missing")
        assert exc_info.value.session_id == "intake_0_missing"

    def test_require_store_failure_raises_upstream(self):
        data_store = MagicMock()
        data_store.get_intake_session.side_effect = DataStoreError("down")
        with pytest.raises(UpstreamUnavailableError):
            SessionStore(data_store).require("intake_1_x")


class TestInMemoryDataStore:
    def test_rows_are_isolated_copies(self):
        data_store = InMemoryDataStore()
        row = {"session_id": "s1", "business_id": "b", "symptoms_collected": []}
        data_store.insert_intake_session(row)
        row["symptoms_collected"].append("leak")
        fetched = data_store.get_intake_session("s1")
        fetched["symptoms_collected"].append("leak")
        assert data_store.get_intake_session("s1")["symptoms_collected"] == []

    def test_duplicate_insert_raises(self):
        data_store = InMemoryDataStore()
        data_store.insert_intake_session({"session_id": "s1", "business_id": "b"})
        with pytest.raises(DataStoreError):
            data_store.insert_intake_session({"session_id": "s1", "business_id": "b"})

    def test_list_sessions_filters_tenant_and_window(self):
        data_store = InMemoryDataStore()
        for sid, business, day in (("s1", "b", 1), ("s2", "b", 5), ("s3", "other", 2)):
            data_store.insert_intake_session({
                "session_id": sid,
                "business_id": business,
                "started_at": datetime(2026, 1, day, tzinfo=UTC).isoformat(),
            })
        rows = data_store.list_intake_sessions(
            "b", start=datetime(2026, 1, 1, tzinfo=UTC), end=datetime(2026, 1, 3, tzinfo=UTC),
        )
        assert [r["session_id"] for r in rows] == ["s1"]

    def test_roster_excludes_inactive_and_other_tenants(self):
        data_store = InMemoryDataStore()
        data_store.add_dentist("b", {"id": "d1", "first_name": "A", "last_name": "One"})
        data_store.add_dentist("b", {"id": "d2", "first_name": "B", "last_name": "Two"}, is_active=False)
        data_store.add_dentist("other", {"id": "d3", "first_name": "C", "last_name": "Three"})
        assert [d["id"] for d in data_store.list_active_dentists("b")] == ["d1"]
