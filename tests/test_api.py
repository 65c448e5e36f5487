"""Tests for the FastAPI endpoints."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from dental_intake.intake.models import IntakeAIResponse, IntakeStatus
from dental_intake.server import app


@pytest.fixture
def client(service):
    """FastAPI test client with a stub-backed service attached (mirrors the lifespan)."""
    app.state.intake_service = service
    yield TestClient(app)
    app.state.intake_service = None


def _create(client, business_id: str = "biz-1") -> str:
    response = client.post("/api/intake/sessions", json={"business_id": business_id})
    assert response.status_code == 201
    return response.json()["session_id"]


class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "dental-intake-agent"


class TestSessionEndpoints:
    def test_create_session(self, client):
        response = client.post(
            "/api/intake/sessions", json={"business_id": "biz-1", "patient_id": "p-1"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "started"
        assert data["patient_id"] == "p-1"
        assert data["session_id"].startswith("intake_")

    def test_create_requires_business_id(self, client):
        response = client.post("/api/intake/sessions", json={})
        assert response.status_code == 422

    def test_get_session(self, client):
        session_id = _create(client)
        response = client.get(f"/api/intake/sessions/{session_id}")
        assert response.status_code == 200
        assert response.json()["business_id"] == "biz-1"

    def test_get_unknown_session_is_404(self, client):
        assert client.get("/api/intake/sessions/intake_0_missing").status_code == 404


class TestMessageEndpoint:
    def test_turn_returns_reply_widget_and_session(self, client, conversation):
        conversation.queue(
            IntakeAIResponse(
                response_message="Where is the pain?",
                next_step=IntakeStatus.COLLECTING_SYMPTOMS,
                extracted_symptoms=[{"text": "tooth pain", "category": "pain"}],
            )
        )
        session_id = _create(client)
        response = client.post(
            f"/api/intake/sessions/{session_id}/messages", json={"message": "My tooth hurts"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["ai_response"]["response_message"] == "Where is the pain?"
        assert data["widget"]["type"] == "pain-scale"
        assert data["session"]["total_messages"] == 2

    def test_validates_empty_message(self, client):
        session_id = _create(client)
        response = client.post(f"/api/intake/sessions/{session_id}/messages", json={"message": ""})
        assert response.status_code == 422

    def test_unknown_session_is_404(self, client):
        response = client.post(
            "/api/intake/sessions/intake_0_missing/messages", json={"message": "Hi"},
        )
        assert response.status_code == 404

    def test_terminal_session_is_409(self, client):
        session_id = _create(client)
        client.post(
            f"/api/intake/sessions/{session_id}/abandon", json={"current_status": "started"},
        )
        response = client.post(
            f"/api/intake/sessions/{session_id}/messages", json={"message": "Hi again"},
        )
        assert response.status_code == 409

    def test_backend_failure_is_502_without_leaking(self, client, conversation):
        conversation.error = RuntimeError("LLM exploded")
        session_id = _create(client)
        response = client.post(
            f"/api/intake/sessions/{session_id}/messages", json={"message": "Hello"},
        )
        assert response.status_code == 502
        assert "LLM exploded" not in response.json()["detail"]


class TestMatchingAndLifecycle:
    def test_empty_roster_is_404(self, client):
        session_id = _create(client)
        response = client.post(f"/api/intake/sessions/{session_id}/matching")
        assert response.status_code == 404
        assert "no dentists" in response.json()["detail"].lower()

    def test_full_flow(self, client, seed_dentists, summarizer):
        seed_dentists()
        session_id = _create(client)

        matching = client.post(f"/api/intake/sessions/{session_id}/matching")
        assert matching.status_code == 200
        ids = [m["dentist_id"] for m in matching.json()["matched_dentists"]]
        assert ids == ["d1", "d2", "d3"]

        selection = client.post(
            f"/api/intake/sessions/{session_id}/selection", json={"dentist_id": "d1"},
        )
        assert selection.status_code == 200
        assert selection.json() == {"success": True, "secondary_success": True}

        complete = client.post(
            f"/api/intake/sessions/{session_id}/complete", json={"appointment_id": "appt-1"},
        )
        assert complete.status_code == 200
        assert complete.json()["success"] is True

        session = client.get(f"/api/intake/sessions/{session_id}").json()
        assert session["status"] == "completed"
        assert session["selected_dentist_id"] == "d1"

    def test_abandon(self, client):
        session_id = _create(client)
        response = client.post(
            f"/api/intake/sessions/{session_id}/abandon",
            json={"current_status": "collecting_symptoms"},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_abandon_rejects_unknown_status(self, client):
        session_id = _create(client)
        response = client.post(
            f"/api/intake/sessions/{session_id}/abandon", json={"current_status": "napping"},
        )
        assert response.status_code == 422

    def test_select_unknown_session_is_404(self, client):
        response = client.post(
            "/api/intake/sessions/intake_0_missing/selection", json={"dentist_id": "d1"},
        )
        assert response.status_code == 404

    def test_completed_session_cannot_be_reopened(self, client, seed_dentists):
        seed_dentists()
        session_id = _create(client)
        client.post(
            f"/api/intake/sessions/{session_id}/complete", json={"appointment_id": "appt-1"},
        )

        selection = client.post(
            f"/api/intake/sessions/{session_id}/selection", json={"dentist_id": "d1"},
        )
        matching = client.post(f"/api/intake/sessions/{session_id}/matching")

        assert selection.status_code == 409
        assert matching.status_code == 409
        session = client.get(f"/api/intake/sessions/{session_id}").json()
        assert session["status"] == "completed"

    def test_complete_unknown_session_is_409(self, client):
        response = client.post(
            "/api/intake/sessions/intake_0_missing/complete", json={"appointment_id": "appt-1"},
        )
        assert response.status_code == 409

    def test_statistics(self, client):
        _create(client)
        _create(client)
        response = client.get("/api/intake/statistics", params={"business_id": "biz-1"})
        assert response.status_code == 200
        assert response.json()["total_started"] == 2


class TestErrorHandling:
    def test_unexpected_error_is_500_without_leaking(self):
        broken = MagicMock()
        broken.get_session.side_effect = RuntimeError("database password is hunter2")
        app.state.intake_service = broken
        try:
            response = TestClient(app).get("/api/intake/sessions/intake_1_a")
        finally:
            app.state.intake_service = None
        assert response.status_code == 500
        detail = response.json()["detail"]
        assert "hunter2" not in detail
        assert "internal error" in detail.lower()

    def test_response_includes_request_id_header(self, client):
        response = client.get("/api/health")
        assert "X-Request-ID" in response.headers

    def test_client_supplied_request_id_is_echoed(self, client):
        response = client.get("/api/health", headers={"X-Request-ID": "my-trace-id-123"})
        assert response.headers["X-Request-ID"] == "my-trace-id-123"


class TestServiceNotReady:
    def test_returns_503_when_service_not_initialised(self):
        with patch("dental_intake.server.create_intake_service", return_value=MagicMock()):
            with TestClient(app) as tc:
                app.state.intake_service = None
                response = tc.post("/api/intake/sessions", json={"business_id": "biz-1"})
        assert response.status_code == 503
        assert "starting up" in response.json()["detail"].lower()


class TestRootEndpoint:
    def test_root_returns_service_info(self, client):
        data = client.get("/").json()
        assert data["service"] == "Dental Intake Agent"
        assert data["health"] == "/api/health"
