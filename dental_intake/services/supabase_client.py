"""HTTP client for the practice's Supabase (PostgREST) database with retry
logic, timeout handling, and a TTL cache for dentist specializations.

PostgREST docs: https://postgrest.org/en/stable/references/api.html
Requests authenticate with the service-role key, sent both as the ``apikey``
header and as a Bearer token.  Every query is scoped by ``business_id``
explicitly; there is no ambient tenant.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any

import httpx

from dental_intake.config import DENTIST_CACHE_TTL_SECONDS, SUPABASE_SERVICE_KEY, SUPABASE_URL
from dental_intake.services.cache import LRUCache
from dental_intake.services.data_store import DataStoreError, Row
from dental_intake.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

# ── Tables ──────────────────────────────────────────────────────────
SESSIONS_TABLE = "ai_intake_sessions"
DENTISTS_TABLE = "dentists"
SPECIALIZATIONS_TABLE = "dentist_specializations"
MATCH_RESULTS_TABLE = "intake_match_results"
APPOINTMENTS_TABLE = "appointments"

_CK_SPECIALIZATIONS = "specializations:"

# Dentist row joined with its profile (PostgREST embedded resource).
_DENTIST_SELECT = (
    "id,specialization,bio,experience_years,languages,"
    "profiles!inner(first_name,last_name,email,phone,avatar_url,business_id)"
)


class SupabaseAPIError(DataStoreError):
    """Raised when a Supabase API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class SupabaseClient:
    """``IntakeDataStore`` backed by the Supabase REST API.

    Reads and writes go straight to PostgREST; only dentist specializations
    are cached (``DENTIST_CACHE_TTL_SECONDS``) because they are fetched once
    per candidate on every matching call and change rarely.
    """

    def __init__(
        self,
        url: str | None = None,
        service_key: str | None = None,
        *,
        cache: LRUCache | None = None,
    ):
        self._base_url = f"{(url or SUPABASE_URL).rstrip('/')}/rest/v1"
        key = service_key or SUPABASE_SERVICE_KEY
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        self._cache = cache or LRUCache(ttl_seconds=DENTIST_CACHE_TTL_SECONDS)

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | list[tuple[str, str]] | None = None,
        json_body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Execute a PostgREST request with exponential-backoff retries."""
        headers = {"Prefer": prefer} if prefer else None
        operation = f"{method} /{table}"
        last_error: Exception | None = None

        for attempt in range(1, MAX_RETRIES + 1):
            t0 = time.perf_counter()
            try:
                response = self._client.request(
                    method, f"/{table}", params=params, json=json_body, headers=headers,
                )
                elapsed = (time.perf_counter() - t0) * 1000
                if response.status_code >= 500:
                    metrics.record_failure("supabase", operation, "5xx", latency_ms=elapsed)
                    raise SupabaseAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    metrics.record_failure("supabase", operation, "4xx", latency_ms=elapsed)
                    raise SupabaseAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                metrics.record_success("supabase", operation, latency_ms=elapsed)
                if response.status_code == 204 or not response.content:
                    return None
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                metrics.record_failure("supabase", operation, type(exc).__name__)
                logger.warning(
                    "Supabase attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except SupabaseAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Supabase server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise  # 4xx errors are not retried

            if attempt < MAX_RETRIES:
                time.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise SupabaseAPIError(
            f"Supabase request failed after {MAX_RETRIES} retries: {last_error}"
        )

    # ── ai_intake_sessions ───────────────────────────────────────────

    def insert_intake_session(self, row: Row) -> Row:
        data = self._request(
            "POST", SESSIONS_TABLE, json_body=row, prefer="return=representation",
        )
        if not data:
            raise SupabaseAPIError("Insert returned no representation")
        return data[0]

    def get_intake_session(self, session_id: str) -> Row | None:
        data = self._request(
            "GET",
            SESSIONS_TABLE,
            params={"select": "*", "session_id": f"eq.{session_id}", "limit": "1"},
        )
        return data[0] if data else None

    def update_intake_session(self, session_id: str, fields: Row) -> None:
        data = self._request(
            "PATCH",
            SESSIONS_TABLE,
            params={"session_id": f"eq.{session_id}"},
            json_body=fields,
            prefer="return=representation",
        )
        if not data:
            raise SupabaseAPIError(f"No intake session {session_id} to update", status_code=404)

    def list_intake_sessions(
        self,
        business_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Row]:
        # A list of tuples: PostgREST needs started_at twice for a closed window.
        params: list[tuple[str, str]] = [
            ("select", "*"),
            ("business_id", f"eq.{business_id}"),
        ]
        if start is not None:
            params.append(("started_at", f"gte.{start.isoformat()}"))
        if end is not None:
            params.append(("started_at", f"lte.{end.isoformat()}"))
        return self._request("GET", SESSIONS_TABLE, params=params) or []

    # ── dentists ─────────────────────────────────────────────────────

    def list_active_dentists(self, business_id: str) -> list[Row]:
        """Active dentists of *business_id*, flattened with their profile."""
        data = self._request(
            "GET",
            DENTISTS_TABLE,
            params={
                "select": _DENTIST_SELECT,
                "profiles.business_id": f"eq.{business_id}",
                "is_active": "eq.true",
            },
        ) or []
        rows: list[Row] = []
        for dentist in data:
            profile = dentist.get("profiles") or {}
            rows.append(
                {
                    "id": dentist["id"],
                    "first_name": profile.get("first_name", ""),
                    "last_name": profile.get("last_name", ""),
                    "email": profile.get("email") or "",
                    "phone": profile.get("phone"),
                    "avatar_url": profile.get("avatar_url"),
                    "bio": dentist.get("bio") or "",
                    "experience_years": dentist.get("experience_years"),
                    "languages": dentist.get("languages") or ["English"],
                }
            )
        return rows

    def get_dentist_specializations(self, dentist_id: str) -> list[Row]:
        """Declared specializations of one dentist (cached with TTL)."""
        cache_key = f"{_CK_SPECIALIZATIONS}{dentist_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        data = self._request(
            "GET",
            SPECIALIZATIONS_TABLE,
            params={"select": "*", "dentist_id": f"eq.{dentist_id}"},
        ) or []
        self._cache.put(cache_key, data)
        return data

    def invalidate_dentist(self, dentist_id: str) -> None:
        """Drop cached data for *dentist_id* after an out-of-band edit."""
        if self._cache.invalidate(f"{_CK_SPECIALIZATIONS}{dentist_id}"):
            logger.debug("Cache: invalidated specializations for %s", dentist_id)

    # ── intake_match_results ─────────────────────────────────────────

    def record_match_results(self, session_id: str, rows: list[Row]) -> None:
        """Replace the session's match-result rows with *rows*."""
        self._request(
            "DELETE",
            MATCH_RESULTS_TABLE,
            params={"intake_session_id": f"eq.{session_id}"},
            prefer="return=minimal",
        )
        if not rows:
            return
        payload = [{"intake_session_id": session_id, **row} for row in rows]
        self._request("POST", MATCH_RESULTS_TABLE, json_body=payload, prefer="return=minimal")

    def mark_match_result_selected(self, session_id: str, dentist_id: str) -> None:
        self._request(
            "PATCH",
            MATCH_RESULTS_TABLE,
            params={
                "intake_session_id": f"eq.{session_id}",
                "dentist_id": f"eq.{dentist_id}",
            },
            json_body={"was_selected": True},
            prefer="return=minimal",
        )

    # ── appointments ─────────────────────────────────────────────────

    def update_appointment_notes(self, appointment_id: str, notes: str) -> None:
        self._request(
            "PATCH",
            APPOINTMENTS_TABLE,
            params={"id": f"eq.{appointment_id}"},
            json_body={"notes": notes},
            prefer="return=minimal",
        )


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: SupabaseClient | None = None
_client_lock = threading.Lock()


def get_supabase_client() -> SupabaseClient:
    """Return a module-level SupabaseClient singleton (double-checked locking)."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = SupabaseClient()
    return _client
