"""Session Store Adapter: CRUD for ``IntakeSession`` records.

Wraps an ``IntakeDataStore`` and converts rows to models.  ``create``,
``get`` and ``update`` never raise on store failure: they log and return
``None`` / ``False`` so callers can treat "no session" uniformly.
``require`` is the strict variant used by operations for which a missing
session is fatal.
"""

from __future__ import annotations

import logging
import secrets
import string
import time

from pydantic import ValidationError

from dental_intake.intake.errors import SessionNotFoundError, UpstreamUnavailableError
from dental_intake.intake.models import IntakeSession, IntakeSessionPatch, utcnow
from dental_intake.services.data_store import DataStoreError, IntakeDataStore

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_session_id() -> str:
    """``intake_<epoch ms>_<9 random base36 chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"intake_{int(time.time() * 1000)}_{suffix}"


class SessionStore:
    def __init__(self, data_store: IntakeDataStore) -> None:
        self._data = data_store

    def create(self, business_id: str, patient_id: str | None = None) -> IntakeSession | None:
        """Persist a fresh session in ``started`` state.

        Returns ``None`` if the write failed; callers must not start a
        conversation without a session.
        """
        session = IntakeSession(
            session_id=new_session_id(),
            business_id=business_id,
            patient_id=patient_id,
        )
        session.updated_at = session.started_at
        try:
            row = self._data.insert_intake_session(session.model_dump(mode="json"))
            return IntakeSession.model_validate(row)
        except (DataStoreError, ValidationError):
            logger.exception("Error creating intake session for business %s", business_id)
            return None

    def get(self, session_id: str) -> IntakeSession | None:
        try:
            row = self._data.get_intake_session(session_id)
        except DataStoreError:
            logger.exception("Error fetching intake session %s", session_id)
            return None
        if row is None:
            return None
        return IntakeSession.model_validate(row)

    def require(self, session_id: str) -> IntakeSession:
        """Fetch a session, raising instead of returning ``None``."""
        try:
            row = self._data.get_intake_session(session_id)
        except DataStoreError as exc:
            raise UpstreamUnavailableError(
                f"Could not load intake session {session_id}: {exc}", session_id,
            ) from exc
        if row is None:
            raise SessionNotFoundError(session_id)
        return IntakeSession.model_validate(row)

    def update(self, session_id: str, patch: IntakeSessionPatch) -> bool:
        """Write the fields set on *patch* (last write wins) and bump ``updated_at``."""
        patch.updated_at = utcnow()
        try:
            self._data.update_intake_session(session_id, patch.to_row())
            return True
        except DataStoreError:
            logger.exception("Error updating intake session %s", session_id)
            return False
