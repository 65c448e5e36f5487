"""Exceptions raised by the intake flow."""

from __future__ import annotations


class IntakeError(Exception):
    """Base class for intake flow failures."""

    def __init__(self, message: str, session_id: str | None = None):
        self.session_id = session_id
        super().__init__(message)


class SessionNotFoundError(IntakeError):
    """The session id does not resolve to a stored intake session."""

    def __init__(self, session_id: str):
        super().__init__(f"Intake session {session_id} not found", session_id)


class UpstreamUnavailableError(IntakeError):
    """An AI backend or the data store failed; nothing was persisted."""


class CallerMisuseError(IntakeError):
    """The operation is not valid for the session's current state."""
