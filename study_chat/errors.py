"""
Error types for the study chat core.

Server-side failures (discovery, candidate, exhaustion) are absorbed or
mapped to HTTP responses; client-side failures are turned into visible
assistant messages by the orchestrator.
"""

from typing import Any, Optional


class StudyChatError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class InputError(StudyChatError):
    def __init__(self, message: str):
        super().__init__("input_error", message)


class ConfigError(StudyChatError):
    def __init__(self, message: str):
        super().__init__("config_error", message)


class DiscoveryError(StudyChatError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__("discovery_error", message)
        self.status_code = status_code


class CandidateError(StudyChatError):
    """One upstream model rejected the request."""

    def __init__(self, model: str, message: str, status_code: Optional[int] = None):
        super().__init__("candidate_error", message, {"model": model})
        self.model = model
        self.status_code = status_code


class ExhaustionError(StudyChatError):
    """Every candidate failed; carries the last raw upstream error."""

    def __init__(self, message: str, last_error: str = "", attempts: int = 0):
        super().__init__("exhaustion_error", message, {"attempts": attempts})
        self.last_error = last_error
        self.attempts = attempts


class TransportError(StudyChatError):
    def __init__(self, message: str, status_code: Optional[int] = None,
                 details: Optional[dict[str, Any]] = None):
        super().__init__("transport_error", message, details)
        self.status_code = status_code


class SessionNotFoundError(StudyChatError):
    def __init__(self, session_id: str):
        super().__init__("session_not_found", f"Session not found: {session_id}", {"id": session_id})
        self.session_id = session_id


class SessionBusyError(StudyChatError):
    def __init__(self, session_id: str):
        super().__init__("session_busy", f"Session {session_id} already has a turn in flight", {"id": session_id})
        self.session_id = session_id


class StaleSessionError(StudyChatError):
    def __init__(self, session_id: str, expected: int, actual: int):
        super().__init__(
            "stale_session",
            f"Session {session_id} changed underneath the caller (expected version {expected}, found {actual})",
            {"id": session_id, "expected": expected, "actual": actual},
        )


class ConfirmationRequiredError(StudyChatError):
    def __init__(self, message: str = "Clearing all history requires explicit confirmation"):
        super().__init__("confirmation_required", message)


class StorageError(StudyChatError):
    def __init__(self, message: str):
        super().__init__("storage_error", message)
