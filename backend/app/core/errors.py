"""Error taxonomy for record loading and write-back."""

from __future__ import annotations

from typing import Any

# TransportError kinds
NOT_FOUND = "not_found"
PERMISSION = "permission"
NETWORK = "network"
CONFLICT = "conflict"
UNKNOWN = "unknown"
# LoadError / SaveError only
TIMEOUT = "timeout"

_MESSAGES = {
    TIMEOUT: "Request timed out. Please check your connection and try again.",
    PERMISSION: "Permission denied. Please contact your administrator.",
    NETWORK: "Network error. Please check your internet connection.",
    NOT_FOUND: "Employee record not found.",
    CONFLICT: "The record was changed by someone else. Please review and save again.",
    UNKNOWN: "Unable to load complete employee details.",
}


def user_message(kind: str) -> str:
    return _MESSAGES.get(kind, _MESSAGES[UNKNOWN])


class AppError(Exception):
    """Base class for errors raised by the record services."""


class RecordSourceError(AppError):
    """A call to the remote record source did not produce a result."""


class CallTimeoutError(RecordSourceError):
    def __init__(self, elapsed_ms: float, label: str | None = None) -> None:
        self.elapsed_ms = elapsed_ms
        self.label = label
        target = f" ({label})" if label else ""
        super().__init__(f"Request timeout after {elapsed_ms:.0f}ms{target}")


class TransportError(RecordSourceError):
    def __init__(self, kind: str, message: str) -> None:
        self.kind = kind
        super().__init__(message)


def classify(error: BaseException) -> str:
    """Map a failure onto the kinds used for user-facing messages."""
    if isinstance(error, CallTimeoutError):
        return TIMEOUT
    if isinstance(error, TransportError):
        return error.kind
    text = str(error).lower()
    if "timeout" in text:
        return TIMEOUT
    if "permission" in text:
        return PERMISSION
    if "network" in text:
        return NETWORK
    return UNKNOWN


class PartialAggregationError(AppError):
    """Primary record loaded but some sub-collections are unavailable.

    Attached to aggregation results as a degraded-state signal; not raised.
    """

    def __init__(self, failures: dict[str, str]) -> None:
        self.failures = dict(failures)
        sections = ", ".join(sorted(self.failures))
        super().__init__(f"Unavailable sections: {sections}")

    @property
    def sections(self) -> list[str]:
        return sorted(self.failures)


class LoadError(AppError):
    def __init__(
        self,
        kind: str,
        reason: str,
        partial_data: Any = None,
        elapsed_ms: float = 0.0,
    ) -> None:
        self.kind = kind
        self.reason = reason
        self.partial_data = partial_data
        self.elapsed_ms = elapsed_ms
        super().__init__(reason)

    @property
    def message(self) -> str:
        return user_message(self.kind)


class SaveError(AppError):
    def __init__(self, kind: str, reason: str, edited_fields: dict[str, Any]) -> None:
        self.kind = kind
        self.reason = reason
        self.edited_fields = edited_fields
        super().__init__(reason)

    @property
    def message(self) -> str:
        if self.kind == UNKNOWN:
            return "Failed to update employee details."
        return user_message(self.kind)


class SaveConflictError(SaveError):
    def __init__(self, reason: str, edited_fields: dict[str, Any]) -> None:
        super().__init__(CONFLICT, reason, edited_fields)


class InvalidEditError(AppError, ValueError):
    """The edit set names fields that cannot be written through a save."""


class InvalidTransitionError(AppError):
    """The requested operation is not valid in the session's current state."""
