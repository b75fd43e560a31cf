"""
This module defines the error taxonomy shared by every component.

Validation-style errors carry the full list of violations found, so callers
get complete diagnostics in a single round trip.
"""
from typing import List


class EventSourcingError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(EventSourcingError):
    """Raised for malformed setup, such as missing construction options."""


class ValidationError(EventSourcingError):
    """Raised when a command, event or payload is structurally invalid."""

    def __init__(self, message: str, errors: List[str] | None = None):
        self.message = message
        self.errors = list(errors or [])
        detail = f": {'; '.join(self.errors)}" if self.errors else ""
        super().__init__(f"{message}{detail}")


class HandlerNotFoundError(EventSourcingError, LookupError):
    """Raised when no handler is registered for a message name and version."""


class SequencingError(EventSourcingError):
    """Raised when an event version is not the expected next version."""

    def __init__(self, expected_version: int, actual_version: int, message: str | None = None):
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            message
            or f"Event version mismatch: expected version {expected_version}, got version {actual_version}"
        )


class ConcurrencyError(SequencingError):
    """Raised by an event store when the stream moved on since it was loaded."""

    def __init__(self, aggregate_id: str, expected_version: int, actual_version: int):
        self.aggregate_id = aggregate_id
        super().__init__(
            expected_version,
            actual_version,
            f"Concurrency conflict on aggregate {aggregate_id}: "
            f"expected version {expected_version}, but stream is at {actual_version}",
        )


class TypeMismatchError(EventSourcingError):
    """Raised when a command is executed against another aggregate type's stream."""

    def __init__(self, expected_type: str, actual_type: str | None):
        self.expected_type = expected_type
        self.actual_type = actual_type
        super().__init__(
            f"Aggregate is of wrong type for this command: "
            f"state({actual_type}) aggregate({expected_type})"
        )
