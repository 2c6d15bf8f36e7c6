"""Exception types raised by the runtime core."""

from __future__ import annotations


class TaskStreamError(Exception):
    """Base class for caller-facing runtime errors."""


class ChannelStateError(TaskStreamError):
    """A stream channel was used outside its lifecycle (e.g. opened twice)."""


class BufferFinalizedError(TaskStreamError):
    """Text was appended to a buffer that has already been finalized."""


class FormStateError(TaskStreamError):
    """A form operation was invoked from a state that does not allow it."""

    def __init__(self, operation: str, state: str, detail: str | None = None) -> None:
        self.operation = operation
        self.state = state
        message = f"{operation} is not allowed while the form is {state}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class TransportError(TaskStreamError):
    """Connection failed, dropped, or delivered a malformed frame.

    Never escapes a channel; it is converted into a terminal ``Error`` event.
    """


class ArtifactParseError(TaskStreamError):
    """An embedded block was not valid JSON or did not match its declared type.

    Absorbed by the extractor, which falls back to plain text.
    """

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(message)


class FieldValidationError(TaskStreamError):
    """A value supplied at submission time failed its field's rules."""

    def __init__(self, field_name: str, message: str) -> None:
        self.field_name = field_name
        super().__init__(message)
