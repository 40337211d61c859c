"""Error types."""

from __future__ import annotations


class TurnframeError(Exception):
    """Base class for all turnframe errors."""


class HardwareUnavailable(TurnframeError, RuntimeError):
    """The audio input device could not be opened."""


class ValidationError(TurnframeError, ValueError):
    """A turn number, payload or parameter is malformed."""


class TurnDecodeError(ValidationError):
    """A persisted turn manifest does not match the expected schema."""

    def __init__(self, key: str, detail: str) -> None:
        super().__init__(f"{key}: {detail}")
        self.key = key
        self.detail = detail


class StorageError(TurnframeError):
    """An object store read or write failed."""


class PartialAggregationError(TurnframeError):
    """One turn could not be read during aggregation.

    Never raised out of the finalizer; instances are logged and the key is
    recorded as an omission on the result.
    """

    def __init__(self, key: str, cause: Exception) -> None:
        super().__init__(f"turn {key} skipped: {cause}")
        self.key = key
        self.cause = cause


class DispatchError(TurnframeError):
    """Sending a notification failed."""
