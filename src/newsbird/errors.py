"""Exception taxonomy shared by the detector, budgeter and pipeline."""

from __future__ import annotations


class NewsbirdError(Exception):
    """Base class for all newsbird errors."""


class StorageError(NewsbirdError):
    """Raised when the fingerprint or draft store is unavailable or corrupt."""


class GenerationUnavailable(NewsbirdError):
    """Raised when the text-completion call fails or returns unusable output."""


class PublishError(NewsbirdError):
    """Raised when the social platform rejects a post."""


class ValidationError(NewsbirdError):
    """Raised when a draft cannot fit the character budget even after degradation."""


class CallTimeoutError(NewsbirdError, TimeoutError):
    """Raised when a call to an external collaborator exceeds its timeout."""

    def __init__(self, label: str, timeout: float) -> None:
        super().__init__(f"{label} timed out after {timeout:g}s")
        self.label = label
        self.timeout = timeout


class DraftStateError(NewsbirdError):
    """Raised when a queued draft is missing or not in a state that allows the action."""
