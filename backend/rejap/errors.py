from __future__ import annotations


class RejapError(Exception):
    """Base class for errors that surface to API callers."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RejapError):
    status_code = 400


class NotFound(RejapError):
    status_code = 404


class UpstreamGenerationError(RejapError):
    # The quiz stays empty so the next fetch can try again
    status_code = 500


class InvariantViolation(RejapError):
    status_code = 500


class UpstreamFeedbackError(Exception):
    """Explanation/analysis/recommendation call failed.

    Never reaches the caller: the AI service logs it and returns fallback text.
    """


class ConcurrencyConflict(Exception):
    """Another request persisted the quiz questions first. Recovered by re-reading."""
