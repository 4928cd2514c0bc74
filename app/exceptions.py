"""
Error taxonomy for the messaging core.

Validation and authorization failures are terminal for the operation that
raised them; transient failures may be retried by the caller.
"""

from __future__ import annotations


class MessagingError(Exception):
    """Base class for all messaging errors."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(MessagingError):
    """Input rejected (empty content, non-participant sender, ...)."""

    status_code = 400


class InvalidOperation(ValidationError):
    """Operation that can never succeed, e.g. a user messaging themself."""


class UnauthorizedError(MessagingError):
    """Caller is not a participant of the conversation."""

    status_code = 403


class NotFoundError(MessagingError):
    """Unknown conversation, message or user."""

    status_code = 404


class RateLimitedError(MessagingError):
    """Sender exceeded the configured per-minute message rate."""

    status_code = 429


class TransientFailure(MessagingError):
    """Network or database unavailable; safe to retry."""

    status_code = 503


_BY_STATUS: dict[int, type[MessagingError]] = {
    400: ValidationError,
    401: UnauthorizedError,
    403: UnauthorizedError,
    404: NotFoundError,
    422: ValidationError,
    429: RateLimitedError,
    503: TransientFailure,
}


def error_for_status(status_code: int, detail: str) -> MessagingError:
    """Rebuild a taxonomy error from an HTTP status (used by the HTTP client)."""
    if status_code >= 500:
        return TransientFailure(detail)
    error_cls = _BY_STATUS.get(status_code, MessagingError)
    return error_cls(detail)
