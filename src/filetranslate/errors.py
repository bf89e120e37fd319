"""Error taxonomy shared by the pipeline, the scheduler and the HTTP layer."""

from __future__ import annotations


class TranslatorError(Exception):
    """Base class. ``retryable`` drives the scheduler, ``status_code`` the API."""

    status_code: int = 500
    retryable: bool = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TranslatorError):
    status_code = 400
    retryable = False


class FileTooLargeError(ValidationError):
    status_code = 413


class UnsupportedFormatError(TranslatorError):
    status_code = 400
    retryable = False


class AuthError(TranslatorError):
    """Bad or missing API credential; retrying cannot help."""

    status_code = 502
    retryable = False


class RateLimitError(TranslatorError):
    status_code = 503


class ServerError(TranslatorError):
    status_code = 502


class ResponseFormatError(TranslatorError):
    status_code = 502


class NotFoundError(TranslatorError):
    status_code = 404
    retryable = False


class OwnershipError(TranslatorError):
    status_code = 403
    retryable = False


class StorageError(TranslatorError):
    """Disk full, permissions and other ``OSError`` surfaced as task failures."""

    status_code = 500


def is_fatal(exc: BaseException) -> bool:
    """True when a processing error must fail the task without further attempts."""
    return isinstance(exc, TranslatorError) and not exc.retryable
