"""Custom exceptions for pynetatmo."""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Category of a failure surfaced to the caller."""

    AUTH = "auth"
    HTTP = "http"
    PROTOCOL = "protocol"
    VALIDATION = "validation"


class Severity(Enum):
    """Whether a failure is reported on the warning or the error channel."""

    WARNING = "warning"
    CRITICAL = "critical"


class PyNetatmoException(Exception):
    """Base class for pynetatmo exceptions."""


class ApiError(PyNetatmoException):
    """Raised when an API call fails.

    Every error carries exactly one ``kind``. ``status_code`` is ``None``
    when no HTTP response was received.
    """

    kind = ErrorKind.HTTP

    def __init__(
        self,
        message: str,
        severity: Severity = Severity.CRITICAL,
        status_code: Optional[int] = None,
    ) -> None:
        """Initialize the API error."""
        self.message = message
        self.severity = severity
        self.status_code = status_code
        super().__init__(message)

    @property
    def critical(self) -> bool:
        """Return True if the error is reported on the error channel."""
        return self.severity is Severity.CRITICAL


class AuthError(ApiError):
    """Raised when token issuance or refresh fails."""

    kind = ErrorKind.AUTH


class HttpError(ApiError):
    """Raised on a non-200 response or a transport failure."""

    kind = ErrorKind.HTTP


class ProtocolError(ApiError):
    """Raised when a response does not carry the expected JSON envelope."""

    kind = ErrorKind.PROTOCOL


class ValidationError(ApiError):
    """Raised when a required option is missing."""

    kind = ErrorKind.VALIDATION


ERROR_CLASSES = {
    ErrorKind.AUTH: AuthError,
    ErrorKind.HTTP: HttpError,
    ErrorKind.PROTOCOL: ProtocolError,
    ErrorKind.VALIDATION: ValidationError,
}
