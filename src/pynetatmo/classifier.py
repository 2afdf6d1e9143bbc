"""Turns HTTP and transport failures into typed API errors."""

import json
import logging
from typing import Any, Optional

from .const import EVENT_ERROR, EVENT_WARNING
from .events import EventEmitter
from .exceptions import ERROR_CLASSES, ApiError, ErrorKind, Severity
from .models import TransportResponse

_LOGGER = logging.getLogger(__name__)

_AUTH_STATUSES = (401, 403)


def is_json_response(response: TransportResponse) -> bool:
    """Return True if the response declares a JSON body."""
    content_type = response.content_type
    if not content_type:
        return False
    return "application/json" in content_type.strip().lower()


def _error_detail(response: TransportResponse) -> Optional[str]:
    """Extract the error message of a JSON error body, if there is one."""
    if not response.body or not is_json_response(response):
        return None
    try:
        data = json.loads(response.body)
    except ValueError:
        _LOGGER.debug("Error body declared as JSON but could not be parsed")
        return None
    if not isinstance(data, dict) or not data.get("error"):
        return None
    error: Any = data["error"]
    if isinstance(error, dict):
        error = error.get("message") or error
    return str(error)


class ErrorClassifier:
    """Builds ``ApiError`` instances and reports them on the event channels."""

    def __init__(self, emitter: EventEmitter) -> None:
        """Initialize the classifier."""
        self._emitter = emitter

    def classify(
        self,
        context: str,
        *,
        error: Optional[BaseException] = None,
        response: Optional[TransportResponse] = None,
        critical: bool = True,
        kind: Optional[ErrorKind] = None,
    ) -> ApiError:
        """Classify a failed request and report it.

        ``context`` prefixes the message, e.g. ``"getMeasure error"``.
        """
        if response is None:
            detail = "No response"
            status_code = None
        else:
            status_code = response.status
            detail = _error_detail(response) or f"Status code {response.status}"

        if kind is None:
            if status_code in _AUTH_STATUSES:
                kind = ErrorKind.AUTH
            else:
                kind = ErrorKind.HTTP

        severity = Severity.CRITICAL if critical else Severity.WARNING
        api_error = ERROR_CLASSES[kind](
            f"{context}: {detail}", severity=severity, status_code=status_code
        )
        if error is not None:
            api_error.__cause__ = error
        return self.report(api_error)

    def report(self, api_error: ApiError) -> ApiError:
        """Emit ``api_error`` on the channel matching its severity."""
        if api_error.critical:
            _LOGGER.error("%s", api_error.message)
            self._emitter.emit(EVENT_ERROR, api_error)
        else:
            _LOGGER.warning("%s", api_error.message)
            self._emitter.emit(EVENT_WARNING, api_error)
        return api_error
