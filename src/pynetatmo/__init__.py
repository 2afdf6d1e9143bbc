"""Python library for interacting with the Netatmo API."""

# Import main classes for easier access
from .auth import SessionManager
from .client import NetatmoClient
from .models import (
    AuthorizationCodeGrant,
    Credentials,
    PasswordGrant,
    PreissuedToken,
    SessionState,
)

# Import exceptions for easier handling
from .exceptions import (
    ApiError,
    AuthError,
    ErrorKind,
    HttpError,
    ProtocolError,
    PyNetatmoException,
    Severity,
    ValidationError,
)

__version__ = "0.1.0"

# Define what gets imported with 'from pynetatmo import *'
__all__ = [
    "NetatmoClient",
    "SessionManager",
    "Credentials",
    "PasswordGrant",
    "AuthorizationCodeGrant",
    "PreissuedToken",
    "SessionState",
    "PyNetatmoException",
    "ApiError",
    "AuthError",
    "HttpError",
    "ProtocolError",
    "ValidationError",
    "ErrorKind",
    "Severity",
    "__version__",
]
