"""Data models for pynetatmo."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from .const import DEFAULT_SCOPE


@dataclass(frozen=True)
class PasswordGrant:
    """Resource owner password credentials."""

    username: str
    password: str


@dataclass(frozen=True)
class AuthorizationCodeGrant:
    """Authorization code obtained through the OAuth2 redirect flow."""

    code: str
    redirect_uri: Optional[str] = None


@dataclass(frozen=True)
class PreissuedToken:
    """Access token managed outside of this library."""

    access_token: str


Grant = Union[PasswordGrant, AuthorizationCodeGrant, PreissuedToken]


@dataclass(frozen=True)
class Credentials:
    """Application credentials and the grant used to obtain a token."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    grant: Optional[Grant] = None
    scope: str = DEFAULT_SCOPE

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> Credentials:
        """Build credentials from loose keyword options.

        ``access_token`` wins over ``username``/``password``, which wins over
        ``code``. Without any of them the grant is left unset.
        """
        grant: Optional[Grant] = None
        if options.get("access_token"):
            grant = PreissuedToken(options["access_token"])
        elif options.get("username") and options.get("password"):
            grant = PasswordGrant(options["username"], options["password"])
        elif options.get("code"):
            grant = AuthorizationCodeGrant(
                options["code"], options.get("redirect_uri")
            )
        return cls(
            client_id=options.get("client_id"),
            client_secret=options.get("client_secret"),
            grant=grant,
            scope=options.get("scope") or DEFAULT_SCOPE,
        )


class SessionState(Enum):
    """Lifecycle of the OAuth2 session."""

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclass
class Session:
    """Token state of one client instance."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None
    state: SessionState = SessionState.UNAUTHENTICATED
    refresh_handle: Any = None


@dataclass(eq=False)
class PendingCall:
    """An endpoint call parked until the session is authenticated."""

    name: str
    future: asyncio.Future = field(repr=False)

    @property
    def done(self) -> bool:
        """Return True once the call was released, failed or cancelled."""
        return self.future.done()

    def release(self) -> None:
        """Let the parked call proceed."""
        if not self.future.done():
            self.future.set_result(None)

    def fail(self, error: BaseException) -> None:
        """Fail the parked call with ``error``."""
        if not self.future.done():
            self.future.set_exception(error)

    def cancel(self) -> bool:
        """Cancel the parked call."""
        return self.future.cancel()


@dataclass(frozen=True)
class RequestDescriptor:
    """A single request to the API."""

    method: str
    path: str
    params: Dict[str, Any] = field(default_factory=dict)
    requires_auth: bool = True


@dataclass(frozen=True)
class TransportResponse:
    """Raw result of an HTTP round trip."""

    status: int
    headers: Optional[Mapping[str, str]] = None
    body: bytes = b""

    @property
    def content_type(self) -> Optional[str]:
        """Return the Content-Type header, or None if absent."""
        if not self.headers:
            return None
        value = self.headers.get("Content-Type")
        if value is None:
            value = self.headers.get("content-type")
        return value
