"""Async OAuth2 session handling for pynetatmo."""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Set

import aiohttp

from .classifier import ErrorClassifier
from .clock import Clock, LoopClock
from .const import (
    BASE_URL,
    DEFAULT_TIMEOUT,
    EVENT_AUTHENTICATED,
    MAX_PENDING_CALLS,
    TOKEN_ENDPOINT,
)
from .events import EventEmitter
from .exceptions import ApiError, AuthError, ErrorKind, Severity, ValidationError
from .gate import DeferredDispatchGate
from .models import (
    AuthorizationCodeGrant,
    Credentials,
    PasswordGrant,
    PreissuedToken,
    Session,
    SessionState,
    TransportResponse,
)

_LOGGER = logging.getLogger(__name__)


class SessionManager:
    """Handles async authentication and token management using aiohttp.

    The manager owns the token state of one client, the refresh timer and the
    gate holding calls made before authentication completed.
    """

    def __init__(
        self,
        credentials: Credentials,
        emitter: EventEmitter,
        classifier: ErrorClassifier,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Clock] = None,
        base_url: str = BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_pending_calls: int = MAX_PENDING_CALLS,
    ) -> None:
        """Initialize the session manager."""
        self._credentials = credentials
        self._emitter = emitter
        self._classifier = classifier
        self._clock = clock or LoopClock()
        self._base_url = base_url
        self._timeout = timeout
        self._session = Session()
        self._gate = DeferredDispatchGate(
            lambda: self._session.state is SessionState.AUTHENTICATED,
            max_pending_calls,
            classifier.report,
        )
        self._refresh_tasks: Set[asyncio.Task] = set()
        # Use provided session or create a new one
        self._http_session = session
        self._managed_session = session is None

    @property
    def state(self) -> SessionState:
        """Return the current session state."""
        return self._session.state

    @property
    def session(self) -> Session:
        """Return the token state."""
        return self._session

    @property
    def access_token(self) -> Optional[str]:
        """Return the current access token, if any."""
        return self._session.access_token

    @property
    def is_authenticated(self) -> bool:
        """Return True if calls are dispatched immediately."""
        return self._session.state is SessionState.AUTHENTICATED

    @property
    def gate(self) -> DeferredDispatchGate:
        """Return the gate holding calls until authentication completes."""
        return self._gate

    @property
    def base_url(self) -> str:
        """Return the API base URL."""
        return self._base_url

    @property
    def timeout(self) -> float:
        """Return the request timeout in seconds."""
        return self._timeout

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._http_session is None or self._http_session.closed:
            _LOGGER.debug("Creating new aiohttp ClientSession for SessionManager.")
            self._http_session = aiohttp.ClientSession()
            self._managed_session = True  # We created it, so we manage it
        return self._http_session

    async def close(self) -> None:
        """Stop refreshing, drop pending calls and close a managed session."""
        self._cancel_refresh_timer()
        for task in list(self._refresh_tasks):
            task.cancel()
        cancelled = self._gate.cancel_pending()
        if cancelled:
            _LOGGER.debug("Cancelled %d deferred calls on close", cancelled)
        if (
            self._http_session
            and not self._http_session.closed
            and self._managed_session
        ):
            await self._http_session.close()
            self._http_session = None
            _LOGGER.debug("Managed aiohttp session closed by SessionManager.")
        elif self._http_session and not self._managed_session:
            _LOGGER.debug("Session provided externally, not closing.")

    def start(self) -> asyncio.Task:
        """Start authenticating in the background and return the task.

        Failures are reported on the event channels and fail the deferred
        calls; the task never ends with an unretrieved exception.
        """
        task = asyncio.ensure_future(self.authenticate())
        task.add_done_callback(self._consume_result)
        return task

    async def authenticate(self, credentials: Optional[Credentials] = None) -> None:
        """Obtain an access token using the configured grant."""
        if credentials is not None:
            self._credentials = credentials
        credentials = self._credentials
        grant = credentials.grant

        if isinstance(grant, PreissuedToken):
            _LOGGER.debug("Using pre-issued access token, no refresh scheduled.")
            self._cancel_refresh_timer()
            self._session.access_token = grant.access_token
            self._session.refresh_token = None
            self._session.expires_at = None
            self._set_authenticated()
            return

        if not credentials.client_id:
            self._fail_validation("Authenticate 'client_id' not set.")
        if not credentials.client_secret:
            self._fail_validation("Authenticate 'client_secret' not set.")

        payload = self._grant_payload(credentials)
        if payload is None:
            self._fail_validation("No valid authentication parameters set.")

        self._session.state = SessionState.AUTHENTICATING
        try:
            token_data = await self._request_token(
                payload, "Authenticate error", critical=True
            )
        except ApiError as err:
            self._session.state = SessionState.FAILED
            self._gate.fail(err)
            raise

        self._apply_token(token_data)
        _LOGGER.info("Authentication successful. Access token obtained.")
        self._set_authenticated()

    async def refresh(self, refresh_token: Optional[str] = None) -> None:
        """Refresh the access token using the refresh token.

        A failed refresh is reported as a warning and leaves the current
        access token in place.
        """
        refresh_token = refresh_token or self._session.refresh_token
        if not refresh_token:
            err_msg = "Authenticate refresh error: No refresh token available"
            raise self._classifier.report(AuthError(err_msg, Severity.WARNING))

        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self._credentials.client_id,
            "client_secret": self._credentials.client_secret,
        }

        _LOGGER.info("Refreshing access token...")
        self._session.state = SessionState.REFRESHING
        try:
            token_data = await self._request_token(
                payload, "Authenticate refresh error", critical=False
            )
        except ApiError:
            if self._session.access_token:
                # Keep serving calls with the current token
                self._set_authenticated(emit=False)
            else:
                self._session.state = SessionState.FAILED
            raise

        self._apply_token(token_data)
        _LOGGER.info("Access token refreshed successfully.")
        self._set_authenticated(emit=False)

    def _grant_payload(self, credentials: Credentials) -> Optional[Dict[str, Any]]:
        """Build the token request form for the configured grant."""
        payload: Dict[str, Any] = {
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
            "scope": credentials.scope,
        }
        grant = credentials.grant
        if isinstance(grant, PasswordGrant):
            payload["grant_type"] = "password"
            payload["username"] = grant.username
            payload["password"] = grant.password
        elif isinstance(grant, AuthorizationCodeGrant):
            payload["grant_type"] = "authorization_code"
            payload["code"] = grant.code
            if grant.redirect_uri:
                payload["redirect_uri"] = grant.redirect_uri
        else:
            return None
        return payload

    async def _request_token(
        self, payload: Dict[str, Any], context: str, critical: bool
    ) -> Dict[str, Any]:
        """POST ``payload`` to the token endpoint and return the token data."""
        url = self._base_url + TOKEN_ENDPOINT
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        session = await self.get_session()

        try:
            _LOGGER.debug(
                "Requesting token from %s (grant_type=%s)",
                url,
                payload["grant_type"],
            )
            async with session.post(
                url,
                data=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                result = TransportResponse(
                    response.status, response.headers, await response.read()
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as req_err:
            raise self._classifier.classify(
                context, error=req_err, critical=critical, kind=ErrorKind.AUTH
            ) from req_err

        if result.status != 200:
            raise self._classifier.classify(
                context, response=result, critical=critical, kind=ErrorKind.AUTH
            )

        try:
            token_data = json.loads(result.body)
        except ValueError:
            token_data = None
        severity = Severity.CRITICAL if critical else Severity.WARNING
        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            err_msg = f"{context}: Missing access_token in response"
            raise self._classifier.report(
                AuthError(err_msg, severity, status_code=result.status)
            )
        if token_data.get("expires_in"):
            try:
                token_data["expires_in"] = int(token_data["expires_in"])
            except (TypeError, ValueError) as err:
                err_msg = f"{context}: Invalid expires_in in response"
                raise self._classifier.report(
                    AuthError(err_msg, severity, status_code=result.status)
                ) from err
        return token_data

    def _apply_token(self, token_data: Dict[str, Any]) -> None:
        """Store a token response and schedule the next refresh."""
        expires_in = token_data.get("expires_in")
        delay = int(expires_in) if expires_in else None
        self._cancel_refresh_timer()
        self._session.access_token = token_data["access_token"]
        self._session.refresh_token = token_data.get(
            "refresh_token",
            self._session.refresh_token,
        )
        if delay:
            self._session.expires_at = time.time() + delay
            self._session.refresh_handle = self._clock.call_later(
                delay, self._on_refresh_timer, self._session.refresh_token
            )
            _LOGGER.debug("Token expires at: %s", self._session.expires_at)
        else:
            self._session.expires_at = None
            _LOGGER.warning("No 'expires_in' found in token response.")

    def _cancel_refresh_timer(self) -> None:
        if self._session.refresh_handle is not None:
            self._session.refresh_handle.cancel()
            self._session.refresh_handle = None

    def _on_refresh_timer(self, refresh_token: Optional[str]) -> None:
        self._session.refresh_handle = None
        task = asyncio.ensure_future(self.refresh(refresh_token))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)
        task.add_done_callback(self._consume_result)

    def _set_authenticated(self, emit: bool = True) -> None:
        self._session.state = SessionState.AUTHENTICATED
        if emit:
            self._emitter.emit(EVENT_AUTHENTICATED)
        self._gate.release()

    def _fail_validation(self, message: str) -> None:
        error = self._classifier.report(ValidationError(message, Severity.CRITICAL))
        self._session.state = SessionState.FAILED
        self._gate.fail(error)
        raise error

    @staticmethod
    def _consume_result(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        err = task.exception()
        if err is not None and not isinstance(err, ApiError):
            _LOGGER.error("Unexpected error in background token request", exc_info=err)
        elif err is not None:
            _LOGGER.debug("Background token request ended with: %s", err)
