"""Authenticated HTTP requests to the Netatmo API."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import aiohttp

from .exceptions import AuthError
from .models import RequestDescriptor, TransportResponse

if TYPE_CHECKING:
    from .auth import SessionManager

_LOGGER = logging.getLogger(__name__)


def _encode_query(params: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Encode query values the way the API expects them on the wire."""
    query: Dict[str, Any] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            value = ",".join(str(item) for item in value)
        query[key] = value
    return query


def _encode_form(form: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Encode form values; nested structures are sent as JSON."""
    data: Dict[str, Any] = {}
    for key, value in (form or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (dict, list, tuple)):
            value = json.dumps(value)
        data[key] = str(value)
    return data


class RequestExecutor:
    """Sends requests carrying the current access token.

    GET requests carry the token in the ``Authorization`` header, POST
    requests in an ``access_token`` form field, as the API requires. The
    executor returns raw responses; parsing and error classification are left
    to the caller.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        """Initialize the executor."""
        self._session_manager = session_manager

    def _require_token(self, path: str) -> str:
        access_token = self._session_manager.access_token
        if not access_token:
            err_msg = f"Refusing to call {path} without an access token"
            raise AuthError(err_msg)
        return access_token

    async def get(
        self, path: str, query: Optional[Mapping[str, Any]] = None
    ) -> TransportResponse:
        """Make an authenticated async GET request."""
        access_token = self._require_token(path)
        headers = {"Authorization": f"Bearer {access_token}"}
        return await self._request(
            "GET", path, headers=headers, params=_encode_query(query)
        )

    async def post(
        self, path: str, form: Optional[Mapping[str, Any]] = None
    ) -> TransportResponse:
        """Make an authenticated async POST request."""
        access_token = self._require_token(path)
        data = _encode_form(form)
        data["access_token"] = access_token
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        return await self._request("POST", path, headers=headers, data=data)

    async def send(self, descriptor: RequestDescriptor) -> TransportResponse:
        """Send the request described by ``descriptor``."""
        if descriptor.method == "GET":
            return await self.get(descriptor.path, descriptor.params)
        if descriptor.method == "POST":
            return await self.post(descriptor.path, descriptor.params)
        err_msg = f"Unsupported method {descriptor.method}"
        raise ValueError(err_msg)

    async def _request(
        self, method: str, path: str, headers: Dict[str, str], **kwargs: Any
    ) -> TransportResponse:
        url = self._session_manager.base_url + path
        session = await self._session_manager.get_session()

        _LOGGER.debug("Making ASYNC %s request to %s", method, url)
        _LOGGER.debug(
            "Headers: %s",
            {
                k: (v[:30] + "..." if k == "Authorization" else v)
                for k, v in headers.items()
            },
        )

        async with session.request(
            method,
            url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self._session_manager.timeout),
            **kwargs,
        ) as response:
            _LOGGER.debug("Response status code: %s", response.status)
            return TransportResponse(
                response.status, response.headers, await response.read()
            )
