from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Callable
from urllib.parse import urlparse

TOKEN_PATH = "/oauth2/token"


class FakeResponse:
    def __init__(
        self,
        status: int = 200,
        json_data: Any = None,
        *,
        body: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status = status
        if body is None and json_data is not None:
            body = json.dumps(json_data).encode()
            if headers is None:
                headers = {"Content-Type": "application/json; charset=utf-8"}
        self._body = body or b""
        self.headers = headers if headers is not None else {}

    async def read(self) -> bytes:
        return self._body


class _RequestContext:
    def __init__(self, session: FakeSession, call: dict[str, Any]) -> None:
        self._session = session
        self._call = call

    async def __aenter__(self) -> FakeResponse:
        outcome = self._session.handler(self._call)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


class FakeSession:
    """Stands in for aiohttp.ClientSession, routing requests by path."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.routes: dict[str, Any] = {}
        self.closed = False

    def route(self, path: str, outcome: Any) -> None:
        """Answer requests to ``path`` with a response, exception or callable."""
        self.routes[path] = outcome

    def handler(self, call: dict[str, Any]) -> Any:
        outcome = self.routes.get(call["path"])
        if outcome is None:
            return FakeResponse(404, {"error": {"code": 404, "message": "Not found"}})
        if callable(outcome) and not isinstance(outcome, FakeResponse):
            return outcome(call)
        return outcome

    def request(self, method: str, url: str, **kwargs: Any) -> _RequestContext:
        call = {"method": method, "url": url, "path": urlparse(url).path, **kwargs}
        self.calls.append(call)
        return _RequestContext(self, call)

    def post(self, url: str, **kwargs: Any) -> _RequestContext:
        return self.request("POST", url, **kwargs)

    def calls_to(self, path: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["path"] == path]

    async def close(self) -> None:
        self.closed = True


class FakeHandle:
    def __init__(self, delay: float, callback: Callable[..., Any], args: tuple) -> None:
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback(*self.args)


class FakeClock:
    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeHandle:
        handle = FakeHandle(delay, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def active(self) -> list[FakeHandle]:
        return [handle for handle in self.handles if not handle.cancelled]


class Recorder:
    """Collects events emitted on a channel."""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def __call__(self, *args: Any) -> None:
        self.events.append(args)

    def __len__(self) -> int:
        return len(self.events)


def token_response(
    access_token: str = "access-1",
    refresh_token: str = "refresh-1",
    expires_in: int | None = 10800,
) -> FakeResponse:
    data: dict[str, Any] = {"access_token": access_token, "refresh_token": refresh_token}
    if expires_in is not None:
        data["expires_in"] = expires_in
    return FakeResponse(200, data)


async def settle() -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(5):
        await asyncio.sleep(0)


