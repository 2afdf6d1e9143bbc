"""Async client exposing the Netatmo API endpoints."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, Union

import aiohttp

from .auth import SessionManager
from .classifier import ErrorClassifier
from .clock import Clock
from .const import (
    ADDWEBHOOK_ENDPOINT,
    BASE_URL,
    CREATENEWHOMESCHEDULE_ENDPOINT,
    DEFAULT_TIMEOUT,
    DELETEHOMESCHEDULE_ENDPOINT,
    DROPWEBHOOK_ENDPOINT,
    GETCAMERAPICTURE_ENDPOINT,
    GETEVENTSUNTIL_ENDPOINT,
    GETHOMECOACHSDATA_ENDPOINT,
    GETHOMEDATA_ENDPOINT,
    GETLASTEVENTOF_ENDPOINT,
    GETMEASURE_ENDPOINT,
    GETNEXTEVENTS_ENDPOINT,
    GETPUBLICDATA_ENDPOINT,
    GETROOMMEASURE_ENDPOINT,
    GETSTATIONSDATA_ENDPOINT,
    HOMESDATA_ENDPOINT,
    HOMESTATUS_ENDPOINT,
    MAX_PENDING_CALLS,
    RENAMEHOMESCHEDULE_ENDPOINT,
    SETPERSONSAWAY_ENDPOINT,
    SETPERSONSHOME_ENDPOINT,
    SETROOMTHERMPOINT_ENDPOINT,
    SETTHERMMODE_ENDPOINT,
    SWITCHHOMESCHEDULE_ENDPOINT,
    SYNCHOMESCHEDULE_ENDPOINT,
)
from .events import EventEmitter, Listener
from .exceptions import ApiError, AuthError, ProtocolError, Severity, ValidationError
from .models import Credentials, RequestDescriptor, SessionState, TransportResponse
from .transport import RequestExecutor
from .validation import (
    build_measure_params,
    check_required_params,
    normalize_option,
    normalize_type_list,
)

LOG = logging.getLogger(__name__)

Options = Dict[str, Any]
Callback = Callable[[Optional[ApiError], Any], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class Endpoint:
    """Static description of an API endpoint."""

    name: str
    method: str
    path: str
    required: Tuple[str, ...] = ()
    label: str = ""
    raw: bool = False
    prepare: Optional[Callable[[str, Options], Options]] = None


def _prepare_public_data(context: str, options: Options) -> Options:
    if options.get("required_data"):
        options["required_data"] = normalize_option(
            context, "required_data", normalize_type_list, options["required_data"]
        )
    return options


def _prepare_measure(
    required: Tuple[str, ...]
) -> Callable[[str, Options], Options]:
    def _prepare(context: str, options: Options) -> Options:
        return build_measure_params(context, options, required)

    return _prepare


_MEASURE_REQUIRED = ("device_id", "scale", "type")
_ROOM_MEASURE_REQUIRED = ("home_id", "room_id", "scale", "type")

ENDPOINTS: Dict[str, Endpoint] = {
    endpoint.name: endpoint
    for endpoint in (
        # Weather
        Endpoint(
            "get_public_data",
            "GET",
            GETPUBLICDATA_ENDPOINT,
            ("lat_ne", "lon_ne", "lat_sw", "lon_sw"),
            "get-publicdata",
            prepare=_prepare_public_data,
        ),
        Endpoint(
            "get_stations_data", "GET", GETSTATIONSDATA_ENDPOINT, (), "get-stationsdata"
        ),
        Endpoint(
            "get_measure",
            "GET",
            GETMEASURE_ENDPOINT,
            _MEASURE_REQUIRED,
            "get-measure",
            prepare=_prepare_measure(_MEASURE_REQUIRED),
        ),
        # Security
        Endpoint("get_home_data", "GET", GETHOMEDATA_ENDPOINT, (), "get-homedata"),
        Endpoint(
            "get_events_until",
            "GET",
            GETEVENTSUNTIL_ENDPOINT,
            ("home_id", "event_id"),
            "get-eventsuntil",
        ),
        Endpoint(
            "get_last_event_of",
            "GET",
            GETLASTEVENTOF_ENDPOINT,
            ("home_id", "person_id"),
            "get-lasteventof",
        ),
        Endpoint(
            "get_next_events",
            "GET",
            GETNEXTEVENTS_ENDPOINT,
            ("home_id", "event_id"),
            "get-nextevents",
        ),
        Endpoint(
            "get_camera_picture",
            "GET",
            GETCAMERAPICTURE_ENDPOINT,
            ("image_id", "key"),
            "get-camerapicture",
            raw=True,
        ),
        Endpoint(
            "set_persons_away",
            "POST",
            SETPERSONSAWAY_ENDPOINT,
            ("home_id",),
            "set-personsaway",
        ),
        Endpoint(
            "set_persons_home",
            "POST",
            SETPERSONSHOME_ENDPOINT,
            ("home_id",),
            "set-personshome",
        ),
        Endpoint("add_webhook", "POST", ADDWEBHOOK_ENDPOINT, ("url",), "add-webhook"),
        Endpoint("drop_webhook", "POST", DROPWEBHOOK_ENDPOINT, (), "drop-webhook"),
        # Energy
        Endpoint("homes_data", "GET", HOMESDATA_ENDPOINT, (), "get-homesdata"),
        Endpoint(
            "home_status", "GET", HOMESTATUS_ENDPOINT, ("home_id",), "get-homestatus"
        ),
        Endpoint(
            "create_new_home_schedule",
            "POST",
            CREATENEWHOMESCHEDULE_ENDPOINT,
            ("home_id", "timetable", "zone", "name", "hg_temp", "away_temp"),
            "set-createnewhomeschedule",
        ),
        Endpoint(
            "delete_home_schedule",
            "POST",
            DELETEHOMESCHEDULE_ENDPOINT,
            ("home_id", "schedule_id"),
            "set-deletehomeschedule",
        ),
        Endpoint(
            "rename_home_schedule",
            "POST",
            RENAMEHOMESCHEDULE_ENDPOINT,
            ("home_id", "schedule_id", "name"),
            "set-renamehomeschedule",
        ),
        Endpoint(
            "sync_home_schedule",
            "POST",
            SYNCHOMESCHEDULE_ENDPOINT,
            ("home_id", "zones", "timetable", "hg_temp", "away_temp"),
            "set-synchomeschedule",
        ),
        Endpoint(
            "switch_home_schedule",
            "POST",
            SWITCHHOMESCHEDULE_ENDPOINT,
            ("schedule_id", "home_id"),
            "set-switchhomeschedule",
        ),
        Endpoint(
            "get_room_measure",
            "GET",
            GETROOMMEASURE_ENDPOINT,
            _ROOM_MEASURE_REQUIRED,
            "get-roommeasure",
            prepare=_prepare_measure(_ROOM_MEASURE_REQUIRED),
        ),
        Endpoint(
            "set_room_therm_point",
            "POST",
            SETROOMTHERMPOINT_ENDPOINT,
            ("home_id", "room_id", "mode"),
            "set-setroomthermpoint",
        ),
        Endpoint(
            "set_therm_mode",
            "POST",
            SETTHERMMODE_ENDPOINT,
            ("home_id", "mode"),
            "set-setthermmode",
        ),
        # Aircare
        Endpoint(
            "get_home_coachs_data",
            "GET",
            GETHOMECOACHSDATA_ENDPOINT,
            (),
            "get-homecoachesdata",
        ),
    )
}


class NetatmoClient:
    """Async client of the Netatmo API.

    Endpoint coroutines may be awaited before authentication completed; they
    wait until the session is authenticated and then run. Each endpoint
    accepts an ``options`` mapping and an optional ``callback(error, result)``.
    Without a callback the result is returned and failures are raised as
    ``ApiError``. Failures are always emitted on the ``error`` or ``warning``
    channel too.
    """

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Clock] = None,
        base_url: str = BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_pending_calls: int = MAX_PENDING_CALLS,
        **options: Any,
    ) -> None:
        """Initialize the client.

        Credentials may be given as a ``Credentials`` instance or as keyword
        options (``client_id``, ``client_secret``, ``username``, ``password``,
        ``code``, ``redirect_uri``, ``access_token``, ``scope``).
        """
        if credentials is None:
            credentials = Credentials.from_options(options)
        elif options:
            err_msg = f"Unexpected options with explicit credentials: {sorted(options)}"
            raise TypeError(err_msg)
        self._emitter = EventEmitter()
        self._classifier = ErrorClassifier(self._emitter)
        self._session_manager = SessionManager(
            credentials,
            self._emitter,
            self._classifier,
            session=session,
            clock=clock,
            base_url=base_url,
            timeout=timeout,
            max_pending_calls=max_pending_calls,
        )
        self._executor = RequestExecutor(self._session_manager)
        self._auth_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    async def __aenter__(self) -> NetatmoClient:
        """Start authenticating and return the client."""
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        """Close the client."""
        await self.close()

    @property
    def session_manager(self) -> SessionManager:
        """Return the session manager."""
        return self._session_manager

    @property
    def state(self) -> SessionState:
        """Return the session state."""
        return self._session_manager.state

    @property
    def pending_calls(self) -> int:
        """Return the number of calls waiting for authentication."""
        return self._session_manager.gate.pending_count

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Listen to ``event``; return a callable removing the listener."""
        return self._emitter.on(event, listener)

    def once(self, event: str, listener: Listener) -> Callable[[], None]:
        """Listen to the next ``event`` only."""
        return self._emitter.once(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        """Stop listening to ``event``."""
        self._emitter.off(event, listener)

    def start(self) -> asyncio.Task:
        """Start authenticating in the background, once."""
        if self._auth_task is None or self._auth_task.done():
            self._auth_task = self._session_manager.start()
        return self._auth_task

    async def authenticate(self, credentials: Optional[Credentials] = None) -> None:
        """Authenticate now, raising ``ApiError`` on failure."""
        await self._session_manager.authenticate(credentials)

    def cancel_pending(self) -> int:
        """Cancel calls waiting for authentication; return how many."""
        return self._session_manager.gate.cancel_pending()

    async def close(self) -> None:
        """Cancel background work and close a managed HTTP session."""
        if self._auth_task is not None and not self._auth_task.done():
            self._auth_task.cancel()
        for task in list(self._tasks):
            task.cancel()
        await self._session_manager.close()

    def submit(
        self,
        name: str,
        options: Optional[Options] = None,
        callback: Optional[Callback] = None,
    ) -> asyncio.Task:
        """Schedule endpoint ``name`` and return immediately with its task."""
        if name not in ENDPOINTS:
            err_msg = f"Unknown endpoint: {name}"
            raise ValueError(err_msg)
        task = asyncio.ensure_future(getattr(self, name)(options, callback))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        err = task.exception()
        if isinstance(err, ApiError):
            LOG.debug("Submitted call failed: %s", err)
        elif err is not None:
            LOG.error("Unexpected error in submitted call", exc_info=err)

    async def _async_request(
        self,
        endpoint: Endpoint,
        options: Optional[Options],
        callback: Optional[Callback],
    ) -> Any:
        """Validate, wait for authentication, send and unwrap one call.

        The first call on a client nobody started starts authentication.
        """
        error = check_required_params(endpoint.name, options, endpoint.required)
        if error is not None:
            return await self._deliver(callback, self._classifier.report(error), None)

        params = dict(options or {})
        if endpoint.prepare is not None:
            try:
                params = endpoint.prepare(endpoint.name, params)
            except ValidationError as err:
                return await self._deliver(callback, self._classifier.report(err), None)
        descriptor = RequestDescriptor(endpoint.method, endpoint.path, params)

        if self._auth_task is None and self.state is SessionState.UNAUTHENTICATED:
            self.start()

        try:
            result = await self._session_manager.gate.guard(
                endpoint.name, lambda: self._execute(endpoint, descriptor)
            )
        except ApiError as err:
            return await self._deliver(callback, err, None)

        self._emitter.emit(endpoint.label, result)
        return await self._deliver(callback, None, result)

    async def _execute(self, endpoint: Endpoint, descriptor: RequestDescriptor) -> Any:
        context = f"{endpoint.name} error"
        try:
            response = await self._executor.send(descriptor)
        except AuthError as err:
            raise self._classifier.report(err)
        except (aiohttp.ClientError, asyncio.TimeoutError) as req_err:
            raise self._classifier.classify(
                context, error=req_err, critical=False
            ) from req_err

        if response.status != 200:
            raise self._classifier.classify(context, response=response, critical=False)
        if endpoint.raw:
            return response.body
        return self._unwrap(context, response)

    def _unwrap(self, context: str, response: TransportResponse) -> Any:
        """Return the payload of a ``{"body": ...}`` envelope."""
        try:
            data = json.loads(response.body)
        except ValueError as err:
            error = ProtocolError(
                f"{context}: Invalid JSON in response",
                Severity.WARNING,
                status_code=response.status,
            )
            raise self._classifier.report(error) from err
        if not isinstance(data, dict) or "body" not in data:
            error = ProtocolError(
                f"{context}: Missing body in response",
                Severity.WARNING,
                status_code=response.status,
            )
            raise self._classifier.report(error)
        return data["body"]

    @staticmethod
    async def _deliver(
        callback: Optional[Callback], error: Optional[ApiError], result: Any
    ) -> Any:
        if callback is None:
            if error is not None:
                raise error
            return result
        outcome = callback(error, result)
        if inspect.isawaitable(outcome):
            await outcome
        return result

    # Weather

    async def get_public_data(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve public weather data within a bounding box."""
        return await self._async_request(ENDPOINTS["get_public_data"], options, callback)

    async def get_stations_data(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve the weather stations of the user."""
        return await self._async_request(
            ENDPOINTS["get_stations_data"], options, callback
        )

    async def get_measure(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve measurements of a device or module."""
        return await self._async_request(ENDPOINTS["get_measure"], options, callback)

    # Security

    async def get_home_data(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve homes, cameras, persons and last events."""
        return await self._async_request(ENDPOINTS["get_home_data"], options, callback)

    async def get_events_until(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve events up to ``event_id``."""
        return await self._async_request(
            ENDPOINTS["get_events_until"], options, callback
        )

    async def get_last_event_of(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve events until the last one of ``person_id``."""
        return await self._async_request(
            ENDPOINTS["get_last_event_of"], options, callback
        )

    async def get_next_events(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve events older than ``event_id``."""
        return await self._async_request(ENDPOINTS["get_next_events"], options, callback)

    async def get_camera_picture(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve a camera snapshot as raw bytes."""
        return await self._async_request(
            ENDPOINTS["get_camera_picture"], options, callback
        )

    async def set_persons_away(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Mark a person, or the whole home, as away."""
        return await self._async_request(
            ENDPOINTS["set_persons_away"], options, callback
        )

    async def set_persons_home(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Mark persons as at home."""
        return await self._async_request(
            ENDPOINTS["set_persons_home"], options, callback
        )

    async def add_webhook(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Register a webhook URL."""
        return await self._async_request(ENDPOINTS["add_webhook"], options, callback)

    async def drop_webhook(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Remove the registered webhook."""
        return await self._async_request(ENDPOINTS["drop_webhook"], options, callback)

    # Energy

    async def homes_data(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve the topology of the user's homes."""
        return await self._async_request(ENDPOINTS["homes_data"], options, callback)

    async def home_status(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve the current status of a home."""
        return await self._async_request(ENDPOINTS["home_status"], options, callback)

    async def create_new_home_schedule(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Create a new heating schedule for a home."""
        return await self._async_request(
            ENDPOINTS["create_new_home_schedule"], options, callback
        )

    async def delete_home_schedule(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Delete a heating schedule."""
        return await self._async_request(
            ENDPOINTS["delete_home_schedule"], options, callback
        )

    async def rename_home_schedule(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Rename a heating schedule."""
        return await self._async_request(
            ENDPOINTS["rename_home_schedule"], options, callback
        )

    async def sync_home_schedule(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Replace the zones and timetable of a heating schedule."""
        return await self._async_request(
            ENDPOINTS["sync_home_schedule"], options, callback
        )

    async def switch_home_schedule(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Make a heating schedule the active one."""
        return await self._async_request(
            ENDPOINTS["switch_home_schedule"], options, callback
        )

    async def get_room_measure(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve historical temperatures of a room."""
        return await self._async_request(
            ENDPOINTS["get_room_measure"], options, callback
        )

    async def set_room_therm_point(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Set the setpoint mode of a room."""
        return await self._async_request(
            ENDPOINTS["set_room_therm_point"], options, callback
        )

    async def set_therm_mode(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Set the heating mode of a home."""
        return await self._async_request(ENDPOINTS["set_therm_mode"], options, callback)

    # Aircare

    async def get_home_coachs_data(
        self, options: Optional[Options] = None, callback: Optional[Callback] = None
    ) -> Any:
        """Retrieve the data of the user's home coaches."""
        return await self._async_request(
            ENDPOINTS["get_home_coachs_data"], options, callback
        )
