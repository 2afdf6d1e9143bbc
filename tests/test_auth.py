from __future__ import annotations

import asyncio
import logging

import aiohttp
import pytest

from helpers import TOKEN_PATH, FakeResponse, Recorder, settle, token_response
from pynetatmo.auth import SessionManager
from pynetatmo.exceptions import AuthError, Severity, ValidationError
from pynetatmo.models import (
    AuthorizationCodeGrant,
    Credentials,
    PreissuedToken,
    SessionState,
)


def _manager(credentials, emitter, classifier, fake_session, fake_clock) -> SessionManager:
    return SessionManager(
        credentials,
        emitter,
        classifier,
        session=fake_session,
        clock=fake_clock,
    )


async def test_preissued_token_skips_network(emitter, classifier, fake_session, fake_clock) -> None:
    authenticated = Recorder()
    emitter.on("authenticated", authenticated)
    manager = _manager(
        Credentials(grant=PreissuedToken("T")), emitter, classifier, fake_session, fake_clock
    )

    await manager.authenticate()

    assert manager.state is SessionState.AUTHENTICATED
    assert manager.access_token == "T"
    assert len(authenticated) == 1
    assert fake_session.calls == []
    assert fake_clock.handles == []


async def test_password_grant_schedules_refresh(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    authenticated = Recorder()
    emitter.on("authenticated", authenticated)
    fake_session.route(TOKEN_PATH, token_response("A", "R", 10800))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)

    await manager.authenticate()

    assert manager.state is SessionState.AUTHENTICATED
    assert manager.access_token == "A"
    assert manager.session.refresh_token == "R"
    assert len(authenticated) == 1
    (handle,) = fake_clock.handles
    assert handle.delay == 10800
    assert handle.args == ("R",)

    (call,) = fake_session.calls_to(TOKEN_PATH)
    assert call["data"] == {
        "client_id": "client-id",
        "client_secret": "client-secret",
        "scope": password_credentials.scope,
        "grant_type": "password",
        "username": "user@example.com",
        "password": "secret",
    }


async def test_authorization_code_grant_forwards_redirect_uri(
    emitter, classifier, fake_session, fake_clock
) -> None:
    fake_session.route(TOKEN_PATH, token_response(expires_in=None))
    credentials = Credentials(
        client_id="id",
        client_secret="secret",
        grant=AuthorizationCodeGrant("the-code", "https://example.com/cb"),
        scope="read_station",
    )
    manager = _manager(credentials, emitter, classifier, fake_session, fake_clock)

    await manager.authenticate()

    data = fake_session.calls_to(TOKEN_PATH)[0]["data"]
    assert data["grant_type"] == "authorization_code"
    assert data["code"] == "the-code"
    assert data["redirect_uri"] == "https://example.com/cb"
    assert data["scope"] == "read_station"
    # No expires_in, no refresh
    assert fake_clock.handles == []


async def test_missing_grant_is_a_validation_error(
    emitter, classifier, fake_session, fake_clock
) -> None:
    errors = Recorder()
    emitter.on("error", errors)
    manager = _manager(
        Credentials(client_id="id", client_secret="secret"),
        emitter,
        classifier,
        fake_session,
        fake_clock,
    )

    with pytest.raises(ValidationError, match="No valid authentication parameters"):
        await manager.authenticate()

    assert fake_session.calls == []
    assert manager.state is SessionState.FAILED
    assert len(errors) == 1


async def test_missing_client_id_is_a_validation_error(
    emitter, classifier, fake_session, fake_clock
) -> None:
    manager = _manager(
        Credentials.from_options({"username": "u", "password": "p"}),
        emitter,
        classifier,
        fake_session,
        fake_clock,
    )

    with pytest.raises(ValidationError, match="'client_id' not set"):
        await manager.authenticate()


async def test_rejected_credentials_are_critical(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    errors = Recorder()
    emitter.on("error", errors)
    fake_session.route(
        TOKEN_PATH, FakeResponse(400, {"error": "invalid_grant"})
    )
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)

    with pytest.raises(AuthError) as exc_info:
        await manager.authenticate()

    assert str(exc_info.value) == "Authenticate error: invalid_grant"
    assert exc_info.value.severity is Severity.CRITICAL
    assert exc_info.value.status_code == 400
    assert manager.state is SessionState.FAILED
    assert manager.access_token is None
    assert errors.events == [(exc_info.value,)]


async def test_transport_failure_reports_no_response(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    fake_session.route(TOKEN_PATH, aiohttp.ClientConnectionError("boom"))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)

    with pytest.raises(AuthError, match="Authenticate error: No response"):
        await manager.authenticate()


async def test_token_response_without_access_token(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    fake_session.route(TOKEN_PATH, FakeResponse(200, {"expires_in": 10}))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)

    with pytest.raises(AuthError, match="Missing access_token"):
        await manager.authenticate()
    assert fake_clock.handles == []


async def test_malformed_expires_in_fails_authentication(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    errors = Recorder()
    emitter.on("error", errors)
    fake_session.route(TOKEN_PATH, FakeResponse(200, {"access_token": "A", "expires_in": "soon"}))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)

    async def _call():
        return "ran"

    parked = asyncio.ensure_future(manager.gate.guard("homes_data", _call))
    await settle()

    with pytest.raises(AuthError, match="Authenticate error: Invalid expires_in"):
        await manager.authenticate()

    assert manager.state is SessionState.FAILED
    assert manager.access_token is None
    assert fake_clock.handles == []
    assert len(errors) == 1
    with pytest.raises(AuthError, match="Invalid expires_in"):
        await parked
    assert manager.gate.pending_count == 0


async def test_numeric_string_expires_in_is_accepted(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    fake_session.route(TOKEN_PATH, FakeResponse(200, {"access_token": "A", "expires_in": "3600"}))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)

    await manager.authenticate()

    assert manager.state is SessionState.AUTHENTICATED
    (handle,) = fake_clock.handles
    assert handle.delay == 3600


async def test_refresh_replaces_tokens_and_reschedules(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    authenticated = Recorder()
    emitter.on("authenticated", authenticated)
    fake_session.route(TOKEN_PATH, token_response("A1", "R1", 100))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)
    await manager.authenticate()

    fake_session.route(TOKEN_PATH, token_response("A2", "R2", 200))
    fake_clock.handles[0].fire()
    await settle()

    assert manager.access_token == "A2"
    assert manager.session.refresh_token == "R2"
    assert manager.state is SessionState.AUTHENTICATED
    refresh_call = fake_session.calls_to(TOKEN_PATH)[-1]
    assert refresh_call["data"] == {
        "grant_type": "refresh_token",
        "refresh_token": "R1",
        "client_id": "client-id",
        "client_secret": "client-secret",
    }
    assert len(fake_clock.handles) == 2
    assert fake_clock.handles[-1].delay == 200
    assert fake_clock.handles[-1].args == ("R2",)
    assert manager.session.refresh_handle is fake_clock.handles[-1]
    # Refreshing does not announce a new authentication
    assert len(authenticated) == 1


async def test_failed_refresh_is_a_warning_and_keeps_token(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    warnings = Recorder()
    errors = Recorder()
    emitter.on("warning", warnings)
    emitter.on("error", errors)
    fake_session.route(TOKEN_PATH, token_response("A1", "R1", 100))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)
    await manager.authenticate()

    fake_session.route(TOKEN_PATH, FakeResponse(500, body=b"oops", headers={}))
    with pytest.raises(AuthError, match="Authenticate refresh error: Status code 500"):
        await manager.refresh()

    assert manager.access_token == "A1"
    assert manager.state is SessionState.AUTHENTICATED
    assert len(warnings) == 1
    assert warnings.events[0][0].severity is Severity.WARNING
    assert len(errors) == 0


async def test_failed_timer_refresh_keeps_serving_calls(
    emitter, classifier, fake_session, fake_clock, password_credentials, caplog
) -> None:
    warnings = Recorder()
    errors = Recorder()
    emitter.on("warning", warnings)
    emitter.on("error", errors)
    fake_session.route(TOKEN_PATH, token_response("A1", "R1", 100))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)
    await manager.authenticate()

    fake_session.route(TOKEN_PATH, FakeResponse(500, body=b"oops", headers={}))
    with caplog.at_level(logging.DEBUG, logger="pynetatmo"):
        fake_clock.handles[0].fire()
        await settle()

        async def _call():
            return "ran"

        # The gate is open again, so this runs without parking
        assert await asyncio.wait_for(manager.gate.guard("homes_data", _call), 1) == "ran"
        await settle()

    assert len(fake_session.calls_to(TOKEN_PATH)) == 2
    assert manager.access_token == "A1"
    assert manager.state is SessionState.AUTHENTICATED
    assert len(warnings) == 1
    assert "Status code 500" in warnings.events[0][0].message
    assert len(errors) == 0
    assert not [record for record in caplog.records if record.levelno >= logging.ERROR]
    assert "Background token request ended with" in caplog.text


async def test_refresh_without_refresh_token(
    emitter, classifier, fake_session, fake_clock
) -> None:
    manager = _manager(
        Credentials(grant=PreissuedToken("T")), emitter, classifier, fake_session, fake_clock
    )
    await manager.authenticate()

    with pytest.raises(AuthError, match="No refresh token available"):
        await manager.refresh()
    assert fake_session.calls == []


async def test_reauthentication_cancels_previous_timer(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    fake_session.route(TOKEN_PATH, token_response(expires_in=100))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)

    await manager.authenticate()
    await manager.authenticate()

    assert len(fake_clock.handles) == 2
    assert fake_clock.handles[0].cancelled
    assert fake_clock.active == [fake_clock.handles[1]]


async def test_start_consumes_background_failure(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    errors = Recorder()
    emitter.on("error", errors)
    fake_session.route(TOKEN_PATH, FakeResponse(401, body=b"", headers={}))
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)

    task = manager.start()
    await asyncio.wait([task])

    assert isinstance(task.exception(), AuthError)
    assert len(errors) == 1
    assert manager.state is SessionState.FAILED


async def test_close_cancels_timer_and_keeps_external_session(
    emitter, classifier, fake_session, fake_clock, password_credentials
) -> None:
    fake_session.route(TOKEN_PATH, token_response())
    manager = _manager(password_credentials, emitter, classifier, fake_session, fake_clock)
    await manager.authenticate()

    await manager.close()

    assert fake_clock.active == []
    assert fake_session.closed is False


async def test_instances_do_not_share_tokens(
    emitter, classifier, fake_session, fake_clock
) -> None:
    first = _manager(
        Credentials(grant=PreissuedToken("one")), emitter, classifier, fake_session, fake_clock
    )
    second = _manager(
        Credentials(grant=PreissuedToken("two")), emitter, classifier, fake_session, fake_clock
    )

    await first.authenticate()
    await second.authenticate()

    assert first.access_token == "one"
    assert second.access_token == "two"
