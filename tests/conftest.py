from __future__ import annotations

import pytest

from helpers import FakeClock, FakeSession
from pynetatmo.classifier import ErrorClassifier
from pynetatmo.events import EventEmitter
from pynetatmo.models import Credentials, PasswordGrant


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def classifier(emitter: EventEmitter) -> ErrorClassifier:
    return ErrorClassifier(emitter)


@pytest.fixture
def password_credentials() -> Credentials:
    return Credentials(
        client_id="client-id",
        client_secret="client-secret",
        grant=PasswordGrant("user@example.com", "secret"),
    )
