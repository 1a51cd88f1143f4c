"""Shared fixtures: a fake Google server behind httpx.MockTransport."""

import time

import httpx
import pytest

from gcal_utils.calendar import Calendar, Connection, JsonTransport
from gcal_utils.config import OOB_REDIRECT_URL
from gcal_utils.google import Credential, TokenExchanger


class FakeServer:
    """Replays queued responses in order and records every request."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response] = []

    def queue(self, status_code=200, json=None, text=None, content=None, headers=None):
        self.responses.append(
            httpx.Response(status_code, json=json, text=text, content=content, headers=headers)
        )
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(200, json={})
        return self.responses.pop(0)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture(autouse=True)
def utc_timezone(monkeypatch):
    """Pin local time to UTC so midnight-based rules are deterministic."""
    monkeypatch.setenv("TZ", "UTC")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def credential():
    return Credential(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_url=OOB_REDIRECT_URL,
        refresh_token="test-refresh-token",
        access_token="test-access-token",
        expires_at=time.time() + 3600,
    )


@pytest.fixture
def connection(server, credential):
    transport = server.transport()
    exchanger = TokenExchanger(credential, transport=transport)
    return Connection(JsonTransport(credential, exchanger, http=httpx.Client(transport=transport)))


@pytest.fixture
def legacy_connection(server):
    return Connection.legacy("user@example.com", "secret", transport=server.transport())


@pytest.fixture
def calendar(connection):
    return Calendar(connection, "test@example.com")


def build_event_payload(**overrides):
    """A JSON API event resource."""
    payload = {
        "kind": "calendar#event",
        "id": "fhru34kt6ikmr20knd2456l08n",
        "status": "confirmed",
        "htmlLink": "https://www.google.com/calendar/event?eid=abc",
        "summary": "Test Event",
        "description": "A test event",
        "location": "Somewhere",
        "start": {"dateTime": "2012-03-31T10:00:00Z"},
        "end": {"dateTime": "2012-03-31T11:00:00Z"},
        "transparency": "opaque",
        "visibility": "default",
        "creator": {"email": "owner@example.com", "displayName": "Owner"},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def event_payload():
    return build_event_payload
