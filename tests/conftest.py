"""Shared test fixtures for devgrid-auth.

Provides a scriptable fake authorization server (served through
:class:`httpx.MockTransport`), a controllable clock, isolated data
directories, and a ready-wired orchestrator. These fixtures are discovered
by pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import parse_qsl

import httpx
import pytest

from devgrid_auth.client import DeviceCodeClient
from devgrid_auth.events import SessionChangeEmitter
from devgrid_auth.models import (
    AccountInfo,
    AuthConfig,
    SessionChangeEvent,
    StoredSession,
)
from devgrid_auth.orchestrator import DeviceFlowOrchestrator
from devgrid_auth.output import reset_output
from devgrid_auth.secret_store import MemorySecretStore
from devgrid_auth.session_store import SessionStore
from devgrid_auth.validator import SessionValidator

DEVICE_CODE_PATH = "/oauth/device/code"
TOKEN_PATH = "/oauth/token"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fake authorization server
# ---------------------------------------------------------------------------


Reply = Union[httpx.Response, Exception]


def json_reply(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=data)


def broken_gzip_reply() -> httpx.Response:
    """A 200 whose body claims gzip encoding but cannot be decompressed."""
    return httpx.Response(
        200, headers={"Content-Encoding": "gzip"}, stream=httpx.ByteStream(b"not gzip")
    )


def oauth_error(code: str, description: str = "", status_code: int = 400) -> httpx.Response:
    body = {"error": code}
    if description:
        body["error_description"] = description
    return httpx.Response(status_code, json=body)


def token_body(
    access_token: str = "tok1",
    refresh_token: Optional[str] = "ref1",
    expires_in: int = 3600,
    scope: Optional[str] = None,
    id_token: Optional[str] = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "access_token": access_token,
        "expires_in": expires_in,
        "token_type": "Bearer",
    }
    if refresh_token is not None:
        body["refresh_token"] = refresh_token
    if scope is not None:
        body["scope"] = scope
    if id_token is not None:
        body["id_token"] = id_token
    return body


def device_body(expires_in: int = 600, interval: Optional[int] = 5) -> dict[str, Any]:
    body: dict[str, Any] = {
        "device_code": "D1",
        "user_code": "ABCD-1234",
        "verification_uri": "https://auth.example.com/activate",
        "expires_in": expires_in,
    }
    if interval is not None:
        body["interval"] = interval
    return body


class FakeAuthServer:
    """Scriptable authorization server.

    Replies are queued per URL path and consumed in order; the last reply
    for a path keeps being served once the queue is down to one entry.
    Exceptions in the queue are raised from the transport.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._replies: dict[str, list[Reply]] = {}

    def queue(self, path: str, *replies: Reply) -> None:
        self._replies.setdefault(path, []).extend(replies)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        replies = self._replies.get(request.url.path)
        if not replies:
            raise AssertionError(f"Unexpected request to {request.url}")
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def form(self, index: int = -1) -> dict[str, str]:
        return dict(parse_qsl(self.requests[index].content.decode()))

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


class FakeClock:
    """Wall clock, monotonic clock and sleep that only move when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.mono = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.mono

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
        self.mono += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


@pytest.fixture
def server() -> FakeAuthServer:
    return FakeAuthServer()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Config and storage fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_config() -> AuthConfig:
    return AuthConfig(
        domain="auth.example.com",
        client_id="abc",
        audience="api",
        scope="openid profile",
    )


@pytest.fixture
def secrets() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def session_store(secrets: MemorySecretStore) -> SessionStore:
    return SessionStore(secrets)


@pytest.fixture
def isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG_DATA_HOME at tmp_path and clear DEVGRID_AUTH_* variables."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("XDG_DATA_HOME", str(data_dir))
    for var in [
        "DEVGRID_AUTH_CONFIG",
        "DEVGRID_AUTH_DOMAIN",
        "DEVGRID_AUTH_CLIENT_ID",
        "DEVGRID_AUTH_AUDIENCE",
        "DEVGRID_AUTH_SCOPE",
    ]:
        monkeypatch.delenv(var, raising=False)
    return data_dir


def make_session(
    clock: FakeClock,
    session_id: str = "s1",
    expires_in: float = 3600,
    refresh_token: Optional[str] = "ref1",
    account_id: str = "user-1",
    scopes: Optional[list[str]] = None,
    access_token: str = "tok1",
) -> StoredSession:
    return StoredSession(
        id=session_id,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=clock.now + timedelta(seconds=expires_in),
        account=AccountInfo(id=account_id, label=f"Label {account_id}"),
        scopes=scopes if scopes is not None else ["openid", "profile"],
    )


def encode_id_token(claims: dict[str, Any]) -> str:
    import base64

    def _segment(data: dict[str, Any]) -> str:
        raw = json.dumps(data).encode()
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()

    return f"{_segment({'alg': 'none'})}.{_segment(claims)}.sig"


# ---------------------------------------------------------------------------
# Orchestrator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def events() -> list[SessionChangeEvent]:
    return []


@pytest.fixture
def emitter(events: list[SessionChangeEvent]) -> SessionChangeEmitter:
    emitter = SessionChangeEmitter()
    emitter.subscribe(events.append)
    return emitter


@pytest.fixture
def device_client(server: FakeAuthServer) -> DeviceCodeClient:
    return DeviceCodeClient(transport=server.transport)


@pytest.fixture
def orchestrator(
    auth_config: AuthConfig,
    device_client: DeviceCodeClient,
    session_store: SessionStore,
    emitter: SessionChangeEmitter,
    clock: FakeClock,
) -> DeviceFlowOrchestrator:
    return DeviceFlowOrchestrator(
        auth_config,
        device_client,
        session_store,
        validator=SessionValidator(device_client, auth_config, clock=clock),
        emitter=emitter,
        clock=clock,
        monotonic=clock.monotonic,
        sleep=clock.sleep,
    )
