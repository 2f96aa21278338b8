"""Shared test fixtures for freshtoken.

Provides a scripted :class:`~freshtoken.client.http.HttpProvider`, response
bodies that record whether they were closed, a simulated clock, and ready
made credentials. These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import io
import json
from typing import Any, Callable, Optional, Union

import pytest

from freshtoken.auth import OAuth1ClientCredentialsProvider
from freshtoken.cache import SettableClock
from freshtoken.client.http import HttpProvider, HttpRequest, HttpResponse
from freshtoken.output import reset_output


TOKEN_URL = "https://account.example.com/oauth2/token"
ACCESS_KEY_ID = "test-key-id"
ACCESS_KEY_SECRET = "test-key-secret"
START_MILLIS = 1_700_000_000_000


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------


class TrackingBody(io.BytesIO):
    """Response body that remembers being closed and can fail on close."""

    def __init__(self, data: bytes, close_error: Optional[OSError] = None) -> None:
        super().__init__(data)
        self.close_calls = 0
        self._close_error = close_error

    def close(self) -> None:
        self.close_calls += 1
        super().close()
        if self._close_error is not None:
            raise self._close_error


Outcome = Union[BaseException, tuple]


class FakeHttpProvider(HttpProvider):
    """HttpProvider that replays scripted outcomes.

    Each outcome is either an exception to raise or a ``(status, body)``
    tuple (optionally ``(status, body, close_error)``); ``body`` may be a
    ``dict`` (sent as JSON), ``str`` or ``bytes``. The last outcome repeats
    once the script is exhausted. Executed requests are kept in
    :attr:`requests` and the bodies handed out in :attr:`bodies`.
    """

    def __init__(self, *outcomes: Outcome) -> None:
        self._outcomes = list(outcomes)
        self.requests: list[HttpRequest] = []
        self.bodies: list[TrackingBody] = []

    def execute(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        status, body, *rest = outcome
        close_error = rest[0] if rest else None
        return make_response(status, body, close_error, provider=self)


def make_response(
    status: int,
    body: Any,
    close_error: Optional[OSError] = None,
    provider: Optional[FakeHttpProvider] = None,
) -> HttpResponse:
    if isinstance(body, dict):
        data = json.dumps(body).encode("utf-8")
    elif isinstance(body, str):
        data = body.encode("utf-8")
    else:
        data = body
    tracking = TrackingBody(data, close_error)
    if provider is not None:
        provider.bodies.append(tracking)
    return HttpResponse(status_code=status, content_length=len(data), body=tracking)


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


@pytest.fixture(autouse=True)
def _no_refresh_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep refresh-timing overrides from the developer environment out of tests."""
    monkeypatch.delenv("FRESHTOKEN_MIN_REFRESH_INTERVAL_MS", raising=False)
    monkeypatch.delenv("FRESHTOKEN_SAFETY_MARGIN_MS", raising=False)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_http() -> Callable[..., FakeHttpProvider]:
    """Factory for :class:`FakeHttpProvider` instances."""
    return FakeHttpProvider


@pytest.fixture
def clock() -> SettableClock:
    """Simulated clock that holds scheduled callbacks until advanced."""
    return SettableClock(start_millis=START_MILLIS)


@pytest.fixture
def provider(clock: SettableClock) -> OAuth1ClientCredentialsProvider:
    """Explicit-values provider signing with the simulated clock."""
    return OAuth1ClientCredentialsProvider.from_values(
        TOKEN_URL, ACCESS_KEY_ID, ACCESS_KEY_SECRET, clock=clock
    )


@pytest.fixture
def credentials_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Export a complete set of FRESHTOKEN_* variables."""
    monkeypatch.setenv("FRESHTOKEN_TOKEN_ENDPOINT_URL", TOKEN_URL)
    monkeypatch.setenv("FRESHTOKEN_ACCESS_KEY_ID", ACCESS_KEY_ID)
    monkeypatch.setenv("FRESHTOKEN_ACCESS_KEY_SECRET", ACCESS_KEY_SECRET)


@pytest.fixture
def isolated_home(tmp_path, monkeypatch: pytest.MonkeyPatch):
    """Point FRESHTOKEN_HOME at a temp dir and clear credential variables."""
    home = tmp_path / "freshtoken-home"
    monkeypatch.setenv("FRESHTOKEN_HOME", str(home))
    for var in [
        "FRESHTOKEN_TOKEN_ENDPOINT_URL",
        "FRESHTOKEN_ACCESS_KEY_ID",
        "FRESHTOKEN_ACCESS_KEY_SECRET",
        "FRESHTOKEN_MIN_REFRESH_INTERVAL_MS",
        "FRESHTOKEN_SAFETY_MARGIN_MS",
    ]:
        monkeypatch.delenv(var, raising=False)
    return home
