"""Tests for the token endpoint: requests, error mapping and auto-refresh."""

from __future__ import annotations

import re
import time
from urllib.parse import parse_qs

import pytest
from pydantic import ValidationError

from freshtoken.auth import (
    FromEnvironment,
    FromProperties,
    FromPropertiesFile,
    OAuth1ClientCredentialsProvider,
)
from freshtoken.auth.signer import sign
from freshtoken.cache import SettableClock, TimerScheduler
from freshtoken.client import HttpxProvider
from freshtoken.endpoint import TokenEndpoint, close_unchecked, get_token_endpoint
from freshtoken.exceptions import (
    AccessTokenError,
    ConfigError,
    FreshTokenError,
    HttpError,
    RequestExecutionError,
    ResponseCloseError,
    ResponseParsingError,
)
from freshtoken.models import ClientCredentialsGrantRequest, HTTPMethod, RefreshSettings

TOKEN_URL = "https://account.example.com/oauth2/token"


def _token_body(access_token: str = "tok", expires_in: int = 3600) -> dict:
    return {"access_token": access_token, "token_type": "bearer", "expires_in": expires_in}


class JsonBodyProvider(OAuth1ClientCredentialsProvider):
    @property
    def use_json_body(self) -> bool:
        return True


class GetProvider(OAuth1ClientCredentialsProvider):
    @property
    def http_method(self) -> HTTPMethod:
        return HTTPMethod.GET


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_url_from_provider(self, fake_http, provider) -> None:
        endpoint = get_token_endpoint(fake_http((200, _token_body())), provider)
        assert isinstance(endpoint, TokenEndpoint)
        assert endpoint.url == TOKEN_URL

    def test_requires_http_provider(self, provider) -> None:
        with pytest.raises(ValueError):
            TokenEndpoint(None, provider)  # type: ignore[arg-type]

    def test_requires_credentials_provider(self, fake_http) -> None:
        with pytest.raises(ValueError):
            TokenEndpoint(fake_http((200, _token_body())), None)  # type: ignore[arg-type]

    def test_empty_url_rejected(self, fake_http) -> None:
        provider = OAuth1ClientCredentialsProvider.from_values("", "id", "secret")
        with pytest.raises(ValueError, match="token endpoint URL is empty"):
            get_token_endpoint(fake_http((200, _token_body())), provider)

    def test_missing_credentials_fail_before_any_request(self, fake_http) -> None:
        http = fake_http((200, _token_body()))
        with pytest.raises(ValueError) as exc_info:
            get_token_endpoint(http, FromEnvironment(environ={}))
        assert isinstance(exc_info.value, ValidationError)
        assert http.requests == []

    def test_explicit_none_credentials_rejected(self) -> None:
        with pytest.raises(ValidationError):
            OAuth1ClientCredentialsProvider.from_values(TOKEN_URL, None, None)


# ---------------------------------------------------------------------------
# Successful requests
# ---------------------------------------------------------------------------


class TestRequestToken:
    def test_returns_parsed_token(self, fake_http, provider, clock) -> None:
        http = fake_http((200, _token_body("abc", 3600)))
        endpoint = get_token_endpoint(http, provider, clock=clock)

        token = endpoint.request_token(ClientCredentialsGrantRequest())

        assert token.access_token == "abc"
        assert token.token_type == "bearer"
        assert token.expires_in == 3600
        assert http.bodies[0].close_calls == 1

    def test_request_is_signed_form_post(self, fake_http, provider, clock) -> None:
        http = fake_http((200, _token_body()))
        get_token_endpoint(http, provider, clock=clock).request_token(
            ClientCredentialsGrantRequest(scope="read", expires_in=600)
        )

        request = http.requests[0]
        assert request.method == "POST"
        assert request.url == TOKEN_URL
        assert request.headers["Accept"] == "application/json"
        assert request.json_body is None
        assert request.form_params == {
            "grant_type": ["client_credentials"],
            "scope": ["read"],
            "expires_in": ["600"],
        }

        header = request.headers["Authorization"]
        nonce = re.search(r'oauth_nonce="([^"]+)"', header).group(1)
        assert header == sign(
            "POST",
            TOKEN_URL,
            request.form_params,
            "test-key-id",
            "test-key-secret",
            clock.now_millis() // 1000,
            nonce,
        )

    def test_extra_parameters_sent(self, fake_http, provider) -> None:
        http = fake_http((200, _token_body()))
        get_token_endpoint(http, provider).request_token(
            ClientCredentialsGrantRequest(audience="https://api.example.com")
        )
        assert http.requests[0].form_params["audience"] == ["https://api.example.com"]

    def test_json_body_provider(self, fake_http, clock) -> None:
        provider = JsonBodyProvider.from_values(TOKEN_URL, "id", "secret", clock=clock)
        http = fake_http((200, _token_body()))
        get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())

        request = http.requests[0]
        assert request.form_params == {}
        assert request.json_body == '{"grant_type":"client_credentials"}'
        assert request.headers["Authorization"].startswith("OAuth ")

    def test_get_provider(self, fake_http, clock) -> None:
        provider = GetProvider.from_values(TOKEN_URL, "id", "secret", clock=clock)
        http = fake_http((200, _token_body()))
        get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())

        request = http.requests[0]
        assert request.method == "GET"
        assert request.form_params == {"grant_type": ["client_credentials"]}
        header = request.headers["Authorization"]
        nonce = re.search(r'oauth_nonce="([^"]+)"', header).group(1)
        assert header == sign(
            "GET",
            TOKEN_URL,
            {"grant_type": ["client_credentials"]},
            "id",
            "secret",
            clock.now_millis() // 1000,
            nonce,
        )

    def test_unknown_response_fields_ignored(self, fake_http, provider) -> None:
        body = dict(_token_body(), issued_at=123, extra={"nested": True})
        token = get_token_endpoint(fake_http((200, body)), provider).request_token(
            ClientCredentialsGrantRequest()
        )
        assert token.access_token == "tok"

    def test_fresh_signature_per_request(self, fake_http, provider) -> None:
        http = fake_http((200, _token_body()))
        endpoint = get_token_endpoint(http, provider)
        endpoint.request_token(ClientCredentialsGrantRequest())
        endpoint.request_token(ClientCredentialsGrantRequest())
        first, second = (r.headers["Authorization"] for r in http.requests)
        assert first != second


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    def test_structured_error(self, fake_http, provider) -> None:
        http = fake_http(
            (
                401,
                {
                    "error": "invalid_client",
                    "error_description": "signature mismatch",
                },
            )
        )
        with pytest.raises(AccessTokenError) as exc_info:
            get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())

        error = exc_info.value
        assert error.status_code == 401
        assert error.error_response.error == "invalid_client"
        assert str(error) == "HTTP 401: invalid_client (signature mismatch)"
        assert http.bodies[0].close_calls == 1

    @pytest.mark.parametrize("status", [200, 400, 500])
    def test_invalid_json(self, fake_http, provider, status: int) -> None:
        http = fake_http((status, "<html>gateway timeout</html>"))
        with pytest.raises(ResponseParsingError, match=f"HTTP {status}"):
            get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())
        assert http.bodies[0].close_calls == 1

    @pytest.mark.parametrize("status", [200, 299])
    def test_success_range_parsed_as_token(self, fake_http, provider, status: int) -> None:
        http = fake_http((status, _token_body("edge")))
        token = get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())
        assert token.access_token == "edge"

    @pytest.mark.parametrize("status", [199, 300])
    def test_token_body_outside_success_range(self, fake_http, provider, status: int) -> None:
        http = fake_http((status, _token_body("edge")))
        with pytest.raises(ResponseParsingError, match=f"HTTP {status}"):
            get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())

    def test_success_body_without_token(self, fake_http, provider) -> None:
        http = fake_http((200, {"token_type": "bearer"}))
        with pytest.raises(ResponseParsingError):
            get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())

    def test_error_body_without_error_code(self, fake_http, provider) -> None:
        http = fake_http((403, {"message": "forbidden"}))
        with pytest.raises(ResponseParsingError):
            get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())

    @pytest.mark.parametrize(
        "failure", [HttpError("connection refused"), ConnectionResetError("reset by peer")]
    )
    def test_transport_failure(self, fake_http, provider, failure: Exception) -> None:
        http = fake_http(failure)
        with pytest.raises(RequestExecutionError) as exc_info:
            get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())
        assert exc_info.value.__cause__ is failure

    def test_malformed_url(self) -> None:
        provider = OAuth1ClientCredentialsProvider.from_values("bogus-url", "id", "secret")
        with HttpxProvider() as http:
            with pytest.raises(RequestExecutionError):
                get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())

    def test_errors_are_not_retried(self, fake_http, provider) -> None:
        http = fake_http((500, {"error": "server_error"}))
        with pytest.raises(AccessTokenError):
            get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())
        assert len(http.requests) == 1


# ---------------------------------------------------------------------------
# Credentials loaded at request time
# ---------------------------------------------------------------------------


class CountingProperties(FromProperties):
    def __init__(self, properties: dict) -> None:
        super().__init__(properties)
        self.loads = 0

    def load_credentials(self):
        self.loads += 1
        return super().load_credentials()


def _properties(key_id: str = "id-1") -> dict:
    return {
        "token.endpoint.url": TOKEN_URL,
        "access.key.id": key_id,
        "access.key.secret": "secret",
    }


class TestRequestTimeCredentials:
    def test_credentials_loaded_once_per_request(self, fake_http) -> None:
        provider = CountingProperties(_properties())
        endpoint = get_token_endpoint(fake_http((200, _token_body())), provider)
        provider.loads = 0

        endpoint.request_token(ClientCredentialsGrantRequest())
        assert provider.loads == 1
        endpoint.request_token(ClientCredentialsGrantRequest())
        assert provider.loads == 2

    def test_rotated_key_used_on_next_request(self, fake_http) -> None:
        properties = _properties("id-1")
        http = fake_http((200, _token_body()))
        endpoint = get_token_endpoint(http, FromProperties(properties))

        endpoint.request_token(ClientCredentialsGrantRequest())
        properties["access.key.id"] = "id-2"
        endpoint.request_token(ClientCredentialsGrantRequest())

        first, second = (r.headers["Authorization"] for r in http.requests)
        assert 'oauth_consumer_key="id-1"' in first
        assert 'oauth_consumer_key="id-2"' in second

    def test_variable_unset_after_construction(
        self, fake_http, credentials_env, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        http = fake_http((200, _token_body()))
        endpoint = get_token_endpoint(http, FromEnvironment())
        monkeypatch.delenv("FRESHTOKEN_ACCESS_KEY_ID")

        with pytest.raises(FreshTokenError) as exc_info:
            endpoint.request_token(ClientCredentialsGrantRequest())

        error = exc_info.value
        assert isinstance(error, ConfigError)
        assert str(error) == "Incomplete credentials from environment: missing access_key_id"
        assert isinstance(error.__cause__, ValidationError)
        assert http.requests == []

    def test_file_removed_after_construction(self, fake_http, tmp_path) -> None:
        path = tmp_path / "credentials.properties"
        path.write_text(
            "token.endpoint.url=%s\naccess.key.id=id\naccess.key.secret=secret\n" % TOKEN_URL
        )
        http = fake_http((200, _token_body()))
        endpoint = get_token_endpoint(http, FromPropertiesFile(path))
        path.unlink()

        with pytest.raises(ConfigError, match="Credentials file not found"):
            endpoint.request_token(ClientCredentialsGrantRequest())
        assert http.requests == []

    def test_auto_refreshing_token_reports_config_error(
        self, fake_http, clock, credentials_env, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        failures: list[Exception] = []
        endpoint = get_token_endpoint(
            fake_http((200, _token_body(expires_in=3600))), FromEnvironment(), clock=clock
        )
        fresh = endpoint.request_auto_refreshing_token(
            ClientCredentialsGrantRequest(), on_failure=failures.append
        )
        fresh.get()
        monkeypatch.delenv("FRESHTOKEN_ACCESS_KEY_SECRET")

        clock.advance(3_600_000 - 30_000)
        assert fresh.get().access_token == "tok"
        assert len(failures) == 1
        assert isinstance(failures[0], ConfigError)


# ---------------------------------------------------------------------------
# Closing the response body
# ---------------------------------------------------------------------------


class TestResponseClose:
    def test_close_failure_does_not_mask_token(
        self, fake_http, provider, caplog: pytest.LogCaptureFixture
    ) -> None:
        http = fake_http((200, _token_body("kept"), OSError("close failed")))
        token = get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())
        assert token.access_token == "kept"
        assert "close failed" in caplog.text

    def test_close_failure_does_not_mask_error(self, fake_http, provider) -> None:
        http = fake_http((400, {"error": "invalid_request"}, OSError("close failed")))
        with pytest.raises(AccessTokenError):
            get_token_endpoint(http, provider).request_token(ClientCredentialsGrantRequest())
        assert http.bodies[0].close_calls == 1

    def test_close_unchecked_none(self) -> None:
        close_unchecked(None)

    def test_close_unchecked_wraps_os_error(self) -> None:
        cause = OSError("disk gone")

        class Broken:
            def close(self) -> None:
                raise cause

        with pytest.raises(ResponseCloseError) as exc_info:
            close_unchecked(Broken())
        assert exc_info.value.__cause__ is cause


# ---------------------------------------------------------------------------
# Auto-refreshing tokens
# ---------------------------------------------------------------------------


class TestAutoRefreshingToken:
    def test_refreshes_in_background(self, fake_http, provider, clock) -> None:
        http = fake_http(
            (200, _token_body("12345", expires_in=30)),
            (200, _token_body("67890", expires_in=30)),
        )
        endpoint = get_token_endpoint(http, provider, clock=clock)
        fresh = endpoint.request_auto_refreshing_token(ClientCredentialsGrantRequest())

        assert http.requests == []
        assert fresh.get().access_token == "12345"
        assert fresh.get().access_token == "12345"
        assert len(http.requests) == 1

        clock.advance(30_000)
        assert len(http.requests) == 2
        assert fresh.get().access_token == "67890"
        assert all(body.close_calls == 1 for body in http.bodies)

    def test_refreshes_with_compressed_time(self, fake_http, provider) -> None:
        scheduler = TimerScheduler(max_workers=1)
        clock = SettableClock(start_millis=0, delay_scale=0.001, scheduler=scheduler)
        http = fake_http(
            (200, _token_body("12345", expires_in=30)),
            (200, _token_body("67890", expires_in=30)),
        )
        endpoint = get_token_endpoint(http, provider, clock=clock)
        fresh = endpoint.request_auto_refreshing_token(ClientCredentialsGrantRequest())
        try:
            assert fresh.get().access_token == "12345"
            deadline = time.monotonic() + 5
            while fresh.get().access_token != "67890" and time.monotonic() < deadline:
                time.sleep(0.01)
            assert fresh.get().access_token == "67890"
        finally:
            fresh.cancel()
            scheduler.shutdown()

    def test_first_failure_propagates(self, fake_http, provider, clock) -> None:
        http = fake_http((401, {"error": "invalid_client"}))
        fresh = get_token_endpoint(http, provider, clock=clock).request_auto_refreshing_token(
            ClientCredentialsGrantRequest()
        )
        with pytest.raises(AccessTokenError):
            fresh.get()

    def test_background_failure_reported(self, fake_http, provider, clock) -> None:
        failures: list[Exception] = []
        http = fake_http(
            (200, _token_body("first", expires_in=3600)),
            (503, {"error": "temporarily_unavailable"}),
        )
        endpoint = get_token_endpoint(http, provider, clock=clock)
        fresh = endpoint.request_auto_refreshing_token(
            ClientCredentialsGrantRequest(), on_failure=failures.append
        )
        fresh.get()

        clock.advance(3_600_000 - 30_000)
        assert len(failures) == 1
        assert isinstance(failures[0], AccessTokenError)
        assert fresh.get().access_token == "first"

    def test_refresh_settings_applied(self, fake_http, provider, clock) -> None:
        http = fake_http((200, _token_body(expires_in=600)))
        endpoint = get_token_endpoint(
            http,
            provider,
            clock=clock,
            refresh_settings=RefreshSettings(
                minimum_refresh_interval_ms=0, safety_margin_ms=60_000
            ),
        )
        fresh = endpoint.request_auto_refreshing_token(ClientCredentialsGrantRequest())
        fresh.get()
        assert fresh.next_refresh.due_millis == clock.now_millis() + 540_000

    def test_refresh_settings_from_environment(
        self, fake_http, provider, clock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FRESHTOKEN_SAFETY_MARGIN_MS", "120000")
        http = fake_http((200, _token_body(expires_in=600)))
        fresh = get_token_endpoint(http, provider, clock=clock).request_auto_refreshing_token(
            ClientCredentialsGrantRequest()
        )
        fresh.get()
        assert fresh.next_refresh.due_millis == clock.now_millis() + 480_000
