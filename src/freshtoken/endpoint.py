"""Token endpoint client for the OAuth2 client-credentials grant.

:class:`TokenEndpoint` turns a grant request into an access token:

1. Resolve the provider once, loading its credentials, and build an
   :class:`~freshtoken.client.http.HttpRequest` from its URL, the HTTP
   method and the grant request parameters.
2. Have the provider's authorizer sign it.
3. Execute it through the :class:`~freshtoken.client.http.HttpProvider`.
4. Parse the body: 2xx as :class:`~freshtoken.models.AccessTokenResponse`,
   anything else as :class:`~freshtoken.models.ErrorResponse`.

Failures map onto the error model in :mod:`freshtoken.exceptions`:

- transport failure or malformed URL -> :class:`RequestExecutionError`
- body matching neither schema -> :class:`ResponseParsingError`
- structured OAuth2 error -> :class:`AccessTokenError`
- credentials that cannot be loaded at request time -> :class:`ConfigError`

Nothing is retried. The response body is closed on every path; a failure
to close it is logged as :class:`ResponseCloseError` and never replaces the
token or the exception being returned.

:meth:`TokenEndpoint.request_auto_refreshing_token` wraps
:meth:`TokenEndpoint.request_token` in a :class:`~freshtoken.cache.Fresh`
that keeps the token valid in the background.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from freshtoken.auth.base import ClientCredentialsProvider
from freshtoken.cache.clock import Clock, SystemClock
from freshtoken.cache.fresh import Fresh
from freshtoken.client.http import HttpProvider, HttpRequest, HttpResponse
from freshtoken.config import load_refresh_settings
from freshtoken.exceptions import (
    AccessTokenError,
    HttpError,
    RequestExecutionError,
    ResponseCloseError,
    ResponseParsingError,
)
from freshtoken.models import (
    AccessTokenRequest,
    AccessTokenResponse,
    ErrorResponse,
    HTTPMethod,
    RefreshSettings,
)
from freshtoken.serializer import JsonSerializer, Serializer

logger = logging.getLogger(__name__)


class _Closeable(Protocol):
    def close(self) -> None: ...


def close_unchecked(closeable: Optional[_Closeable]) -> None:
    """Close ``closeable`` if it is not ``None``.

    Raises:
        ResponseCloseError: If ``close()`` raised :class:`OSError`; the
            original error is the ``__cause__``.
    """
    if closeable is None:
        return
    try:
        closeable.close()
    except OSError as exc:
        raise ResponseCloseError(f"Failed to close {type(closeable).__name__}: {exc}") from exc


class TokenEndpoint:
    """Requests access tokens from an OAuth2 token endpoint.

    The provider is checked at construction: an empty endpoint URL or a
    provider whose credentials cannot be loaded fails here, before any
    request is attempted.

    Args:
        http_provider: Transport used to execute requests.
        client_credentials_provider: Endpoint URL, authorizer and method.
        serializer: JSON codec; defaults to :class:`JsonSerializer`.
        clock: Drives auto-refreshing tokens; defaults to :class:`SystemClock`.
        refresh_settings: Timing of background refreshes; defaults to
            :func:`~freshtoken.config.load_refresh_settings`.

    Raises:
        ConfigError: If a refresh-timing environment override is invalid.
        ValueError: If the provider is misconfigured (including
            :class:`pydantic.ValidationError` for missing credentials).
    """

    def __init__(
        self,
        http_provider: HttpProvider,
        client_credentials_provider: ClientCredentialsProvider,
        serializer: Optional[Serializer] = None,
        clock: Optional[Clock] = None,
        refresh_settings: Optional[RefreshSettings] = None,
    ) -> None:
        if http_provider is None:
            raise ValueError("http_provider is required")
        if client_credentials_provider is None:
            raise ValueError("client_credentials_provider is required")
        errors = client_credentials_provider.validate()
        if errors:
            raise ValueError("Invalid client credentials provider: " + "; ".join(errors))
        if client_credentials_provider.client_authorizer is None:
            raise ValueError("Invalid client credentials provider: no client authorizer")

        self._http = http_provider
        self._provider = client_credentials_provider
        self._serializer = serializer or JsonSerializer()
        self._clock = clock or SystemClock()
        self._refresh_settings = refresh_settings or load_refresh_settings()

    @property
    def url(self) -> str:
        return self._provider.token_endpoint_url

    def request_token(self, request: AccessTokenRequest) -> AccessTokenResponse:
        """Request a single access token.

        Args:
            request: The grant request, e.g.
                :class:`~freshtoken.models.ClientCredentialsGrantRequest`.

        Returns:
            The parsed :class:`AccessTokenResponse`.

        Raises:
            ConfigError: If the provider cannot load its credentials.
            RequestExecutionError: If the request could not be executed.
            ResponseParsingError: If the body matches neither schema.
            AccessTokenError: If the endpoint returned a structured error.
        """
        resolved = self._provider.resolve()
        http_request = self._build_request(request, resolved.token_endpoint_url)
        try:
            resolved.client_authorizer.authorize(http_request)
        except ValueError as exc:
            raise RequestExecutionError(
                f"Cannot sign request to {http_request.url}: {exc}"
            ) from exc

        logger.debug("Requesting %s token from %s", request.grant_type, http_request.url)
        try:
            response = self._http.execute(http_request)
        except (HttpError, OSError) as exc:
            raise RequestExecutionError(
                f"Token request to {http_request.url} failed: {exc}"
            ) from exc

        token = self._parse_response(response)
        logger.info("Obtained access token (expires_in=%s)", token.expires_in)
        return token

    def request_auto_refreshing_token(
        self,
        request: AccessTokenRequest,
        on_failure: Optional[Callable[[Exception], None]] = None,
    ) -> Fresh[AccessTokenResponse]:
        """Return a token cache that refreshes itself ahead of expiry.

        No request is made until the first :meth:`Fresh.get`; failures of
        that first request propagate to the caller.

        Args:
            request: The grant request sent on every refresh.
            on_failure: Called with the error of each failed background refresh.
        """
        return Fresh(
            lambda: self.request_token(request),
            self._clock,
            settings=self._refresh_settings,
            auto_refresh=True,
            on_failure=on_failure,
            name=f"access token from {self.url}",
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _build_request(self, request: AccessTokenRequest, url: str) -> HttpRequest:
        method = HTTPMethod(self._provider.http_method)
        headers = {"Accept": "application/json"}
        if self._provider.use_json_body:
            return HttpRequest(
                method=method.value,
                url=url,
                headers=headers,
                json_body=self._serializer.to_json(request).decode("utf-8"),
            )
        return HttpRequest(
            method=method.value,
            url=url,
            headers=headers,
            form_params=request.to_form_params(),
        )

    def _parse_response(self, response: HttpResponse) -> AccessTokenResponse:
        try:
            return self._parse_body(response)
        finally:
            try:
                close_unchecked(response.body)
            except ResponseCloseError as exc:
                logger.warning("%s", exc, exc_info=exc)

    def _parse_body(self, response: HttpResponse) -> AccessTokenResponse:
        status = response.status_code
        try:
            data = response.body.read()
        except (HttpError, OSError) as exc:
            raise RequestExecutionError(f"Failed reading token response: {exc}") from exc

        if response.is_success:
            try:
                return self._serializer.from_json(data, AccessTokenResponse)
            except ValueError as exc:
                raise ResponseParsingError(
                    f"HTTP {status}: body is not a valid access token response"
                ) from exc

        try:
            error_response = self._serializer.from_json(data, ErrorResponse)
        except ValueError as exc:
            raise ResponseParsingError(
                f"HTTP {status}: body is not a valid OAuth2 error response"
            ) from exc
        logger.debug("Token endpoint rejected request: HTTP %d %s", status, error_response.error)
        raise AccessTokenError(status, error_response)


def get_token_endpoint(
    http_provider: HttpProvider,
    client_credentials_provider: ClientCredentialsProvider,
    clock: Optional[Clock] = None,
    serializer: Optional[Serializer] = None,
    refresh_settings: Optional[RefreshSettings] = None,
) -> TokenEndpoint:
    """Create a :class:`TokenEndpoint`; see its constructor for the arguments.

    Example::

        endpoint = get_token_endpoint(HttpxProvider(), FromEnvironment())
        fresh = endpoint.request_auto_refreshing_token(ClientCredentialsGrantRequest())
        headers = {"Authorization": f"Bearer {fresh.get().access_token}"}
    """
    return TokenEndpoint(
        http_provider,
        client_credentials_provider,
        serializer=serializer,
        clock=clock,
        refresh_settings=refresh_settings,
    )
