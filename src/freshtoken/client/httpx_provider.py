"""Default :class:`~freshtoken.client.http.HttpProvider` built on :mod:`httpx`.

Responses are opened in streaming mode so that the body reaches the token
endpoint as an unread stream; closing that stream releases the connection
back to the pool.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from freshtoken.client.http import HttpProvider, HttpRequest, HttpResponse
from freshtoken.exceptions import HttpError

logger = logging.getLogger(__name__)


class _StreamingBody:
    """Binary reader over a streamed :class:`httpx.Response`."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    def read(self, size: int = -1) -> bytes:
        try:
            content = self._response.read()
        except httpx.HTTPError as exc:
            raise HttpError(f"Failed reading response body: {exc}") from exc
        return content if size is None or size < 0 else content[:size]

    def close(self) -> None:
        self._response.close()

    @property
    def closed(self) -> bool:
        return self._response.is_closed


class HttpxProvider(HttpProvider):
    """Execute requests with an :class:`httpx.Client`.

    Can be used as a context manager; the client is closed on exit only if
    this provider created it.

    Args:
        client: Client to use. A new one is created when omitted.
        timeout: Request timeout in seconds for a newly created client.
        verify: Verify TLS certificates for a newly created client.

    Example::

        with HttpxProvider(timeout=10) as http:
            endpoint = get_token_endpoint(http, FromEnvironment())
            token = endpoint.request_token(ClientCredentialsGrantRequest())
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        verify: bool = True,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, verify=verify)

    def __enter__(self) -> HttpxProvider:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def execute(self, request: HttpRequest) -> HttpResponse:
        method = request.method.upper()
        headers = dict(request.headers)
        kwargs: dict[str, object] = {"headers": headers}
        if request.json_body is not None:
            kwargs["content"] = request.json_body.encode("utf-8")
            headers.setdefault("Content-Type", "application/json")
        elif method == "GET":
            kwargs["params"] = request.form_params
        else:
            kwargs["data"] = request.form_params

        logger.debug("%s %s", method, request.url)
        try:
            http_request = self._client.build_request(method, request.url, **kwargs)
            response = self._client.send(http_request, stream=True)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise HttpError(f"{method} {request.url} failed: {exc}") from exc

        length = response.headers.get("content-length")
        return HttpResponse(
            status_code=response.status_code,
            content_length=int(length) if length and length.isdigit() else None,
            body=_StreamingBody(response),  # type: ignore[arg-type]
            headers=dict(response.headers),
        )
