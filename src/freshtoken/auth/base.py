"""Abstract interfaces of the client-authentication subsystem.

This module defines the two seams between the token endpoint and the way a
client proves its identity:

- :class:`RequestAuthorizer` -- stamps credentials onto an outbound
  :class:`~freshtoken.client.http.HttpRequest` (for example an OAuth1
  ``Authorization`` header).
- :class:`ClientCredentialsProvider` -- bundles the token endpoint URL, the
  authorizer and the HTTP method to use. Providers only supply
  configuration; they never perform network I/O.

To source credentials from somewhere new, subclass
:class:`ClientCredentialsProvider` (or
:class:`~freshtoken.auth.providers.DelegatingCredentialsProvider`) and
implement the two abstract properties. The token endpoint calls
:meth:`ClientCredentialsProvider.resolve` once per request and uses only
the provider it returns.

See Also:
    :mod:`freshtoken.auth.providers` for the built-in providers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from freshtoken.client.http import HttpRequest
from freshtoken.models import HTTPMethod


class RequestAuthorizer(ABC):
    """Adds client authentication to outbound requests."""

    @abstractmethod
    def authorize(self, request: HttpRequest) -> None:
        """Add authentication (typically an ``Authorization`` header) to ``request``.

        Called after the URL, method and body of ``request`` are final,
        immediately before it is executed.
        """
        ...


class ClientCredentialsProvider(ABC):
    """Configuration for requesting tokens with the client-credentials grant.

    Concrete providers must implement :attr:`token_endpoint_url` and
    :attr:`client_authorizer`. :attr:`http_method` defaults to ``POST`` and
    :attr:`use_json_body` to ``False`` (form-encoded body).
    """

    @property
    @abstractmethod
    def token_endpoint_url(self) -> str:
        """URL of the token endpoint."""
        ...

    @property
    @abstractmethod
    def client_authorizer(self) -> RequestAuthorizer:
        """Authorizer that signs requests sent to the token endpoint."""
        ...

    @property
    def http_method(self) -> HTTPMethod:
        return HTTPMethod.POST

    @property
    def use_json_body(self) -> bool:
        """Send the grant request as JSON instead of form parameters."""
        return False

    def resolve(self) -> ClientCredentialsProvider:
        """Return the provider to use for one request.

        Providers that load their credentials from an external source read
        them here, once, so a single request never mixes two reads.
        """
        return self

    def validate(self) -> list[str]:
        """Return human-readable configuration problems; empty when usable."""
        errors: list[str] = []
        if not self.token_endpoint_url:
            errors.append("token endpoint URL is empty")
        return errors
