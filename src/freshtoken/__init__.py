"""freshtoken -- OAuth2 client-credentials tokens that stay fresh.

This package requests access tokens from an OAuth2 token endpoint with the
client-credentials grant, authenticating the client with an OAuth1-style
HMAC-SHA256 signature, and keeps them valid by refreshing them in the
background before they expire.

Typical usage::

    from freshtoken import (
        ClientCredentialsGrantRequest,
        FromEnvironment,
        HttpxProvider,
        get_token_endpoint,
    )

    endpoint = get_token_endpoint(HttpxProvider(), FromEnvironment())
    fresh = endpoint.request_auto_refreshing_token(ClientCredentialsGrantRequest())
    bearer = fresh.get().access_token

Modules:
    endpoint: Token requests and auto-refreshing tokens.
    auth: Credential providers and the request signer.
    cache: The freshness cache and the clock that drives it.
    client: HTTP transport interface and the httpx-based default.
    models: Pydantic models shared across the package.
    config: Credential sourcing and refresh-timing configuration.
    exceptions: Exception hierarchy with exit-code mapping.
    app: The ``freshtoken`` command line.
"""

__version__ = "0.1.0"

from freshtoken.auth import (  # noqa: E402
    ClientCredentialsProvider,
    FromDefaultCredentialsFile,
    FromEnvironment,
    FromProperties,
    FromPropertiesFile,
    OAuth1ClientCredentialsProvider,
    OAuth1Signer,
)
from freshtoken.cache import Clock, Fresh, SettableClock, SystemClock  # noqa: E402
from freshtoken.client import HttpProvider, HttpRequest, HttpResponse, HttpxProvider  # noqa: E402
from freshtoken.endpoint import TokenEndpoint, get_token_endpoint  # noqa: E402
from freshtoken.exceptions import (  # noqa: E402
    AccessTokenError,
    FreshTokenError,
    RequestExecutionError,
    ResponseCloseError,
    ResponseParsingError,
)
from freshtoken.models import (  # noqa: E402
    AccessTokenRequest,
    AccessTokenResponse,
    ClientCredentialsGrantRequest,
    Credentials,
    ErrorResponse,
    RefreshSettings,
)

__all__ = [
    "AccessTokenError",
    "AccessTokenRequest",
    "AccessTokenResponse",
    "ClientCredentialsGrantRequest",
    "ClientCredentialsProvider",
    "Clock",
    "Credentials",
    "ErrorResponse",
    "Fresh",
    "FreshTokenError",
    "FromDefaultCredentialsFile",
    "FromEnvironment",
    "FromProperties",
    "FromPropertiesFile",
    "HttpProvider",
    "HttpRequest",
    "HttpResponse",
    "HttpxProvider",
    "OAuth1ClientCredentialsProvider",
    "OAuth1Signer",
    "RefreshSettings",
    "RequestExecutionError",
    "ResponseCloseError",
    "ResponseParsingError",
    "SettableClock",
    "SystemClock",
    "TokenEndpoint",
    "get_token_endpoint",
]
