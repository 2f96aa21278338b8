"""Canonical Pydantic models shared across all freshtoken modules.

This is the single source of truth for data shapes in the project. The models
fall into three groups:

**Credentials and settings** -- :class:`Credentials` (the token endpoint URL
plus the access key pair used to sign requests), :class:`HTTPMethod` and
:class:`RefreshSettings` (timing of background refreshes).

**Grant requests** -- :class:`AccessTokenRequest` and its
:class:`ClientCredentialsGrantRequest` variant. Requests serialise both to a
JSON document and to form parameters; extra named parameters are preserved.

**Token endpoint responses** -- :class:`AccessTokenResponse` for 2xx answers
and :class:`ErrorResponse` for :rfc:`6749` section 5.2 error bodies.

All models use Pydantic v2. Value objects are frozen so that a cached token
can be shared between threads without copying.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Credentials ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods a token endpoint can be called with."""

    GET = "GET"
    POST = "POST"


class Credentials(BaseModel):
    """Client credentials used to authenticate against the token endpoint.

    Every field is required and non-null. Passing ``None`` for any of them
    raises :class:`pydantic.ValidationError` immediately, so a misconfigured
    client fails at construction rather than on its first request.

    Example::

        Credentials(
            token_endpoint_url="https://account.example.com/oauth2/token",
            access_key_id="my-key-id",
            access_key_secret="my-key-secret",
        )
    """

    model_config = ConfigDict(frozen=True)

    token_endpoint_url: str = Field(description="URL of the OAuth2 token endpoint")
    access_key_id: str = Field(description="Access key ID, sent as oauth_consumer_key")
    access_key_secret: str = Field(
        description="Access key secret, used only as the HMAC key", repr=False
    )


class RefreshSettings(BaseModel):
    """Timing of background refreshes for auto-refreshing tokens.

    The delay before the next refresh is
    ``max(minimum_refresh_interval_ms, expires_in * 1000 - safety_margin_ms)``.
    """

    model_config = ConfigDict(frozen=True)

    minimum_refresh_interval_ms: int = Field(
        default=30_000,
        ge=0,
        description="Lower bound between two refreshes; prevents refresh storms",
    )
    safety_margin_ms: int = Field(
        default=30_000,
        ge=0,
        description="Time subtracted from the token lifetime when scheduling a refresh",
    )

    def refresh_delay_ms(self, remaining_ms: int) -> int:
        """Return the delay before the next refresh given ``remaining_ms`` of validity."""
        return max(self.minimum_refresh_interval_ms, remaining_ms - self.safety_margin_ms)


# --- Grant requests ---


class AccessTokenRequest(BaseModel):
    """Base OAuth2 token request payload.

    Extra keyword arguments become additional named parameters and are sent
    alongside ``grant_type``. ``None`` values are never sent.
    """

    model_config = ConfigDict(extra="allow")

    grant_type: str
    scope: Optional[str] = None
    expires_in: Optional[int] = Field(
        default=None, description="Requested token lifetime in seconds"
    )

    def to_dict(self) -> dict[str, Any]:
        """Return the request parameters, dropping unset (``None``) values."""
        return self.model_dump(exclude_none=True)

    def to_json(self) -> str:
        """Serialise the request as a JSON document."""
        return self.model_dump_json(exclude_none=True)

    def to_form_params(self) -> dict[str, list[str]]:
        """Serialise the request as form parameters (name -> list of values)."""
        params: dict[str, list[str]] = {}
        for name, value in self.to_dict().items():
            if isinstance(value, (list, tuple)):
                params[name] = [str(v) for v in value]
            else:
                params[name] = [str(value)]
        return params


class ClientCredentialsGrantRequest(AccessTokenRequest):
    """Request for the client-credentials grant (:rfc:`6749` section 4.4)."""

    grant_type: str = "client_credentials"


# --- Responses ---


class AccessTokenResponse(BaseModel):
    """Successful token endpoint response.

    ``expires_in`` is the token lifetime in seconds; ``None`` means the
    token does not expire. Unknown fields returned by the server are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    scope: Optional[str] = None


class ErrorResponse(BaseModel):
    """Structured OAuth2 error body (:rfc:`6749` section 5.2).

    Only ``error`` is required. Unknown fields are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    error: str
    error_description: Optional[str] = None
    error_uri: Optional[str] = None
