"""Built-in :class:`~freshtoken.auth.base.ClientCredentialsProvider` implementations.

- :class:`OAuth1ClientCredentialsProvider` -- explicit values; signs token
  requests with :class:`~freshtoken.auth.signer.OAuth1Signer`.
- :class:`FromEnvironment` -- ``FRESHTOKEN_*`` environment variables.
- :class:`FromProperties` -- an in-memory properties mapping.
- :class:`FromPropertiesFile` -- a ``credentials.properties`` file.
- :class:`FromDefaultCredentialsFile` -- ``~/.freshtoken/credentials.properties``.

The sourced providers load their values on every request and delegate to
an :class:`OAuth1ClientCredentialsProvider`, so a rotated key is picked up
without rebuilding the token endpoint.
"""

from __future__ import annotations

import os
from abc import abstractmethod
from pathlib import Path
from typing import Mapping, Optional

from pydantic import ValidationError

from freshtoken.auth.base import ClientCredentialsProvider, RequestAuthorizer
from freshtoken.auth.signer import OAuth1Signer
from freshtoken.cache.clock import Clock
from freshtoken.config import (
    DEFAULT_TOKEN_ENDPOINT_URL,
    credentials_from_environment,
    credentials_from_properties,
    default_credentials_path,
    load_properties,
)
from freshtoken.exceptions import ConfigError
from freshtoken.models import Credentials


class OAuth1ClientCredentialsProvider(ClientCredentialsProvider):
    """Provider over explicit :class:`~freshtoken.models.Credentials`.

    Args:
        credentials: Endpoint URL and access key pair.
        clock: Timestamp source for signatures.

    Example::

        provider = OAuth1ClientCredentialsProvider.from_values(
            "https://account.example.com/oauth2/token", "key-id", "key-secret"
        )
    """

    def __init__(self, credentials: Credentials, clock: Optional[Clock] = None) -> None:
        self._credentials = credentials
        self._signer = OAuth1Signer(
            credentials.access_key_id, credentials.access_key_secret, clock=clock
        )

    @classmethod
    def from_values(
        cls,
        token_endpoint_url: Optional[str],
        access_key_id: Optional[str],
        access_key_secret: Optional[str],
        clock: Optional[Clock] = None,
    ) -> OAuth1ClientCredentialsProvider:
        """Build a provider from raw values.

        Raises:
            pydantic.ValidationError: If any value is ``None``.
        """
        credentials = Credentials(
            token_endpoint_url=token_endpoint_url,
            access_key_id=access_key_id,
            access_key_secret=access_key_secret,
        )
        return cls(credentials, clock=clock)

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def token_endpoint_url(self) -> str:
        return self._credentials.token_endpoint_url

    @property
    def client_authorizer(self) -> RequestAuthorizer:
        return self._signer


class DelegatingCredentialsProvider(ClientCredentialsProvider):
    """Base for providers that load :class:`Credentials` on each access.

    The properties load the credentials on every access and raise the
    source's own errors. :meth:`resolve` loads them once and reports an
    incomplete source as :class:`~freshtoken.exceptions.ConfigError`.
    """

    source_name = "credentials source"

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock

    @abstractmethod
    def load_credentials(self) -> Credentials:
        """Read the credentials from this provider's source."""
        ...

    def _delegate(self) -> OAuth1ClientCredentialsProvider:
        return OAuth1ClientCredentialsProvider(self.load_credentials(), clock=self._clock)

    def resolve(self) -> OAuth1ClientCredentialsProvider:
        """Load the credentials once and return a provider over them.

        Raises:
            ConfigError: If the source is unreadable or incomplete.
        """
        try:
            return self._delegate()
        except ValidationError as exc:
            missing = ", ".join(str(err["loc"][0]) for err in exc.errors())
            raise ConfigError(
                f"Incomplete credentials from {self.source_name}: missing {missing}"
            ) from exc

    @property
    def token_endpoint_url(self) -> str:
        return self._delegate().token_endpoint_url

    @property
    def client_authorizer(self) -> RequestAuthorizer:
        return self._delegate().client_authorizer


class FromEnvironment(DelegatingCredentialsProvider):
    """Credentials from ``FRESHTOKEN_*`` environment variables.

    Args:
        environ: Mapping to read instead of :data:`os.environ`.
        default_token_endpoint_url: Used when the URL variable is unset.
        clock: Timestamp source for signatures.
    """

    source_name = "environment"

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        default_token_endpoint_url: str = DEFAULT_TOKEN_ENDPOINT_URL,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock)
        self._environ = environ
        self._default_url = default_token_endpoint_url

    def load_credentials(self) -> Credentials:
        env = os.environ if self._environ is None else self._environ
        return credentials_from_environment(env, self._default_url)


class FromProperties(DelegatingCredentialsProvider):
    """Credentials from a properties mapping (``access.key.id`` etc.)."""

    source_name = "properties"

    def __init__(
        self,
        properties: Mapping[str, str],
        default_token_endpoint_url: str = DEFAULT_TOKEN_ENDPOINT_URL,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock)
        self._properties = properties
        self._default_url = default_token_endpoint_url

    def load_credentials(self) -> Credentials:
        return credentials_from_properties(self._properties, self._default_url)


class FromPropertiesFile(DelegatingCredentialsProvider):
    """Credentials from a ``credentials.properties`` file, re-read on each access.

    Raises:
        ConfigError: On access, if the file is missing or unreadable.
    """

    def __init__(
        self,
        path: str | Path,
        default_token_endpoint_url: str = DEFAULT_TOKEN_ENDPOINT_URL,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock)
        self._path = Path(path)
        self._default_url = default_token_endpoint_url

    @property
    def source_name(self) -> str:  # type: ignore[override]
        return str(self._path)

    @property
    def path(self) -> Path:
        return self._path

    def load_credentials(self) -> Credentials:
        return credentials_from_properties(load_properties(self._path), self._default_url)


class FromDefaultCredentialsFile(FromPropertiesFile):
    """Credentials from :func:`~freshtoken.config.default_credentials_path`."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        super().__init__(default_credentials_path(), clock=clock)
