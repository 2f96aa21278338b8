"""Credential sourcing and refresh-timing configuration.

This module turns configuration sources into the values the token endpoint
needs:

* **Directory layout** -- ``~/.freshtoken/`` (or ``$FRESHTOKEN_HOME``) holds
  the default credentials file, ``credentials.properties``. See
  :func:`get_config_dir` and :func:`default_credentials_path`.
* **Properties files** -- ``key=value`` files with ``#``/``!`` comments,
  read by :func:`load_properties`.
* **Credentials** -- :func:`credentials_from_properties` and
  :func:`credentials_from_environment` build
  :class:`~freshtoken.models.Credentials`; :func:`resolve_credentials`
  dispatches on a source descriptor (``env``, ``file:PATH``, ``default``).
* **Refresh timing** -- :func:`load_refresh_settings` reads optional
  overrides of the :class:`~freshtoken.models.RefreshSettings` defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import ValidationError

from freshtoken.exceptions import ConfigError
from freshtoken.models import Credentials, RefreshSettings

_APP_DIR_NAME = ".freshtoken"
_CREDENTIALS_FILENAME = "credentials.properties"

DEFAULT_TOKEN_ENDPOINT_URL = "https://account.api.here.com/oauth2/token"

# Keys in credentials.properties files.
TOKEN_ENDPOINT_URL_PROPERTY = "token.endpoint.url"
ACCESS_KEY_ID_PROPERTY = "access.key.id"
ACCESS_KEY_SECRET_PROPERTY = "access.key.secret"

# Environment variables.
TOKEN_ENDPOINT_URL_ENV = "FRESHTOKEN_TOKEN_ENDPOINT_URL"
ACCESS_KEY_ID_ENV = "FRESHTOKEN_ACCESS_KEY_ID"
ACCESS_KEY_SECRET_ENV = "FRESHTOKEN_ACCESS_KEY_SECRET"
MIN_REFRESH_INTERVAL_ENV = "FRESHTOKEN_MIN_REFRESH_INTERVAL_MS"
SAFETY_MARGIN_ENV = "FRESHTOKEN_SAFETY_MARGIN_MS"
HOME_ENV = "FRESHTOKEN_HOME"


# --- Paths ---


def get_config_dir() -> Path:
    """Return the configuration directory (not created).

    ``$FRESHTOKEN_HOME`` when set, otherwise ``~/.freshtoken``.
    """
    env_value = os.environ.get(HOME_ENV, "")
    if env_value:
        return Path(env_value).expanduser()
    return Path.home() / _APP_DIR_NAME


def default_credentials_path() -> Path:
    """Return the path of the default ``credentials.properties`` file."""
    return get_config_dir() / _CREDENTIALS_FILENAME


# --- Properties files ---


def parse_properties(text: str) -> dict[str, str]:
    """Parse ``key=value`` / ``key: value`` lines.

    Blank lines and lines starting with ``#`` or ``!`` are skipped.
    Whitespace around keys and values is stripped; a line without a
    separator maps the whole line to an empty value.
    """
    properties: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line[0] in "#!":
            continue
        positions = [p for p in (line.find("="), line.find(":")) if p >= 0]
        if not positions:
            properties[line] = ""
            continue
        sep = min(positions)
        properties[line[:sep].strip()] = line[sep + 1 :].strip()
    return properties


def load_properties(path: str | Path) -> dict[str, str]:
    """Read and parse a properties file.

    Raises:
        ConfigError: If the file does not exist or cannot be read.
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ConfigError(f"Credentials file not found: {path}")
    try:
        return parse_properties(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read credentials file {path}: {exc}") from exc


# --- Credentials ---


def credentials_from_properties(
    properties: Mapping[str, str],
    default_token_endpoint_url: Optional[str] = DEFAULT_TOKEN_ENDPOINT_URL,
) -> Credentials:
    """Build :class:`Credentials` from a properties mapping.

    Raises:
        pydantic.ValidationError: If the access key ID or secret is missing
            (or the URL is missing and there is no default).
    """
    return Credentials(
        token_endpoint_url=properties.get(
            TOKEN_ENDPOINT_URL_PROPERTY, default_token_endpoint_url
        ),
        access_key_id=properties.get(ACCESS_KEY_ID_PROPERTY),
        access_key_secret=properties.get(ACCESS_KEY_SECRET_PROPERTY),
    )


def credentials_from_environment(
    environ: Optional[Mapping[str, str]] = None,
    default_token_endpoint_url: Optional[str] = DEFAULT_TOKEN_ENDPOINT_URL,
) -> Credentials:
    """Build :class:`Credentials` from ``FRESHTOKEN_*`` environment variables.

    Raises:
        pydantic.ValidationError: If a required variable is not set.
    """
    env = os.environ if environ is None else environ
    return Credentials(
        token_endpoint_url=env.get(TOKEN_ENDPOINT_URL_ENV, default_token_endpoint_url),
        access_key_id=env.get(ACCESS_KEY_ID_ENV),
        access_key_secret=env.get(ACCESS_KEY_SECRET_ENV),
    )


def resolve_credentials(source: str) -> Credentials:
    """Resolve credentials from a source descriptor.

    Supported formats:
        - ``"env"`` -- ``FRESHTOKEN_*`` environment variables
        - ``"file:/path/to/credentials.properties"`` -- a properties file
        - ``"default"`` -- :func:`default_credentials_path`

    Args:
        source: The source descriptor string.

    Returns:
        The resolved :class:`Credentials`.

    Raises:
        ConfigError: If the source is unknown, unreadable, or incomplete.
    """
    try:
        if source == "env":
            return credentials_from_environment()
        if source.startswith("file:"):
            return credentials_from_properties(load_properties(source[5:]))
        if source == "default":
            return credentials_from_properties(load_properties(default_credentials_path()))
    except ValidationError as exc:
        missing = ", ".join(str(err["loc"][0]) for err in exc.errors())
        raise ConfigError(f"Incomplete credentials from '{source}': missing {missing}") from exc

    raise ConfigError(f"Unknown credential source format: {source}")


# --- Refresh timing ---


def load_refresh_settings(environ: Optional[Mapping[str, str]] = None) -> RefreshSettings:
    """Return :class:`RefreshSettings` with any environment overrides applied.

    Raises:
        ConfigError: If an override is not a non-negative integer.
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, int] = {}
    for var, field_name in (
        (MIN_REFRESH_INTERVAL_ENV, "minimum_refresh_interval_ms"),
        (SAFETY_MARGIN_ENV, "safety_margin_ms"),
    ):
        value = env.get(var)
        if value is None or value == "":
            continue
        try:
            overrides[field_name] = int(value)
        except ValueError as exc:
            raise ConfigError(f"{var} must be an integer, got '{value}'") from exc
    try:
        return RefreshSettings(**overrides)
    except ValidationError as exc:
        raise ConfigError(f"Invalid refresh settings: {exc}") from exc
