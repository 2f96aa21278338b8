"""Exception hierarchy for freshtoken.

All exceptions inherit from :class:`FreshTokenError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`freshtoken.exit_codes`.
The command-line entry point in :func:`freshtoken.app.main` catches
``FreshTokenError`` and exits with the appropriate code; library callers
branch on the subclass instead.

Subclass hierarchy::

    FreshTokenError (exit 1)
    +-- HttpError               (exit 6)
    +-- RequestExecutionError   (exit 6)
    +-- ResponseParsingError    (exit 7)
    +-- AccessTokenError        (exit 3)
    +-- ResponseCloseError      (exit 1)
    +-- ConfigError             (exit 2)

Missing credential fields are not reported through this hierarchy: the
:class:`~freshtoken.models.Credentials` model rejects them at construction
with :class:`pydantic.ValidationError` (a :class:`ValueError`), before any
request can be built.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from freshtoken.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_PROTOCOL_ERROR,
)

if TYPE_CHECKING:
    from freshtoken.models import ErrorResponse


class FreshTokenError(Exception):
    """Base exception for all freshtoken errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class HttpError(FreshTokenError):
    """Raised by an :class:`~freshtoken.client.HttpProvider` when the transport fails."""

    exit_code = EXIT_CONNECTION_ERROR


class RequestExecutionError(FreshTokenError):
    """Raised when the token request could not be executed at all.

    Covers DNS, connect and I/O failures as well as malformed endpoint URLs.
    The transport failure is always available as ``__cause__``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class ResponseParsingError(FreshTokenError):
    """Raised when a response body matches neither the token nor the error schema."""

    exit_code = EXIT_PROTOCOL_ERROR


class AccessTokenError(FreshTokenError):
    """Raised when the token endpoint rejects the request with a structured OAuth2 error.

    Callers can branch on ``error_response.error`` using the :rfc:`6749`
    error codes (``invalid_request``, ``invalid_client``,
    ``unauthorized_client`` ...).

    Args:
        status_code: HTTP status of the rejecting response.
        error_response: The parsed error body.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, status_code: int, error_response: ErrorResponse):
        message = f"HTTP {status_code}: {error_response.error}"
        if error_response.error_description:
            message += f" ({error_response.error_description})"
        super().__init__(message)
        self.status_code = status_code
        self.error_response = error_response


class ResponseCloseError(FreshTokenError):
    """Raised when closing a response body fails.

    The underlying :class:`OSError` is kept as ``__cause__``.
    """


class ConfigError(FreshTokenError):
    """Raised for credential sourcing problems (unreadable files, unknown sources)."""

    exit_code = EXIT_INVALID_USAGE


def describe(exc: BaseException) -> str:
    """Return ``exc`` as a one-line message, appending its cause when present."""
    cause: Optional[BaseException] = exc.__cause__
    if cause is None or str(cause) in str(exc):
        return str(exc)
    return f"{exc}: {cause}"
