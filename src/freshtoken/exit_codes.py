"""Numeric process exit codes for the ``freshtoken`` command line.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~freshtoken.exceptions.FreshTokenError` subclass.
Shell wrappers can inspect the exit code to tell a rejected client apart
from an unreachable token endpoint without parsing stderr.

Example::

    $ freshtoken token
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the token endpoint rejected the client
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing credentials."""

EXIT_AUTH_FAILURE = 3
"""The token endpoint answered with a structured OAuth2 error."""

EXIT_CONNECTION_ERROR = 6
"""The token request could not be executed (DNS, connect, I/O, bad URL)."""

EXIT_PROTOCOL_ERROR = 7
"""The token endpoint answered with a body that could not be parsed."""
