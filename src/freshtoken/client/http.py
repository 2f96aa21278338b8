"""Transport interface used by :class:`~freshtoken.endpoint.TokenEndpoint`.

The token endpoint never talks to the network directly. It builds an
:class:`HttpRequest`, has it signed, and hands it to an :class:`HttpProvider`,
which returns an :class:`HttpResponse` whose body is an open binary stream.
The endpoint owns that stream and closes it once the body is parsed.

Providers report transport failures by raising
:class:`~freshtoken.exceptions.HttpError` (or any :class:`OSError`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import BinaryIO, Optional


@dataclass
class HttpRequest:
    """An outbound request, before and after signing.

    ``form_params`` are sent as an ``application/x-www-form-urlencoded``
    body, or appended to the query string for ``GET``. When ``json_body``
    is set it is sent instead and the form parameters are not used.
    """

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    form_params: dict[str, list[str]] = field(default_factory=dict)
    json_body: Optional[str] = None

    def add_header(self, name: str, value: str) -> None:
        self.headers[name] = value


@dataclass
class HttpResponse:
    """A response whose body has not been read yet.

    ``content_length`` is ``None`` when the server did not announce one.
    """

    status_code: int
    content_length: Optional[int]
    body: BinaryIO
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class HttpProvider(ABC):
    """Executes signed requests."""

    @abstractmethod
    def execute(self, request: HttpRequest) -> HttpResponse:
        """Send ``request`` and return the response with an unread body.

        Raises:
            HttpError: If the request could not be sent or no response
                was received.
        """
        ...
