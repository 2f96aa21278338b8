"""HTTP transport for freshtoken.

Classes:
    :class:`HttpProvider` -- interface the token endpoint sends requests through.
    :class:`HttpRequest` / :class:`HttpResponse` -- the values it exchanges.
    :class:`HttpxProvider` -- default provider backed by :class:`httpx.Client`.
"""

from freshtoken.client.http import HttpProvider, HttpRequest, HttpResponse
from freshtoken.client.httpx_provider import HttpxProvider

__all__ = ["HttpProvider", "HttpRequest", "HttpResponse", "HttpxProvider"]
