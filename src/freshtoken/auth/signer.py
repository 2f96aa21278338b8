"""OAuth1-style HMAC-SHA256 request signing.

The token endpoint authenticates the *client* (not the bearer token being
requested) by checking a signature carried in the ``Authorization`` header:

1. Collect the ``oauth_*`` protocol parameters, the form parameters and any
   query parameters of the URL.
2. Percent-encode every name and value (:func:`percent_encode`), sort by
   name then value, and join as ``name=value`` pairs with ``&``.
3. Build the base string ``METHOD&enc(base_url)&enc(param_string)``.
4. HMAC-SHA256 it with the key ``enc(secret) + "&"`` and base64 the digest.
5. Emit ``OAuth key="value", ...`` listing every ``oauth_*`` parameter.

:func:`sign` is a pure function of its inputs; :class:`OAuth1Signer`
supplies the timestamp from a :class:`~freshtoken.cache.clock.Clock` and a
random nonce per request.

See Also:
    :rfc:`5849` section 3.4 for the base string construction.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit

from freshtoken.auth.base import RequestAuthorizer
from freshtoken.cache.clock import Clock, SystemClock
from freshtoken.client.http import HttpRequest

SIGNATURE_METHOD = "HMAC-SHA256"
OAUTH_VERSION = "1.0"

ParamValues = Union[str, Sequence[str]]

_DEFAULT_PORTS = {"http": 80, "https": 443}


def percent_encode(value: object) -> str:
    """Percent-encode ``value`` leaving only ``A-Z a-z 0-9 - . _ ~`` as-is.

    Text is encoded as UTF-8 first; a space becomes ``%20``.
    """
    return quote(str(value).encode("utf-8"), safe="-._~")


def normalize_base_url(url: str) -> str:
    """Return the base string URI of ``url``.

    Scheme and host are lowercased, default ports dropped, query and
    fragment removed, and an empty path becomes ``/``.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    netloc = host if port is None or _DEFAULT_PORTS.get(scheme) == port else f"{host}:{port}"
    return urlunsplit((scheme, netloc, parts.path or "/", "", ""))


def _flatten(params: Optional[Mapping[str, ParamValues]]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for name, values in (params or {}).items():
        if isinstance(values, str):
            pairs.append((name, values))
        else:
            pairs.extend((name, str(v)) for v in values)
    return pairs


def normalize_parameters(pairs: Iterable[tuple[str, str]]) -> str:
    """Encode, sort and join parameter pairs into the normalized string."""
    encoded = sorted((percent_encode(k), percent_encode(v)) for k, v in pairs)
    return "&".join(f"{k}={v}" for k, v in encoded)


def signature_base_string(method: str, url: str, pairs: Iterable[tuple[str, str]]) -> str:
    """Build ``METHOD&enc(base_url)&enc(normalized_params)``.

    Query parameters found in ``url`` are signed together with ``pairs``.
    """
    all_pairs = list(pairs)
    all_pairs.extend(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    return "&".join(
        [
            method.upper(),
            percent_encode(normalize_base_url(url)),
            percent_encode(normalize_parameters(all_pairs)),
        ]
    )


def hmac_sha256_signature(base_string: str, access_key_secret: str) -> str:
    """HMAC-SHA256 ``base_string`` with ``enc(secret)&`` and base64 the digest."""
    key = f"{percent_encode(access_key_secret)}&".encode("utf-8")
    digest = hmac.new(key, base_string.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def sign(
    method: str,
    url: str,
    form_params: Optional[Mapping[str, ParamValues]],
    access_key_id: str,
    access_key_secret: str,
    timestamp: int,
    nonce: str,
) -> str:
    """Return the ``Authorization`` header value for a request.

    Deterministic: identical inputs always produce the identical value.

    Args:
        method: HTTP method; uppercased in the base string.
        url: Full request URL, possibly with a query string.
        form_params: Form-encoded body parameters (name -> value(s)).
        access_key_id: Sent as ``oauth_consumer_key``.
        access_key_secret: HMAC key; never sent.
        timestamp: Seconds since the epoch.
        nonce: Value unique to this request.

    Returns:
        ``OAuth oauth_consumer_key="...", oauth_nonce="...", ...``
    """
    oauth_params = {
        "oauth_consumer_key": access_key_id,
        "oauth_nonce": nonce,
        "oauth_signature_method": SIGNATURE_METHOD,
        "oauth_timestamp": str(timestamp),
        "oauth_version": OAUTH_VERSION,
    }
    pairs = list(oauth_params.items()) + _flatten(form_params)
    base_string = signature_base_string(method, url, pairs)
    oauth_params["oauth_signature"] = hmac_sha256_signature(base_string, access_key_secret)

    header_params = ", ".join(
        f'{percent_encode(k)}="{percent_encode(v)}"' for k, v in sorted(oauth_params.items())
    )
    return f"OAuth {header_params}"


def generate_nonce() -> str:
    """Return a random, URL-safe nonce."""
    return secrets.token_urlsafe(16)


class OAuth1Signer(RequestAuthorizer):
    """Signs outbound requests with an access key pair.

    Args:
        access_key_id: The client's access key ID.
        access_key_secret: The client's access key secret.
        clock: Source of ``oauth_timestamp``; defaults to :class:`SystemClock`.
        nonce_factory: Source of ``oauth_nonce``; defaults to
            :func:`generate_nonce`.
    """

    def __init__(
        self,
        access_key_id: str,
        access_key_secret: str,
        clock: Optional[Clock] = None,
        nonce_factory: Callable[[], str] = generate_nonce,
    ) -> None:
        self._access_key_id = access_key_id
        self._access_key_secret = access_key_secret
        self._clock = clock or SystemClock()
        self._nonce_factory = nonce_factory

    @property
    def access_key_id(self) -> str:
        return self._access_key_id

    def authorize(self, request: HttpRequest) -> None:
        """Set the ``Authorization`` header of ``request``.

        Form parameters are signed unless the request carries a JSON body.
        """
        form_params = None if request.json_body is not None else request.form_params
        request.add_header(
            "Authorization",
            sign(
                request.method,
                request.url,
                form_params,
                self._access_key_id,
                self._access_key_secret,
                self._clock.now_millis() // 1000,
                self._nonce_factory(),
            ),
        )
