"""Client authentication for the token endpoint.

The main entry points are:

- :class:`ClientCredentialsProvider` -- supplies the token endpoint URL, the
  request authorizer and the HTTP method.
- :class:`OAuth1ClientCredentialsProvider` -- explicit access key pair.
- :class:`FromEnvironment`, :class:`FromPropertiesFile`,
  :class:`FromDefaultCredentialsFile` -- sourced credentials.
- :class:`OAuth1Signer` and :func:`sign` -- the HMAC-SHA256 signature.

Typical usage::

    from freshtoken.auth import FromEnvironment

    provider = FromEnvironment()
    provider.client_authorizer.authorize(request)
    request.headers["Authorization"]  # 'OAuth oauth_consumer_key="...", ...'
"""

from freshtoken.auth.base import ClientCredentialsProvider, RequestAuthorizer
from freshtoken.auth.providers import (
    DelegatingCredentialsProvider,
    FromDefaultCredentialsFile,
    FromEnvironment,
    FromProperties,
    FromPropertiesFile,
    OAuth1ClientCredentialsProvider,
)
from freshtoken.auth.signer import OAuth1Signer, percent_encode, sign

__all__ = [
    "ClientCredentialsProvider",
    "DelegatingCredentialsProvider",
    "FromDefaultCredentialsFile",
    "FromEnvironment",
    "FromProperties",
    "FromPropertiesFile",
    "OAuth1ClientCredentialsProvider",
    "OAuth1Signer",
    "RequestAuthorizer",
    "percent_encode",
    "sign",
]
