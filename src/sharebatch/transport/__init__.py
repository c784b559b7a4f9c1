"""
Transport layer.

Provides the raw transport contract, the default HTTPX adapter, the request
digest cache and the retrying transport built on top of them.
"""

from sharebatch.transport.interface import FetchOptions, Response, Transport
from sharebatch.transport.httpx_transport import HttpxTransport
from sharebatch.transport.digest import CachedToken, DigestCache
from sharebatch.transport.retrying import RetryContext, RetryingTransport

__all__ = [
    "FetchOptions",
    "Response",
    "Transport",
    "HttpxTransport",
    "CachedToken",
    "DigestCache",
    "RetryContext",
    "RetryingTransport",
]
