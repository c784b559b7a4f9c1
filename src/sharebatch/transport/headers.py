"""
Header helpers shared by the retrying transport and the batch encoder.
"""

from typing import Optional

import httpx

from sharebatch import __version__
from sharebatch.config import TransportConfig
from sharebatch.transport.interface import HeadersLike

JSON_ACCEPT = "application/json"
JSON_VERBOSE = "application/json;odata=verbose"
JSON_CONTENT_TYPE = "application/json;odata=verbose;charset=utf-8"

CLIENT_TAG_HEADER = "X-ClientService-ClientTag"
TRACKING_HEADER = "X-ClientService-Tracking"
DIGEST_HEADER = "X-RequestDigest"
METHOD_OVERRIDE_HEADER = "X-HTTP-Method"


def merge_headers(target: httpx.Headers, source: Optional[HeadersLike]) -> httpx.Headers:
    """
    Copy headers from source into target, replacing same-named entries.

    Names compare case-insensitively; the casing of the source wins.
    """
    if not source:
        return target

    if isinstance(source, httpx.Headers):
        encoding = source.encoding
        items = [(k.decode(encoding), v.decode(encoding)) for k, v in source.raw]
    else:
        items = list(source.items())

    for name, value in items:
        target[name] = value
    return target


def client_tag(config: TransportConfig, method_name: str) -> str:
    """Build the client tag value, truncated to the configured length."""
    tag = f"{config.client_tag_prefix}:{__version__}:{method_name}"
    return tag[:config.client_tag_max_length]


def apply_default_headers(
    headers: httpx.Headers,
    config: TransportConfig,
    method_name: str = "request",
) -> httpx.Headers:
    """Add Accept, Content-Type and client tag headers where missing."""
    if "Accept" not in headers:
        headers["Accept"] = JSON_ACCEPT

    if "Content-Type" not in headers:
        headers["Content-Type"] = JSON_CONTENT_TYPE

    if CLIENT_TAG_HEADER not in headers:
        headers[CLIENT_TAG_HEADER] = client_tag(config, method_name)

    return headers


def iter_header_lines(headers: httpx.Headers):
    """Yield ``Name: value`` strings in insertion order, original casing."""
    encoding = headers.encoding
    for name, value in headers.raw:
        yield f"{name.decode(encoding)}: {value.decode(encoding)}"
