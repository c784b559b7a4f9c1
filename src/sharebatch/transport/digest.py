"""
Request digest cache.

Caches the short-lived form digest per underlying transport and per site,
since transports may run under different credentials and digests are only
valid for the site that issued them.
"""

import asyncio
import json
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional

import httpx
import structlog

from sharebatch.config import TransportConfig, get_config
from sharebatch.errors import AuthTokenError
from sharebatch.transport.headers import JSON_VERBOSE, merge_headers
from sharebatch.transport.interface import FetchOptions, Response, Transport
from sharebatch.transport.urls import combine

logger = structlog.get_logger(__name__)

CONTEXT_INFO_PATH = "_api/contextinfo"

Sender = Callable[[str, FetchOptions], Awaitable[Response]]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CachedToken:
    """A digest value and the moment it stops being usable."""
    value: str
    expires_at: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


class _TransportDigests:
    """Per-transport token map plus in-flight fetches."""

    def __init__(self):
        self.tokens: Dict[str, CachedToken] = {}
        self.inflight: Dict[str, "asyncio.Task[CachedToken]"] = {}


class DigestCache:
    """
    Maps (transport, site URL) to a cached digest.

    The side table holds transports weakly, so cached digests disappear with
    the transport that fetched them. One instance may be shared by several
    RetryingTransport objects.

    Usage:
        ```python
        cache = DigestCache(sender=retrying.send)
        digest = await cache.get_token(transport, "https://tenant.example.com/sites/dev")
        ```
    """

    def __init__(
        self,
        sender: Sender,
        config: Optional[TransportConfig] = None,
        clock: Clock = _utcnow,
    ):
        """
        Initialize the cache.

        Args:
            sender: Low-level send used for the issuance call (must not inject digests)
            config: Transport configuration
            clock: Returns the current time, timezone-aware
        """
        self.config = config or get_config()
        self._send = sender
        self._clock = clock
        self._by_transport: "weakref.WeakKeyDictionary[Transport, _TransportDigests]" = (
            weakref.WeakKeyDictionary()
        )

    def _entries(self, transport: Transport) -> _TransportDigests:
        entries = self._by_transport.get(transport)
        if entries is None:
            entries = _TransportDigests()
            self._by_transport[transport] = entries
        return entries

    def peek(self, transport: Transport, web_url: str) -> Optional[CachedToken]:
        """Return the cached token for a key if it is still valid."""
        entries = self._by_transport.get(transport)
        if entries is None:
            return None
        cached = entries.tokens.get(web_url)
        if cached is not None and cached.is_valid(self._clock()):
            return cached
        return None

    async def get_token(self, transport: Transport, web_url: str) -> str:
        """
        Get a digest for a site, fetching a new one on miss or expiry.

        Args:
            transport: Underlying transport the digest will be used with
            web_url: Absolute site URL

        Returns:
            The digest value

        Raises:
            AuthTokenError: If the issuance response is not usable
        """
        cached = self.peek(transport, web_url)
        if cached is not None:
            return cached.value

        entries = self._entries(transport)
        task = entries.inflight.get(web_url)
        if task is None:
            task = asyncio.ensure_future(self._fetch(transport, web_url))
            entries.inflight[web_url] = task
            task.add_done_callback(
                lambda _: entries.inflight.pop(web_url, None)
            )

        token = await asyncio.shield(task)
        return token.value

    def invalidate(
        self,
        transport: Optional[Transport] = None,
        web_url: Optional[str] = None,
    ) -> None:
        """Drop cached digests for one transport, one site, or everything."""
        if transport is None:
            targets = list(self._by_transport.values())
        else:
            entries = self._by_transport.get(transport)
            targets = [entries] if entries is not None else []

        for entries in targets:
            if web_url is None:
                entries.tokens.clear()
            else:
                entries.tokens.pop(web_url, None)

    async def _fetch(self, transport: Transport, web_url: str) -> CachedToken:
        """Request a fresh digest from the context info endpoint."""
        url = combine(web_url, CONTEXT_INFO_PATH)

        headers = httpx.Headers({
            "Accept": JSON_VERBOSE,
            "Content-Type": f"{JSON_VERBOSE};charset=utf-8",
        })
        merge_headers(headers, self.config.headers)

        logger.debug("digest_fetching", url=url)

        response = await self._send(url, FetchOptions(
            method="POST",
            headers=headers,
            cache_mode="no-cache",
            credentials_mode="same-origin",
            transport=transport,
        ))

        if not response.ok:
            raise AuthTokenError(
                f"Digest request failed: [{response.status}] {response.status_text}",
                url=url,
                status=response.status,
            )

        value, timeout_seconds = self._parse_context_info(response, url)

        token = CachedToken(
            value=value,
            expires_at=self._clock() + timedelta(seconds=timeout_seconds),
        )
        self._entries(transport).tokens[web_url] = token

        logger.info("digest_refreshed", web_url=web_url, expires_in=timeout_seconds)
        return token

    @staticmethod
    def _parse_context_info(response: Response, url: str):
        try:
            data = json.loads(response.text)
        except ValueError as e:
            raise AuthTokenError(f"Digest response is not JSON: {e}", url=url, status=response.status) from e

        if isinstance(data, dict) and isinstance(data.get("d"), dict):
            data = data["d"]
        if isinstance(data, dict) and isinstance(data.get("GetContextWebInformation"), dict):
            data = data["GetContextWebInformation"]

        try:
            value = data["FormDigestValue"]
            timeout_seconds = int(data["FormDigestTimeoutSeconds"])
        except (KeyError, TypeError, ValueError) as e:
            raise AuthTokenError(
                f"Digest response is missing FormDigestValue/FormDigestTimeoutSeconds: {e}",
                url=url,
                status=response.status,
            ) from e

        if not isinstance(value, str) or not value:
            raise AuthTokenError("Digest response has an empty FormDigestValue", url=url, status=response.status)

        return value, timeout_seconds
