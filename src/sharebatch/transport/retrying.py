"""
Retrying HTTP transport.

Wraps a raw transport: applies default headers, attaches a request digest to
mutating calls, and retries throttled or unavailable requests with
exponential backoff.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Optional

import httpx
import structlog

from sharebatch.config import TransportConfig, get_config
from sharebatch.errors import (
    RetryExhaustedError,
    TransportError,
    TransportTerminalError,
)
from sharebatch.transport.digest import DigestCache
from sharebatch.transport.headers import (
    DIGEST_HEADER,
    TRACKING_HEADER,
    apply_default_headers,
    merge_headers,
)
from sharebatch.transport.httpx_transport import HttpxTransport
from sharebatch.transport.interface import FetchOptions, Response, Transport
from sharebatch.transport.urls import extract_web_url

logger = structlog.get_logger(__name__)

RETRYABLE_RESPONSE_STATUSES = frozenset({429, 503, 504})
RETRYABLE_FAILURE_STATUSES = frozenset({503, 504})

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RetryContext:
    """Retry bookkeeping for one logical call."""
    attempts: int
    delay_ms: int
    max_attempts: int


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Parse a Retry-After header into seconds.

    Accepts delta-seconds or an HTTP date. Returns None when the header is
    missing or unreadable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        return max(0.0, float(int(value)))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


class RetryingTransport:
    """
    Client-side HTTP entry point for every call to the service.

    ``fetch`` is the full pipeline (defaults, digest, retry); ``send`` only
    retries, and is what the digest cache uses for its own calls.

    Usage:
        ```python
        client = RetryingTransport(config=config)
        response = await client.post(url, FetchOptions(body="{}"))
        ```
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        transport: Optional[Transport] = None,
        digest_cache: Optional[DigestCache] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize the retrying transport.

        Args:
            config: Transport configuration
            transport: Default underlying transport (built from config if not provided)
            digest_cache: Shared digest cache (a private one is created if not provided)
            sleep: Awaitable delay used between attempts
        """
        self.config = config or get_config()
        self._default_transport = transport
        self._sleep = sleep
        self.digest_cache = digest_cache or DigestCache(self.send, self.config)

    def get_transport(self, options: Optional[FetchOptions] = None) -> Transport:
        """Select the underlying transport for a call."""
        if options is not None and options.transport is not None:
            return options.transport

        if self._default_transport is None:
            if self.config.transport_factory is not None:
                self._default_transport = self.config.transport_factory()
            else:
                self._default_transport = HttpxTransport(self.config)

        return self._default_transport

    async def fetch(self, url: str, options: Optional[FetchOptions] = None) -> Response:
        """
        Send a request with default headers, digest injection and retries.

        Args:
            url: Absolute request URL
            options: Call options; per-call headers override global ones

        Returns:
            The final response (any non-retryable status)

        Raises:
            RetryExhaustedError: If throttling/unavailability outlasts the budget
            TransportTerminalError: If the transport fails in a non-retryable way
            AuthTokenError: If a digest was needed and could not be obtained
        """
        options = options or FetchOptions()

        # global headers first so they can be overwritten locally
        headers = httpx.Headers()
        merge_headers(headers, self.config.headers)
        merge_headers(headers, options.headers)

        method_name = headers.get(TRACKING_HEADER) or "request"
        if TRACKING_HEADER in headers:
            del headers[TRACKING_HEADER]

        apply_default_headers(headers, self.config, method_name)

        opts = options.with_changes(
            headers=headers,
            cache_mode=options.cache_mode or "no-cache",
            credentials_mode=options.credentials_mode or "same-origin",
        )

        # a digest or an authorization header already authorizes the call
        if (
            opts.method.upper() != "GET"
            and DIGEST_HEADER not in headers
            and "Authorization" not in headers
        ):
            transport = self.get_transport(opts)
            digest = await self.digest_cache.get_token(transport, extract_web_url(url))
            headers[DIGEST_HEADER] = digest

        return await self.send(url, opts)

    async def send(self, url: str, options: Optional[FetchOptions] = None) -> Response:
        """
        Send a request as-is, retrying on 429/503/504.

        No headers are added and no digest is attached.
        """
        options = options or FetchOptions()
        options = options.with_changes(headers=merge_headers(httpx.Headers(), options.headers))
        transport = self.get_transport(options)

        ctx = RetryContext(
            attempts=0,
            delay_ms=self.config.initial_retry_delay_ms,
            max_attempts=self.config.max_attempts,
        )

        while True:
            try:
                response = await transport.send(url, options)
            except TransportError as e:
                if e.status not in RETRYABLE_FAILURE_STATUSES:
                    logger.error("request_failed", method=options.method, url=url, error=str(e))
                    raise TransportTerminalError(
                        f"{options.method} {url} failed: {e}",
                        status=e.status,
                        status_text=e.status_text,
                    ) from e
                status, status_text, retry_after = e.status, e.status_text or "", None
            except httpx.HTTPError as e:
                logger.error("request_failed", method=options.method, url=url, error=str(e))
                raise TransportTerminalError(f"{options.method} {url} failed: {e}") from e
            else:
                if response.status not in RETRYABLE_RESPONSE_STATUSES:
                    return response
                status, status_text = response.status, response.status_text
                retry_after = response.headers.get("Retry-After")

            delay_seconds = self._next_delay(ctx, retry_after)
            ctx.attempts += 1

            if ctx.attempts >= ctx.max_attempts:
                logger.error(
                    "request_retry_exhausted",
                    method=options.method,
                    url=url,
                    status=status,
                    attempts=ctx.attempts,
                )
                raise RetryExhaustedError(status, status_text, ctx.attempts)

            logger.info(
                "request_retry_scheduled",
                method=options.method,
                url=url,
                status=status,
                attempt=ctx.attempts,
                delay_seconds=delay_seconds,
            )
            await self._sleep(delay_seconds)

    @staticmethod
    def _next_delay(ctx: RetryContext, retry_after: Optional[str]) -> float:
        """Delay before the next attempt; doubles the backoff when no Retry-After applies."""
        seconds = parse_retry_after(retry_after)
        if seconds is not None:
            return seconds

        delay_ms = ctx.delay_ms
        ctx.delay_ms *= 2
        return delay_ms / 1000.0

    async def get(self, url: str, options: Optional[FetchOptions] = None) -> Response:
        return await self.fetch(url, (options or FetchOptions()).with_changes(method="GET"))

    async def post(self, url: str, options: Optional[FetchOptions] = None) -> Response:
        return await self.fetch(url, (options or FetchOptions()).with_changes(method="POST"))

    async def patch(self, url: str, options: Optional[FetchOptions] = None) -> Response:
        return await self.fetch(url, (options or FetchOptions()).with_changes(method="PATCH"))

    async def delete(self, url: str, options: Optional[FetchOptions] = None) -> Response:
        return await self.fetch(url, (options or FetchOptions()).with_changes(method="DELETE"))

    async def close(self) -> None:
        """Close the default underlying transport."""
        if self._default_transport is not None:
            await self._default_transport.close()
