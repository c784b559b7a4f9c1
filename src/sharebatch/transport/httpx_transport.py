"""
HTTPX adapter for the underlying transport.

Provides the default raw transport on top of httpx.AsyncClient.
"""

from typing import Optional

import httpx
import structlog

from sharebatch.config import TransportConfig, get_config
from sharebatch.errors import TransportError
from sharebatch.transport.interface import FetchOptions, Response, Transport

logger = structlog.get_logger(__name__)


class HttpxTransport(Transport):
    """
    HTTPX transport adapter.

    Implements the Transport interface using an httpx.AsyncClient, either
    supplied by the caller or created lazily on first use.
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the adapter.

        Args:
            config: Transport configuration. Uses global config if not provided.
            client: Preconfigured client (auth, proxies, mock transport...)
        """
        self.config = config or get_config()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.request_timeout_seconds,
            )
            self._owns_client = True
        return self._client

    async def send(self, url: str, options: FetchOptions) -> Response:
        """Send the request and read the full body."""
        client = self._get_client()

        headers = httpx.Headers(options.headers or {})
        if options.cache_mode == "no-cache" and "Cache-Control" not in headers:
            headers["Cache-Control"] = "no-cache"

        try:
            response = await client.request(
                options.method.upper(),
                url,
                headers=headers,
                content=options.body,
            )
        except httpx.TimeoutException as e:
            logger.warning("http_timeout", url=url, error=str(e))
            raise TransportError(f"Request timed out: {e}", status=504, status_text="Gateway Timeout") from e
        except httpx.RequestError as e:
            logger.error("http_request_error", url=url, error=str(e))
            raise TransportError(f"Request failed: {e}") from e

        return Response(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=response.headers,
            text=response.text,
        )

    async def close(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.debug("httpx_transport_closed")
