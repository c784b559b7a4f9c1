"""
Batch executor.

Sends a batch as one multipart call and settles every contained request
from the response, in append order.
"""

from typing import Any, Optional, Tuple

import structlog

from sharebatch.codec.decoder import BatchDecoder, ParsedPart
from sharebatch.codec.encoder import BatchEncoder, ensure_homogeneous
from sharebatch.config import TransportConfig, get_config
from sharebatch.core.batch import Batch
from sharebatch.core.request import PendingRequest, RequestStatus
from sharebatch.errors import RequestResultParseError, TransportTerminalError
from sharebatch.transport.interface import FetchOptions
from sharebatch.transport.retrying import RetryingTransport
from sharebatch.transport.urls import combine, to_absolute_url

logger = structlog.get_logger(__name__)

BATCH_PATH = "_api/$batch"


class BatchExecutor:
    """
    Executes batches.

    Coordinates the batch pipeline:
    - Transport homogeneity check
    - Encoding into a multipart body
    - Sending through the retrying transport
    - Decoding the multipart response
    - Ordered, per-request settlement

    Usage:
        ```python
        executor = BatchExecutor(RetryingTransport(config))
        batch = Batch(base_url="https://tenant.example.com/sites/dev")
        items = batch.add("GET", "_api/web/lists")
        await executor.execute(batch)
        print(await items)
        ```
    """

    def __init__(
        self,
        client: Optional[RetryingTransport] = None,
        config: Optional[TransportConfig] = None,
        encoder: Optional[BatchEncoder] = None,
        decoder: Optional[BatchDecoder] = None,
    ):
        """
        Initialize the executor.

        Args:
            client: Retrying transport used for the batch call
            config: Transport configuration
            encoder: Custom batch encoder
            decoder: Custom batch decoder
        """
        self.config = config or (client.config if client else get_config())
        self.client = client or RetryingTransport(self.config)
        self.encoder = encoder or BatchEncoder(self.config)
        self.decoder = decoder or BatchDecoder()

    async def execute(self, batch: Batch) -> None:
        """
        Execute a batch and settle all of its requests.

        Batch-level failures reject every request with the same error and
        are re-raised. A request whose own result cannot be parsed is
        rejected alone.

        Args:
            batch: A batch that has not been executed yet
        """
        batch.mark_executing()

        logger.info("batch_executing", batch_id=batch.batch_id, size=batch.size)

        try:
            await self._execute(batch)
        except Exception as e:
            logger.error("batch_failed", batch_id=batch.batch_id, error=str(e))
            batch.mark_failed(e)
            raise

    async def _execute(self, batch: Batch) -> None:
        # all requests must go through the batch's own transport
        ensure_homogeneous(batch.requests, batch.transport)

        # nothing to send, possibly because everything was served upstream
        if batch.is_empty:
            logger.info("batch_empty", batch_id=batch.batch_id)
            batch.mark_completed()
            return

        # resolved once, shared by every request URL and the batch endpoint
        base_url = to_absolute_url(batch.base_url, self.config.base_url)

        body = self.encoder.encode(
            batch.batch_id,
            batch.requests,
            base_url=base_url,
            transport=batch.transport,
        )

        logger.info("batch_sending", batch_id=batch.batch_id)

        batch.mark_sent()
        response = await self.client.fetch(combine(base_url, BATCH_PATH), FetchOptions(
            method="POST",
            body=body,
            headers={"Content-Type": f"multipart/mixed; boundary=batch_{batch.batch_id}"},
            transport=batch.transport,
        ))

        if not response.ok:
            raise TransportTerminalError(
                f"Batch request failed: [{response.status}] {response.status_text}",
                status=response.status,
                status_text=response.status_text,
            )

        parts = self.decoder.decode(response.text, expected_count=batch.size)

        logger.info("batch_resolving", batch_id=batch.batch_id)

        # one at a time, so side effects of parsers happen in request order
        for request, part in zip(batch.requests, parts):
            logger.debug("request_resolving", request_id=request.id, batch_id=batch.batch_id)
            self._settle(request, await self._parse(request, part))

        batch.mark_completed()

    @staticmethod
    async def _parse(request: PendingRequest, part: ParsedPart) -> Tuple[bool, Any]:
        """Run the request's parser, returning (ok, value or error)."""
        try:
            return True, await request.parser.parse(part)
        except RequestResultParseError as e:
            e.request_id = e.request_id or request.id
            return False, e
        except Exception as e:
            error = RequestResultParseError(
                f"Could not parse result of {request.method} {request.url}: {e}",
                status=part.status,
                request_id=request.id,
            )
            error.__cause__ = e
            return False, error

    @staticmethod
    def _settle(request: PendingRequest, outcome: Tuple[bool, Any]) -> None:
        """Settle one request without letting it affect the rest of the batch."""
        if request.settled:
            logger.warning("request_already_settled", request_id=request.id, status=request.status.value)
            return

        ok, value = outcome
        if ok:
            request.resolve(value)
        else:
            request.reject(value)
        if request.status == RequestStatus.CANCELLED:
            logger.info("request_result_dropped", request_id=request.id, reason="cancelled")
