"""
Batch encoder.

Serializes an ordered list of pending requests into a multipart/mixed batch
body. Reads become top-level parts; runs of consecutive writes share one
changeset.
"""

import uuid
from typing import Callable, List, Optional, Sequence

import httpx
import structlog

from sharebatch.config import TransportConfig, get_config
from sharebatch.core.request import PendingRequest
from sharebatch.errors import BatchEncodingError
from sharebatch.transport.headers import (
    JSON_CONTENT_TYPE,
    METHOD_OVERRIDE_HEADER,
    apply_default_headers,
    iter_header_lines,
    merge_headers,
)
from sharebatch.transport.interface import Transport
from sharebatch.transport.urls import combine, is_url_absolute

logger = structlog.get_logger(__name__)


def ensure_homogeneous(
    requests: Sequence[PendingRequest],
    transport: Optional[Transport] = None,
) -> None:
    """
    Check that every request uses the batch's transport.

    Either no request selects a transport, or all of them select the very
    same instance as the batch.

    Raises:
        BatchEncodingError: Naming the first offending request
    """
    for i, request in enumerate(requests):
        if request.transport is not transport:
            raise BatchEncodingError(
                f"Request #{i + 1} cannot have different transport configuration "
                f"than the batch ({request.method} {request.url})!",
                index=i,
                method=request.method,
                url=request.url,
            )


class BatchEncoder:
    """
    Builds the multipart body for a batch.

    Usage:
        ```python
        body = BatchEncoder(config).encode(batch.batch_id, batch.requests, base_url)
        ```
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        changeset_id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        """
        Initialize the encoder.

        Args:
            config: Transport configuration (global headers, client tag)
            changeset_id_factory: Produces a fresh changeset boundary id
        """
        self.config = config or get_config()
        self._new_changeset_id = changeset_id_factory

    def encode(
        self,
        batch_id: str,
        requests: Sequence[PendingRequest],
        base_url: Optional[str] = None,
        transport: Optional[Transport] = None,
    ) -> str:
        """
        Encode requests into a batch body.

        Args:
            batch_id: Batch boundary id
            requests: Requests in execution order
            base_url: Absolute URL that relative request URLs are resolved against
            transport: Transport selected by the batch

        Returns:
            The multipart body, or an empty string for no requests

        Raises:
            BatchEncodingError: On mixed transports or unresolvable URLs
        """
        ensure_homogeneous(requests, transport)

        if not requests:
            return ""

        body: List[str] = []
        changeset_id = ""

        for i, request in enumerate(requests):
            method = request.method.upper()

            if method == "GET":
                if changeset_id:
                    # end the open changeset
                    body.append(f"--changeset_{changeset_id}--\n\n")
                    changeset_id = ""

                body.append(f"--batch_{batch_id}\n")

            else:
                if not changeset_id:
                    changeset_id = self._new_changeset_id()
                    body.append(f"--batch_{batch_id}\n")
                    body.append(f'Content-Type: multipart/mixed; boundary="changeset_{changeset_id}"\n\n')

                body.append(f"--changeset_{changeset_id}\n")

            body.append("Content-Type: application/http\n")
            body.append("Content-Transfer-Encoding: binary\n\n")

            url = self._resolve_url(i, request, base_url)

            logger.debug("batch_request_added", batch_id=batch_id, method=method, url=url)

            headers = httpx.Headers()
            if method != "GET":
                headers["Content-Type"] = JSON_CONTENT_TYPE

            merge_headers(headers, self.config.headers)
            merge_headers(headers, request.headers)

            if method != "GET" and METHOD_OVERRIDE_HEADER in headers:
                method = headers[METHOD_OVERRIDE_HEADER].upper()
                del headers[METHOD_OVERRIDE_HEADER]

            apply_default_headers(headers, self.config, "batch")

            body.append(f"{method} {url} HTTP/1.1\n")
            for line in iter_header_lines(headers):
                body.append(f"{line}\n")
            body.append("\n")

            if request.body:
                payload = request.body
                if isinstance(payload, bytes):
                    payload = payload.decode("utf-8")
                body.append(f"{payload}\n\n")

        if changeset_id:
            body.append(f"--changeset_{changeset_id}--\n\n")

        body.append(f"--batch_{batch_id}--\n")

        return "".join(body)

    @staticmethod
    def _resolve_url(index: int, request: PendingRequest, base_url: Optional[str]) -> str:
        url = request.url
        if not is_url_absolute(url):
            url = combine(base_url, url) if base_url else url

        if not is_url_absolute(url):
            # requests inside a batch must carry absolute URLs
            raise BatchEncodingError(
                f"Request #{index + 1} must have absolute URL. Make sure configuration "
                f"is correct ({request.method} {request.url})!",
                index=index,
                method=request.method,
                url=request.url,
            )
        return url
