"""
Batch model.

Represents an ordered collection of requests sent as one multipart call.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Union

from sharebatch.core.request import PendingRequest, RequestStatus

if TYPE_CHECKING:
    from sharebatch.core.parsers import ResultParser
    from sharebatch.transport.interface import Transport


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchStatus(str, Enum):
    """Status of a batch."""
    COLLECTING = "collecting"     # Still accepting requests
    EXECUTING = "executing"       # Dispatched, waiting for the response
    COMPLETED = "completed"       # Every request settled from the response
    FAILED = "failed"             # Batch-level failure, every request rejected


@dataclass
class Batch:
    """
    Represents a batch of requests executed together.

    A batch is single-use: once execution starts no request can be added
    and it cannot be executed again.

    Attributes:
        base_url: Site URL that relative request URLs are resolved against
        transport: Underlying transport shared by all requests
        batch_id: Unique identifier, used as the multipart boundary
        requests: Requests in append order
        status: Current processing status
    """

    base_url: Optional[str] = None
    transport: Optional["Transport"] = None
    batch_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    requests: List[PendingRequest] = field(default_factory=list)
    status: BatchStatus = BatchStatus.COLLECTING

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    error_message: Optional[str] = None

    def __post_init__(self):
        """Validate after initialization."""
        if isinstance(self.status, str):
            self.status = BatchStatus(self.status)

    def add_request(self, request: PendingRequest) -> PendingRequest:
        """
        Append a request to this batch.

        Args:
            request: The request to append

        Returns:
            The same request, for awaiting its result

        Raises:
            RuntimeError: If the batch was already dispatched, or the request
                is already queued in this or another batch
        """
        if self.status != BatchStatus.COLLECTING:
            raise RuntimeError(f"Batch {self.batch_id} no longer accepts requests ({self.status.value})")
        if request in self.requests:
            raise RuntimeError(f"Request {request.id} is already in batch {self.batch_id}")
        if request.batch_id is not None:
            raise RuntimeError(f"Request {request.id} is already queued in batch {request.batch_id}")

        request.mark_queued(self.batch_id)
        self.requests.append(request)
        self.updated_at = _utcnow()
        return request

    def add(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Union[str, bytes]] = None,
        parser: Optional["ResultParser"] = None,
    ) -> PendingRequest:
        """Create a request bound to this batch's transport and append it."""
        return self.add_request(PendingRequest(
            method=method,
            url=url,
            headers=dict(headers or {}),
            body=body,
            parser=parser,
            transport=self.transport,
        ))

    @property
    def size(self) -> int:
        """Get the number of requests in this batch."""
        return len(self.requests)

    @property
    def is_empty(self) -> bool:
        """Check if batch has no requests."""
        return len(self.requests) == 0

    def mark_executing(self) -> None:
        """
        Mark batch as dispatched.

        Raises:
            RuntimeError: If the batch was already executed
        """
        if self.status != BatchStatus.COLLECTING:
            raise RuntimeError(f"Batch {self.batch_id} was already executed ({self.status.value})")
        self.status = BatchStatus.EXECUTING
        self.updated_at = _utcnow()

    def mark_sent(self) -> None:
        """Mark every request as sent."""
        for request in self.requests:
            request.mark_sent()
        self.updated_at = _utcnow()

    def mark_completed(self) -> None:
        """Mark batch as completed."""
        self.status = BatchStatus.COMPLETED
        self.updated_at = _utcnow()

    def mark_failed(self, error: BaseException) -> None:
        """
        Mark batch as failed and reject every request not yet settled.

        The error is also raised to whoever executes the batch, so the
        rejected futures are flagged as retrieved and callers that never
        await their requests get no "exception was never retrieved" warning.
        Awaiting a request still raises the error.
        """
        self.status = BatchStatus.FAILED
        self.error_message = str(error)
        self.updated_at = _utcnow()
        for request in self.requests:
            if request.settled:
                continue
            request.reject(error)
            if request.status == RequestStatus.REJECTED:
                request.future.exception()

    def get_request_ids(self) -> List[str]:
        """Get all request IDs in this batch."""
        return [r.id for r in self.requests]

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "batch_id": self.batch_id,
            "base_url": self.base_url,
            "status": self.status.value,
            "size": self.size,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "error_message": self.error_message,
            "requests": [r.to_dict() for r in self.requests],
        }

    def __repr__(self) -> str:
        return f"Batch(id={self.batch_id[:8]}..., status={self.status.value}, size={self.size})"
