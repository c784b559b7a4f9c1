"""
Pending request model.

Represents one logical operation waiting inside a batch, together with the
future that its caller awaits.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

import structlog

if TYPE_CHECKING:
    from sharebatch.core.parsers import ResultParser
    from sharebatch.transport.interface import Transport

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestStatus(str, Enum):
    """Status of a pending request."""
    PENDING = "pending"           # Created, not yet in a batch
    QUEUED = "queued"             # Appended to a batch
    SENT = "sent"                 # Batch sent, waiting for resolution
    RESOLVED = "resolved"         # Result delivered
    REJECTED = "rejected"         # Error delivered
    CANCELLED = "cancelled"       # Caller cancelled its wait before settlement


@dataclass(eq=False)
class PendingRequest:
    """
    A single logical request waiting to be batched.

    Attributes:
        method: HTTP method (GET is a read, everything else a write)
        url: Absolute or batch-relative URL
        headers: Per-request headers
        body: Request body, if any
        parser: Turns this request's part of the batch response into a value
        transport: Underlying transport selected for this request
        id: Unique identifier, used in log lines
        status: Current lifecycle status
        batch_id: ID of the batch this request was appended to
    """

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[Union[str, bytes]] = None
    parser: Optional["ResultParser"] = None
    transport: Optional["Transport"] = None

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: RequestStatus = RequestStatus.PENDING
    batch_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    _future: Optional["asyncio.Future[Any]"] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        """Normalize after initialization."""
        self.method = self.method.upper()
        if isinstance(self.status, str):
            self.status = RequestStatus(self.status)
        if self.parser is None:
            from sharebatch.core.parsers import ODataParser
            self.parser = ODataParser()

    @property
    def future(self) -> "asyncio.Future[Any]":
        """Future settled with this request's result; created on first access."""
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def is_read(self) -> bool:
        return self.method == "GET"

    @property
    def settled(self) -> bool:
        return self.status in (RequestStatus.RESOLVED, RequestStatus.REJECTED, RequestStatus.CANCELLED)

    def mark_queued(self, batch_id: str) -> None:
        """Mark request as appended to a batch."""
        self.status = RequestStatus.QUEUED
        self.batch_id = batch_id
        self.updated_at = _utcnow()

    def mark_sent(self) -> None:
        """Mark request as sent with its batch."""
        self.status = RequestStatus.SENT
        self.updated_at = _utcnow()

    def resolve(self, value: Any) -> None:
        """
        Deliver the result.

        A future the caller already cancelled is left as is and the request
        is marked CANCELLED.

        Raises:
            RuntimeError: If the request was already settled
        """
        self._ensure_unsettled()
        if self._claim_future():
            self.future.set_result(value)
            self._mark_settled(RequestStatus.RESOLVED)

    def reject(self, error: BaseException) -> None:
        """
        Deliver an error.

        Raises:
            RuntimeError: If the request was already settled
        """
        self._ensure_unsettled()
        if self._claim_future():
            self.future.set_exception(error)
            self._mark_settled(RequestStatus.REJECTED)

    def _ensure_unsettled(self) -> None:
        if self.settled:
            raise RuntimeError(f"Request {self.id} ({self.method} {self.url}) is already settled")

    def _claim_future(self) -> bool:
        """Return False if the caller already cancelled the future."""
        if not self.future.done():
            return True
        logger.debug("request_cancelled", request_id=self.id, batch_id=self.batch_id)
        self._mark_settled(RequestStatus.CANCELLED)
        return False

    def _mark_settled(self, status: RequestStatus) -> None:
        self.status = status
        self.updated_at = _utcnow()

    async def result(self) -> Any:
        """Wait for the request to be settled and return its value."""
        return await self.future

    def __await__(self):
        return self.future.__await__()

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "method": self.method,
            "url": self.url,
            "status": self.status.value,
            "batch_id": self.batch_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
