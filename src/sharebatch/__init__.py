"""
sharebatch

Batching and resilient transport for a document/list management REST service.
Logical requests are combined into single multipart/mixed calls, mutating
calls are authorized with a cached request digest, and throttled calls are
retried with backoff.
"""

__version__ = "0.1.0"

from sharebatch.core.batch import Batch, BatchStatus
from sharebatch.core.executor import BatchExecutor
from sharebatch.core.request import PendingRequest, RequestStatus
from sharebatch.transport.retrying import RetryingTransport

__all__ = [
    "Batch",
    "BatchStatus",
    "BatchExecutor",
    "PendingRequest",
    "RequestStatus",
    "RetryingTransport",
]
