"""
Core batch components.

This module contains the request and batch models, the per-request result
parsers and the executor that drives a batch through the transport.
"""

from sharebatch.core.request import PendingRequest, RequestStatus
from sharebatch.core.batch import Batch, BatchStatus
from sharebatch.core.parsers import JSONParser, ODataParser, ResultParser, TextParser
from sharebatch.core.executor import BatchExecutor

__all__ = [
    "PendingRequest",
    "RequestStatus",
    "Batch",
    "BatchStatus",
    "ResultParser",
    "ODataParser",
    "JSONParser",
    "TextParser",
    "BatchExecutor",
]
