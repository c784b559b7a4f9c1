"""
Error types raised by the sharebatch transport and batch pipeline.
"""

from typing import Optional


class ShareBatchError(Exception):
    """Base class for all sharebatch errors."""
    pass


class TransportError(ShareBatchError):
    """
    Raised by an underlying transport when a request could not complete.

    A status of 503 or 504 marks the failure as transient.
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        status_text: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.status_text = status_text


class AuthTokenError(ShareBatchError):
    """Raised when the request digest could not be issued or parsed."""

    def __init__(self, message: str, url: str, status: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status = status


class RetryExhaustedError(ShareBatchError):
    """Raised when a throttled or unavailable request used up its retry budget."""

    def __init__(self, status: int, status_text: str, attempts: int):
        super().__init__(
            f"Retry count exceeded ({attempts}) for request. "
            f"Response status: [{status}] {status_text}"
        )
        self.status = status
        self.status_text = status_text
        self.attempts = attempts


class TransportTerminalError(ShareBatchError):
    """Raised for transport failures that are not retried."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        status_text: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.status_text = status_text


class BatchEncodingError(ShareBatchError):
    """Raised when a batch cannot be serialized. The batch is never sent."""

    def __init__(
        self,
        message: str,
        index: Optional[int] = None,
        method: Optional[str] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.index = index
        self.method = method
        self.url = url


class BatchParseError(ShareBatchError):
    """Raised when a batch response is malformed or does not match the batch."""

    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message)
        self.line = line


class RequestResultParseError(ShareBatchError):
    """Raised when a single request's result cannot be interpreted."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        request_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.status = status
        self.request_id = request_id
