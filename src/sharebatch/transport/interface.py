"""
Abstract interface for the underlying HTTP transport.

Defines the contract that every raw transport must implement. The retrying
layer selects among supplied transport instances by identity and never
constructs one itself unless asked to.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional, Union

import httpx


HeadersLike = Union[httpx.Headers, Mapping[str, str]]


@dataclass
class FetchOptions:
    """Options for a single HTTP call."""
    method: str = "GET"
    headers: Optional[HeadersLike] = None
    body: Optional[Union[str, bytes]] = None
    cache_mode: Optional[str] = None          # e.g. "no-cache"
    credentials_mode: Optional[str] = None    # e.g. "same-origin"
    transport: Optional["Transport"] = None   # explicit transport selection

    def with_changes(self, **changes: Any) -> "FetchOptions":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


@dataclass
class Response:
    """A fully read HTTP response."""
    status: int
    status_text: str = ""
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    text: str = ""

    @property
    def ok(self) -> bool:
        """True for 2xx statuses."""
        return 200 <= self.status < 300


class Transport(ABC):
    """
    Abstract interface for sending one HTTP request.

    Implementations return a Response for every status the server answers
    with, and raise TransportError when no response could be obtained.
    """

    @abstractmethod
    async def send(self, url: str, options: FetchOptions) -> Response:
        """
        Send a request.

        Args:
            url: Absolute request URL
            options: Method, headers, body and modes for the call

        Returns:
            The response, whatever its status

        Raises:
            TransportError: If the request could not be completed
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass
