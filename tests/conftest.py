"""
Pytest configuration and shared fixtures for the test suite.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple, Union

import httpx
import pytest

from sharebatch.config import TransportConfig
from sharebatch.errors import TransportError
from sharebatch.transport.interface import FetchOptions, Response, Transport
from sharebatch.transport.retrying import RetryingTransport


SITE_URL = "https://contoso.example.com/sites/dev"


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config() -> TransportConfig:
    """Create a test configuration."""
    return TransportConfig(
        base_url=SITE_URL,
        headers={"X-Global": "global"},
        max_attempts=7,
        initial_retry_delay_ms=100,
        log_level="DEBUG",
    )


# ============================================================================
# Test Data Generators
# ============================================================================

def make_response(
    status: int = 200,
    text: str = "",
    headers: Optional[dict] = None,
    status_text: str = "OK",
) -> Response:
    """Create a transport response."""
    return Response(
        status=status,
        status_text=status_text,
        headers=httpx.Headers(headers or {}),
        text=text,
    )


def context_info_response(digest: str = "0xDIGEST,01 Jan 2026", timeout: int = 1800) -> Response:
    """Create a verbose /_api/contextinfo response."""
    return make_response(200, json.dumps({
        "d": {
            "GetContextWebInformation": {
                "FormDigestValue": digest,
                "FormDigestTimeoutSeconds": timeout,
            }
        }
    }))


def build_batch_response(parts: List[Tuple[int, str, str]], boundary: str = "batchresponse_1234") -> str:
    """
    Build a batch response body from (status, reason, body) tuples.

    Uses CRLF line endings like the real service.
    """
    lines = []
    for status, reason, body in parts:
        lines.extend([
            f"--{boundary}",
            "Content-Type: application/http",
            "Content-Transfer-Encoding: binary",
            "",
            f"HTTP/1.1 {status} {reason}",
            "CONTENT-TYPE: application/json;odata=verbose;charset=utf-8",
            "",
            body,
        ])
    lines.append(f"--{boundary}--")
    lines.append("")
    return "\r\n".join(lines)


# ============================================================================
# Stub Transport
# ============================================================================

Reply = Union[Response, Exception, Callable[[str, FetchOptions], Response]]


class StubTransport(Transport):
    """Scripted transport that records every call."""

    def __init__(self, replies: Optional[List[Reply]] = None, default: Optional[Reply] = None):
        self.replies: List[Reply] = list(replies or [])
        self.default = default
        self.calls: List[Tuple[str, FetchOptions]] = []
        self.closed = False

    def queue(self, *replies: Reply) -> None:
        self.replies.extend(replies)

    async def send(self, url: str, options: FetchOptions) -> Response:
        self.calls.append((url, options))

        reply = self.replies.pop(0) if self.replies else self.default
        if reply is None:
            raise AssertionError(f"Unexpected call: {options.method} {url}")
        if callable(reply) and not isinstance(reply, Response):
            reply = reply(url, options)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def close(self) -> None:
        self.closed = True

    def urls(self) -> List[str]:
        return [url for url, _ in self.calls]


class FakeClock:
    """Controllable clock for digest expiry."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class SleepRecorder:
    """Replaces asyncio.sleep and records the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def stub_transport() -> StubTransport:
    """Create a stub transport with no scripted replies."""
    return StubTransport()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def client(test_config, stub_transport, sleep_recorder) -> RetryingTransport:
    """Create a retrying transport over the stub transport."""
    return RetryingTransport(
        config=test_config,
        transport=stub_transport,
        sleep=sleep_recorder,
    )


def service_unavailable() -> TransportError:
    return TransportError("Service Unavailable", status=503, status_text="Service Unavailable")
