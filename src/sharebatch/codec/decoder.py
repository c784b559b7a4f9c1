"""
Batch response decoder.

Parses a multipart batch response into one ParsedPart per request, using a
line-oriented state machine.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from sharebatch.errors import BatchParseError

RESPONSE_BOUNDARY_PREFIX = "--batchresponse_"

# Ex. "HTTP/1.1 500 Internal Server Error"
STATUS_LINE = re.compile(r"^HTTP/[0-9.]+ +([0-9]+) +(.*)", re.IGNORECASE)


class DecoderState(str, Enum):
    """Position of the decoder inside the response body."""
    BATCH = "batch"                     # Between parts, waiting for a boundary
    BATCH_HEADERS = "batch_headers"     # MIME headers of the part
    STATUS = "status"                   # HTTP status line of the embedded response
    STATUS_HEADERS = "status_headers"   # Headers of the embedded response
    BODY = "body"                       # Single body line


@dataclass(frozen=True)
class ParsedPart:
    """One embedded response from a batch body."""
    status: int
    status_text: str
    body: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body or ""


class _Cursor:
    """Mutable state for one decode run."""

    def __init__(self):
        self.state = DecoderState.BATCH
        self.status = 0
        self.status_text = ""
        self.parts: List[ParsedPart] = []


class BatchDecoder:
    """
    Decodes batch response bodies.

    Holds no state between calls, so decoding the same body twice yields
    the same parts.
    """

    def __init__(self):
        self._handlers = {
            DecoderState.BATCH: self._on_batch,
            DecoderState.BATCH_HEADERS: self._on_batch_headers,
            DecoderState.STATUS: self._on_status,
            DecoderState.STATUS_HEADERS: self._on_status_headers,
            DecoderState.BODY: self._on_body,
        }

    def decode(self, body: str, expected_count: Optional[int] = None) -> List[ParsedPart]:
        """
        Parse a batch response body.

        Args:
            body: Text of the batch response
            expected_count: Number of requests in the batch, if known

        Returns:
            Parts in response order

        Raises:
            BatchParseError: On malformed input or a part count mismatch
        """
        cursor = _Cursor()

        for index, raw_line in enumerate(body.split("\n")):
            line = raw_line.rstrip("\r")
            cursor.state = self._handlers[cursor.state](cursor, index, line)

        # a complete response ends right after the closing boundary's blank line
        if cursor.state != DecoderState.STATUS:
            raise BatchParseError("Unexpected end of input")

        if expected_count is not None and len(cursor.parts) != expected_count:
            raise BatchParseError(
                f"Could not properly parse responses to match requests in batch "
                f"(expected {expected_count}, got {len(cursor.parts)})."
            )

        return cursor.parts

    @staticmethod
    def _on_batch(cursor: _Cursor, index: int, line: str) -> DecoderState:
        if line.startswith(RESPONSE_BOUNDARY_PREFIX):
            return DecoderState.BATCH_HEADERS
        if line.strip() != "":
            raise BatchParseError(f"Invalid response, line {index}", line=index)
        return DecoderState.BATCH

    @staticmethod
    def _on_batch_headers(cursor: _Cursor, index: int, line: str) -> DecoderState:
        if line.strip() == "":
            return DecoderState.STATUS
        return DecoderState.BATCH_HEADERS

    @staticmethod
    def _on_status(cursor: _Cursor, index: int, line: str) -> DecoderState:
        match = STATUS_LINE.match(line)
        if match is None:
            raise BatchParseError(f"Invalid status, line {index}", line=index)
        cursor.status = int(match.group(1))
        cursor.status_text = match.group(2).strip()
        return DecoderState.STATUS_HEADERS

    @staticmethod
    def _on_status_headers(cursor: _Cursor, index: int, line: str) -> DecoderState:
        if line.strip() == "":
            return DecoderState.BODY
        return DecoderState.STATUS_HEADERS

    @staticmethod
    def _on_body(cursor: _Cursor, index: int, line: str) -> DecoderState:
        body = None if cursor.status == 204 else line
        cursor.parts.append(ParsedPart(cursor.status, cursor.status_text, body))
        return DecoderState.BATCH
