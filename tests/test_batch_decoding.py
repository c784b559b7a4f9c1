"""
Test suite for batch response decoding.
"""

import pytest

from sharebatch.codec.decoder import BatchDecoder, ParsedPart
from sharebatch.errors import BatchParseError

from tests.conftest import build_batch_response


@pytest.fixture
def decoder() -> BatchDecoder:
    return BatchDecoder()


class TestDecodeParts:
    """Tests for well-formed batch responses."""

    def test_parts_in_order(self, decoder):
        """Test that every part is decoded with status, reason and body."""
        body = build_batch_response([
            (200, "OK", '{"d": {"Title": "a"}}'),
            (201, "Created", '{"d": {"Id": 2}}'),
            (404, "Not Found", '{"error": "missing"}'),
        ])

        parts = decoder.decode(body)

        assert parts == [
            ParsedPart(200, "OK", '{"d": {"Title": "a"}}'),
            ParsedPart(201, "Created", '{"d": {"Id": 2}}'),
            ParsedPart(404, "Not Found", '{"error": "missing"}'),
        ]
        assert [p.ok for p in parts] == [True, True, False]

    def test_no_content_has_no_body(self, decoder):
        """Test that 204 parts are bodiless whatever follows."""
        body = build_batch_response([(204, "No Content", "ignored")])

        parts = decoder.decode(body)

        assert parts[0].body is None
        assert parts[0].text == ""

    def test_lf_line_endings(self, decoder):
        """Test that bare LF responses decode the same as CRLF ones."""
        body = build_batch_response([(200, "OK", "{}")])

        assert decoder.decode(body.replace("\r\n", "\n")) == decoder.decode(body)

    def test_idempotent(self, decoder):
        """Test that decoding the same body twice yields identical parts."""
        body = build_batch_response([(200, "OK", "{}"), (204, "No Content", "")])

        assert decoder.decode(body) == decoder.decode(body)

    def test_leading_blank_lines_ignored(self, decoder):
        body = "\r\n\r\n" + build_batch_response([(200, "OK", "{}")])

        assert len(decoder.decode(body)) == 1

    def test_expected_count_matches(self, decoder):
        body = build_batch_response([(200, "OK", "{}")] * 4)

        assert len(decoder.decode(body, expected_count=4)) == 4


class TestDecodeErrors:
    """Tests for malformed batch responses."""

    def test_garbage_status_line(self, decoder):
        """Test that an invalid status line cites its line index."""
        body = build_batch_response([(200, "OK", "{}")]).replace("HTTP/1.1 200 OK", "garbage")

        with pytest.raises(BatchParseError) as exc_info:
            decoder.decode(body)

        assert exc_info.value.line == 4
        assert "line 4" in str(exc_info.value)

    def test_text_outside_parts(self, decoder):
        """Test that stray text between parts is rejected."""
        body = "unexpected\r\n" + build_batch_response([(200, "OK", "{}")])

        with pytest.raises(BatchParseError) as exc_info:
            decoder.decode(body)

        assert exc_info.value.line == 0

    def test_truncated_body(self, decoder):
        """Test that a response cut off mid-part is rejected."""
        body = build_batch_response([(200, "OK", "{}")])
        truncated = body[:body.index("HTTP/1.1") + len("HTTP/1.1 200 OK")]

        with pytest.raises(BatchParseError, match="Unexpected end of input"):
            decoder.decode(truncated)

    def test_missing_closing_boundary(self, decoder):
        body = build_batch_response([(200, "OK", "{}")])
        unterminated = body[:body.rindex("--batchresponse_")]

        with pytest.raises(BatchParseError, match="Unexpected end of input"):
            decoder.decode(unterminated)

    def test_count_mismatch(self, decoder):
        """Test that fewer parts than requests is a batch-level error."""
        body = build_batch_response([(200, "OK", "{}")] * 2)

        with pytest.raises(BatchParseError) as exc_info:
            decoder.decode(body, expected_count=3)

        assert exc_info.value.line is None
