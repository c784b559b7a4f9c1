"""
Test suite for batch body encoding.

Tests part grouping into changesets, URL resolution, header composition and
encoding errors.
"""

import itertools

import pytest

from sharebatch.codec.encoder import BatchEncoder, ensure_homogeneous
from sharebatch.config import TransportConfig
from sharebatch.core.request import PendingRequest
from sharebatch.errors import BatchEncodingError

from tests.conftest import SITE_URL, StubTransport


# ============================================================================
# Helper Functions
# ============================================================================

def sequential_ids():
    """Changeset id factory yielding cs1, cs2, ..."""
    counter = itertools.count(1)
    return lambda: f"cs{next(counter)}"


def make_encoder(config=None) -> BatchEncoder:
    return BatchEncoder(config or TransportConfig(), changeset_id_factory=sequential_ids())


def boundary_lines(body: str):
    """Lines of the body that are multipart boundaries."""
    return [line for line in body.split("\n") if line.startswith("--")]


def request_lines(body: str):
    """HTTP request lines embedded in the body."""
    return [line for line in body.split("\n") if line.endswith(" HTTP/1.1")]


# ============================================================================
# Test Part Grouping
# ============================================================================

class TestPartGrouping:
    """Tests for reads as top-level parts and writes in changesets."""

    def test_reads_and_writes(self):
        """Test GET /a, POST /b, POST /c, GET /d grouping."""
        requests = [
            PendingRequest("GET", f"{SITE_URL}/a"),
            PendingRequest("POST", f"{SITE_URL}/b", body='{"x": 1}'),
            PendingRequest("POST", f"{SITE_URL}/c"),
            PendingRequest("GET", f"{SITE_URL}/d"),
        ]

        body = make_encoder().encode("B1", requests)

        assert boundary_lines(body) == [
            "--batch_B1",
            "--batch_B1",
            "--changeset_cs1",
            "--changeset_cs1",
            "--changeset_cs1--",
            "--batch_B1",
            "--batch_B1--",
        ]
        assert request_lines(body) == [
            f"GET {SITE_URL}/a HTTP/1.1",
            f"POST {SITE_URL}/b HTTP/1.1",
            f"POST {SITE_URL}/c HTTP/1.1",
            f"GET {SITE_URL}/d HTTP/1.1",
        ]
        assert 'Content-Type: multipart/mixed; boundary="changeset_cs1"' in body
        assert body.endswith("--batch_B1--\n")

    def test_separate_write_runs_get_separate_changesets(self):
        """Test that a read between writes closes the changeset."""
        requests = [
            PendingRequest("POST", f"{SITE_URL}/a"),
            PendingRequest("GET", f"{SITE_URL}/b"),
            PendingRequest("DELETE", f"{SITE_URL}/c"),
        ]

        body = make_encoder().encode("B1", requests)

        assert boundary_lines(body) == [
            "--batch_B1",
            "--changeset_cs1",
            "--changeset_cs1--",
            "--batch_B1",
            "--batch_B1",
            "--changeset_cs2",
            "--changeset_cs2--",
            "--batch_B1--",
        ]

    def test_part_prefix(self):
        """Test the exact layout of a single read part."""
        config = TransportConfig(client_tag_prefix="T")
        body = make_encoder(config).encode("B1", [PendingRequest("GET", f"{SITE_URL}/a")])

        assert body == (
            "--batch_B1\n"
            "Content-Type: application/http\n"
            "Content-Transfer-Encoding: binary\n"
            "\n"
            f"GET {SITE_URL}/a HTTP/1.1\n"
            "Accept: application/json\n"
            "Content-Type: application/json;odata=verbose;charset=utf-8\n"
            "X-ClientService-ClientTag: T:0.1.0:batch\n"
            "\n"
            "--batch_B1--\n"
        )

    def test_body_written_after_headers(self):
        """Test that a body follows the blank line and is terminated by a blank line."""
        body = make_encoder().encode("B1", [
            PendingRequest("POST", f"{SITE_URL}/a", body='{"Title": "x"}'),
        ])

        assert '\n\n{"Title": "x"}\n\n--changeset_cs1--' in body

    def test_empty_sequence(self):
        """Test that no requests encode to nothing."""
        assert make_encoder().encode("B1", []) == ""


# ============================================================================
# Test Headers And Methods
# ============================================================================

class TestPartHeaders:
    """Tests for per-part header composition."""

    def test_precedence(self):
        """Test built-in < global < per-request headers."""
        config = TransportConfig(headers={"Accept": "application/xml", "X-Global": "g"})
        body = make_encoder(config).encode("B1", [
            PendingRequest("GET", f"{SITE_URL}/a", headers={"X-Global": "local"}),
        ])

        assert "Accept: application/xml\n" in body
        assert "X-Global: local\n" in body
        assert "X-Global: g\n" not in body

    def test_method_override(self):
        """Test that X-HTTP-Method replaces the verb and is stripped."""
        headers = {"X-HTTP-Method": "MERGE", "IF-MATCH": "*"}
        request = PendingRequest("POST", f"{SITE_URL}/items(1)", headers=headers)

        body = make_encoder().encode("B1", [request])

        assert request_lines(body) == [f"MERGE {SITE_URL}/items(1) HTTP/1.1"]
        assert "X-HTTP-Method" not in body
        assert "IF-MATCH: *" in body
        assert request.headers == {"X-HTTP-Method": "MERGE", "IF-MATCH": "*"}

    def test_method_override_ignored_for_reads(self):
        """Test that a read keeps its verb."""
        body = make_encoder().encode("B1", [
            PendingRequest("GET", f"{SITE_URL}/a", headers={"X-HTTP-Method": "DELETE"}),
        ])

        assert request_lines(body) == [f"GET {SITE_URL}/a HTTP/1.1"]

    def test_write_content_type(self):
        """Test that writes default to the verbose JSON content type."""
        body = make_encoder().encode("B1", [PendingRequest("PATCH", f"{SITE_URL}/a")])

        assert "Content-Type: application/json;odata=verbose;charset=utf-8\n" in body


# ============================================================================
# Test URL Resolution And Errors
# ============================================================================

class TestEncodingErrors:
    """Tests for URL resolution and fatal encoding errors."""

    def test_relative_url_resolved(self):
        """Test that relative URLs are combined with the base URL."""
        body = make_encoder().encode("B1", [
            PendingRequest("GET", "_api/web/lists"),
        ], base_url=SITE_URL)

        assert request_lines(body) == [f"GET {SITE_URL}/_api/web/lists HTTP/1.1"]

    def test_unresolvable_url(self):
        """Test that a relative URL without base URL is rejected."""
        with pytest.raises(BatchEncodingError) as exc_info:
            make_encoder().encode("B1", [
                PendingRequest("GET", f"{SITE_URL}/ok"),
                PendingRequest("POST", "_api/web/lists"),
            ])

        error = exc_info.value
        assert error.index == 1
        assert error.method == "POST"
        assert error.url == "_api/web/lists"
        assert "POST _api/web/lists" in str(error)

    def test_mixed_transports(self):
        """Test that a request with another transport is rejected."""
        shared = StubTransport()
        requests = [PendingRequest("GET", f"{SITE_URL}/{i}", transport=shared) for i in range(6)]
        requests[5].transport = StubTransport()

        with pytest.raises(BatchEncodingError) as exc_info:
            make_encoder().encode("B1", requests, transport=shared)

        assert exc_info.value.index == 5
        assert "Request #6" in str(exc_info.value)

    def test_homogeneous_without_transport(self):
        """Test that requests without a transport match a batch without one."""
        ensure_homogeneous([PendingRequest("GET", f"{SITE_URL}/a")], None)

    def test_request_transport_differs_from_batch(self):
        """Test that a transport on the request but not the batch is rejected."""
        with pytest.raises(BatchEncodingError):
            ensure_homogeneous([PendingRequest("GET", f"{SITE_URL}/a", transport=StubTransport())], None)
