"""
Unit tests for content negotiation.
"""

import gzip
import zlib

import pytest

from tinyhttp.http.negotiation import (
    SUPPORTED_ENCODINGS,
    ContentNegotiator,
    parse_accept_encoding,
    select_encoding,
)
from tinyhttp.http.response import HTTPResponse, ok


class TestParseAcceptEncoding:
    """Tests for parse_accept_encoding."""

    def test_simple_list(self):
        assert parse_accept_encoding("gzip, deflate, br") == ["gzip", "deflate", "br"]

    def test_case_and_whitespace(self):
        assert parse_accept_encoding("  GZip ,Deflate") == ["gzip", "deflate"]

    def test_parameters_stripped(self):
        assert parse_accept_encoding("gzip;q=0.8, br;q=1.0") == ["gzip", "br"]

    def test_q_zero_dropped(self):
        assert parse_accept_encoding("gzip;q=0, deflate") == ["deflate"]
        assert parse_accept_encoding("gzip; q=0.000") == []

    def test_empty_and_missing(self):
        assert parse_accept_encoding("") == []
        assert parse_accept_encoding(None) == []
        assert parse_accept_encoding(" , ,") == []


class TestSelectEncoding:
    """Tests for select_encoding."""

    def test_server_preference_order(self):
        """Our order wins over the client's listing order."""
        assert SUPPORTED_ENCODINGS[0] == "gzip"
        assert select_encoding("deflate, gzip") == "gzip"

    def test_only_deflate(self):
        assert select_encoding("deflate") == "deflate"

    def test_unsupported_only(self):
        assert select_encoding("br, zstd") is None

    def test_none(self):
        assert select_encoding(None) is None

    def test_refused(self):
        assert select_encoding("gzip;q=0") is None
        assert select_encoding("gzip;q=0, deflate") == "deflate"

    def test_wildcard(self):
        assert select_encoding("*") == "gzip"
        assert select_encoding("*, gzip;q=0") == "deflate"


class TestContentNegotiator:
    """Tests for ContentNegotiator.negotiate."""

    @pytest.fixture
    def negotiator(self) -> ContentNegotiator:
        return ContentNegotiator()

    def test_gzip(self, negotiator):
        response = ok("abc", compressible=True)
        result = negotiator.negotiate(response, "gzip")

        assert gzip.decompress(result.body) == b"abc"
        assert result.get_header("Content-Encoding") == "gzip"
        assert result.get_header("Vary") == "Accept-Encoding"
        assert result.get_header("Content-Length") == str(len(result.body))

    def test_deflate(self, negotiator):
        result = negotiator.negotiate(ok("abc" * 50, compressible=True), "deflate")
        assert zlib.decompress(result.body) == b"abc" * 50
        assert result.get_header("Content-Encoding") == "deflate"

    def test_input_not_mutated(self, negotiator):
        response = ok("abc", compressible=True)
        headers_before = dict(response.headers)

        result = negotiator.negotiate(response, "gzip")

        assert result is not response
        assert response.body == b"abc"
        assert response.headers == headers_before

    def test_deterministic(self, negotiator):
        """Same body, same header, byte-identical output."""
        first = negotiator.negotiate(ok("hello world", compressible=True), "gzip")
        second = negotiator.negotiate(ok("hello world", compressible=True), "gzip")

        assert first.body == second.body
        assert first.to_bytes() == second.to_bytes()

    def test_not_compressible(self, negotiator):
        response = ok("abc")
        assert negotiator.negotiate(response, "gzip") is response

    def test_empty_body(self, negotiator):
        response = HTTPResponse(compressible=True)
        assert negotiator.negotiate(response, "gzip") is response

    def test_already_encoded(self, negotiator):
        response = ok("abc", compressible=True)
        response.set_header("Content-Encoding", "br")
        assert negotiator.negotiate(response, "gzip") is response

    def test_no_acceptable_encoding(self, negotiator):
        response = ok("abc", compressible=True)
        assert negotiator.negotiate(response, "br") is response
        assert negotiator.negotiate(response, None) is response

    def test_existing_vary_extended(self, negotiator):
        response = ok("abc", compressible=True)
        response.set_header("Vary", "Origin")

        result = negotiator.negotiate(response, "gzip")
        assert result.get_header("Vary") == "Origin, Accept-Encoding"

    def test_serialized_length_matches_compressed_body(self, negotiator):
        result = negotiator.negotiate(ok("abc", compressible=True), "gzip")
        data = result.to_bytes()
        head, body = data.split(b"\r\n\r\n", 1)

        assert body == result.body
        assert f"Content-Length: {len(body)}".encode() in head
