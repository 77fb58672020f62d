"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Reads one HTTP/1.1 request off a connection and turns it into an
HTTPRequest. Implements the subset of RFC 7230 this server speaks.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │  ┌─ REQUEST LINE ────────────────────────────────────────────────┐  │
    │  │    POST /files/notes.txt?v=2 HTTP/1.1\r\n                     │  │
    │  │    ─┬── ──────────┬───────── ────┬───                         │  │
    │  │   Method        Target        Version                         │  │
    │  │                   │                                           │  │
    │  │         ┌─────────┴────────┐                                  │  │
    │  │       Path               Query                                │  │
    │  │   /files/notes.txt        v=2                                 │  │
    │  └───────────────────────────────────────────────────────────────┘  │
    │                                                                     │
    │  ┌─ HEADERS ─────────────────────────────────────────────────────┐  │
    │  │    Host: localhost:4221\r\n                                   │  │
    │  │    Content-Length: 5\r\n                                      │  │
    │  │    Accept-Encoding: gzip\r\n                                  │  │
    │  └───────────────────────────────────────────────────────────────┘  │
    │                                                                     │
    │  ┌─ EMPTY LINE ──────────────────────────────────────────────────┐  │
    │  │    \r\n                                                       │  │
    │  └───────────────────────────────────────────────────────────────┘  │
    │                                                                     │
    │  ┌─ BODY (exactly Content-Length bytes) ─────────────────────────┐  │
    │  │    hello                                                      │  │
    │  └───────────────────────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHAT WE ACCEPT
=============================================================================

    Methods        GET, POST (case-sensitive). Anything else → 400.
    Target         Non-empty, starts with "/". No percent-decoding.
    Version        HTTP/<digit>.<digit>
    Headers        "Name: value", name without whitespace. Last duplicate
                   wins. Whole header section bounded by max_header_size.
    Body           Content-Length only. Transfer-Encoding → 400.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, List, Tuple
from urllib.parse import parse_qs
import re

from ..exceptions import ConnectionClosedError, HTTPParseError


SUPPORTED_METHODS = ("GET", "POST")


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         "GET" or "POST"
        target:         Request target exactly as received ("/echo/a?b=c")
        path:           Target up to the first "?" ("/echo/a")
        query:          Raw text after the first "?" ("b=c"), "" if none
        version:        "HTTP/1.1", "HTTP/1.0", ...
        headers:        Lowercase header name → trimmed value
        body:           Exactly Content-Length bytes
        path_params:    Captures injected by the router ({"value": "a"})
        client_address: (ip, port) of the peer
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    target: str = ""
    query: str = ""

    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    path_params: Dict[str, str] = field(default_factory=dict)
    client_address: Tuple[str, int] = ("", 0)

    def __post_init__(self):
        if not self.target:
            self.target = f"{self.path}?{self.query}" if self.query else self.path

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_length(self) -> int:
        """Declared body length; 0 when the header is absent."""
        value = self.headers.get("content-length", "")
        return int(value) if value.isdigit() else 0

    @property
    def user_agent(self) -> Optional[str]:
        return self.headers.get("user-agent")

    @property
    def accept_encoding(self) -> Optional[str]:
        return self.headers.get("accept-encoding")

    @property
    def query_params(self) -> Dict[str, List[str]]:
        """
        The query string parsed into lists of values.

            "a=1&a=2&b=" → {"a": ["1", "2"], "b": [""]}
        """
        return parse_qs(self.query, keep_blank_values=True)

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client allows the connection to stay open.

        =====================================================================
        KEEP-ALIVE RULES
        =====================================================================

            HTTP/1.1 (persistent by default):
                Connection: close       → close after response
                (missing)               → keep alive

            HTTP/1.0 and older (close by default):
                Connection: keep-alive  → keep alive
                (missing)               → close after response

        =====================================================================
        """
        tokens = [t.strip() for t in self.headers.get("connection", "").lower().split(",")]

        if "close" in tokens:
            return False
        if self.version >= "HTTP/1.1":
            return True
        return "keep-alive" in tokens

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        Case-insensitive header lookup.

        Example:
            request.get_header("Content-Type")   # stored as "content-type"
        """
        return self.headers.get(name.lower(), default)


class _BytesSource:
    """
    Line/exact reader over an in-memory request.

    Mirrors the reading half of Connection so parse() goes through the
    same code as read_request().
    """

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def read_line(self, limit: int) -> bytes:
        index = self._data.find(b"\r\n", self._pos)
        if index == -1:
            if len(self._data) - self._pos > limit:
                raise HTTPParseError(f"Line exceeds {limit} bytes")
            raise ConnectionClosedError("Request ended before CRLF")
        if index - self._pos > limit:
            raise HTTPParseError(f"Line exceeds {limit} bytes")

        line = self._data[self._pos:index]
        self._pos = index + 2
        return line

    def read_exact(self, n: int) -> bytes:
        if len(self._data) - self._pos < n:
            raise ConnectionClosedError(
                f"Body truncated: expected {n} bytes, got {len(self._data) - self._pos}"
            )
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk


class RequestParser:
    """
    Reads HTTP requests from a connection.

    ==========================================================================
    PARSER STAGES
    ==========================================================================

        connection
              │
              ▼
        ┌───────────────────────────────────────────────────────────────┐
        │  1. Request line   METHOD SP TARGET SP VERSION                │
        │        bad shape / method / target / version → 400            │
        │  2. Header lines   until the empty line                       │
        │        no colon / bad name / section too large → 400          │
        │  3. Body           Content-Length bytes                       │
        │        non-digit length / Transfer-Encoding → 400             │
        │        length > max_body_size → 413                           │
        └───────────────────────────────────────────────────────────────┘
              │
              ▼
        HTTPRequest

    EOF anywhere surfaces as ConnectionClosedError and a socket timeout as
    RequestTimeoutError. Those are not parse errors: nobody gets a response.

    ==========================================================================
    """

    VERSION_PATTERN = re.compile(r"^HTTP/\d\.\d$")
    TOKEN_WHITESPACE = re.compile(r"\s")
    TARGET_CONTROL = re.compile(r"[\x00-\x20\x7f]")

    def __init__(
        self,
        max_header_size: int = 8192,
        max_body_size: int = 10 * 1024 * 1024,
    ):
        """
        Args:
            max_header_size: Byte budget for request line plus headers.
            max_body_size: Largest Content-Length accepted (413 above).
        """
        self.max_header_size = max_header_size
        self.max_body_size = max_body_size

    def read_request(self, conn, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Read exactly one request from conn.

        Args:
            conn: Anything with read_line(limit) and read_exact(n), normally
                  a core.connection.Connection.
            client_address: Peer address recorded on the request.

        Raises:
            HTTPParseError: Malformed request; status_code says which.
            ConnectionClosedError: Peer closed before the request was complete.
            RequestTimeoutError: Peer went quiet.
        """
        budget = self.max_header_size

        line = conn.read_line(budget)
        budget -= len(line) + 2
        method, target, version = self._parse_request_line(line)

        headers = self._read_headers(conn, budget)
        body = self._read_body(conn, headers)

        path, _, query = target.partition("?")
        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            target=target,
            query=query,
            headers=headers,
            body=body,
            client_address=client_address,
        )

    def parse(self, data: bytes, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Parse a complete request held in memory.

        Bytes beyond the declared body are ignored.
        """
        return self.read_request(_BytesSource(data), client_address)

    # =========================================================================
    # STAGES
    # =========================================================================

    def _parse_request_line(self, raw: bytes) -> Tuple[str, str, str]:
        """
        Split and validate the request line.

            "GET /echo/abc HTTP/1.1"
             ─┬─ ────┬──── ───┬────
            method target  version

        Exactly three tokens separated by single spaces; "GET  / HTTP/1.1"
        (two spaces) yields an empty token and is rejected.
        """
        try:
            line = raw.decode("ascii")
        except UnicodeDecodeError:
            raise HTTPParseError("Request line is not ASCII")

        parts = line.split(" ")
        if len(parts) != 3:
            raise HTTPParseError(f"Malformed request line: {line!r}")

        method, target, version = parts

        if method not in SUPPORTED_METHODS:
            raise HTTPParseError(f"Unsupported method: {method!r}")
        if not target.startswith("/"):
            raise HTTPParseError(f"Invalid request target: {target!r}")
        if self.TARGET_CONTROL.search(target):
            raise HTTPParseError(f"Control character in request target: {target!r}")
        if not self.VERSION_PATTERN.match(version):
            raise HTTPParseError(f"Invalid HTTP version: {version!r}")

        return method, target, version

    def _read_headers(self, conn, budget: int) -> Dict[str, str]:
        """
        Read "Name: value" lines until the empty line.

        Names are lowercased, values trimmed. When a header repeats, the
        last occurrence wins.
        """
        headers: Dict[str, str] = {}

        while True:
            if budget < 2:
                raise HTTPParseError("Header section too large")

            raw = conn.read_line(budget - 2)
            budget -= len(raw) + 2
            if not raw:
                return headers

            line = raw.decode("latin-1")
            name, sep, value = line.partition(":")
            if not sep:
                raise HTTPParseError(f"Header line without colon: {line!r}")
            if not name or self.TOKEN_WHITESPACE.search(name):
                raise HTTPParseError(f"Invalid header name: {name!r}")

            headers[name.lower()] = value.strip()

    def _read_body(self, conn, headers: Dict[str, str]) -> bytes:
        """
        Read the body declared by Content-Length.

        Chunked and other transfer codings are not supported; a request
        that uses one can't be framed, so it is rejected.
        """
        if "transfer-encoding" in headers:
            raise HTTPParseError("Transfer-Encoding is not supported")

        declared = headers.get("content-length")
        if declared is None:
            return b""

        # isdigit() alone accepts "²" and friends
        if not declared.isascii() or not declared.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {declared!r}")

        length = int(declared)
        if length > self.max_body_size:
            raise HTTPParseError(
                f"Body too large: {length} bytes",
                status_code=413,
            )

        return conn.read_exact(length) if length else b""


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_body_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """
    Parse an in-memory request in one call.

    Use RequestParser directly to parse many requests with the same limits.
    """
    parser = RequestParser(max_body_size=max_body_size)
    return parser.parse(data, client_address)
