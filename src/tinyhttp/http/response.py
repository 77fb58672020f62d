"""
=============================================================================
HTTP RESPONSE SERIALIZER
=============================================================================

Turns an HTTPResponse into the exact bytes written to the socket.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 200 OK\r\n                       ← status line            │
    │  Content-Type: text/plain\r\n              ← headers, in the order  │
    │  Content-Encoding: gzip\r\n                  the handler set them   │
    │  Vary: Accept-Encoding\r\n                                          │
    │  Content-Length: 23\r\n                    ← always recomputed      │
    │  \r\n                                      ← end of headers         │
    │  <23 bytes of body>                                                 │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FRAMING
=============================================================================

On a kept-alive connection the client finds the end of our response only
through Content-Length. A wrong value desynchronises every later response
on that connection, so to_bytes() never trusts the caller's number: it
measures the body it is about to write.

Header names and values are checked for CR and LF. A value like
"x\r\nSet-Cookie: admin=1" would otherwise smuggle a second header onto
the wire.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, List, Union

from .status_codes import HTTPStatus, to_status
from ..exceptions import HeaderInjectionError


logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "text/plain"


def _find_header(headers: Dict[str, str], name: str) -> Optional[str]:
    """Return the key in headers matching name case-insensitively."""
    lowered = name.lower()
    for key in headers:
        if key.lower() == lowered:
            return key
    return None


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

    Attributes:
        status: Status code; its phrase goes on the status line.
        headers: Header name → value, serialized in insertion order.
        body: Raw body bytes.
        compressible: Handler allows a Content-Encoding to be applied.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    compressible: bool = False
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """"HTTP/1.1 404 Not Found" """
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def close_connection(self) -> bool:
        """True when the handler asked for Connection: close."""
        return (self.get_header("Connection") or "").lower() == "close"

    def get_header(self, name: str) -> Optional[str]:
        key = _find_header(self.headers, name)
        return self.headers[key] if key is not None else None

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """
        Set a header, replacing any existing one with the same name
        (in any case) at its original position.
        """
        key = _find_header(self.headers, name)
        self.headers[key if key is not None else name] = value
        return self

    def to_bytes(
        self,
        server_name: Optional[str] = None,
        date: Optional[str] = None,
    ) -> bytes:
        """
        Serialize to wire format.

        Args:
            server_name: Appended as a Server header when given.
            date: Appended as a Date header when given (an HTTP-date).

        Returns:
            Status line, headers, blank line and body as one bytes object.

        Raises:
            HeaderInjectionError: A header name or value contains CR or LF.
        """
        headers = dict(self.headers)
        actual_length = str(len(self.body))

        # ─────────────────────────────────────────────────────────────────
        # Content-Length: replace a stale value in place, else append
        # ─────────────────────────────────────────────────────────────────
        key = _find_header(headers, "Content-Length")
        if key is None:
            headers["Content-Length"] = actual_length
        elif headers[key] != actual_length:
            logger.debug(
                f"Replacing Content-Length {headers[key]!r} with {actual_length}"
            )
            headers[key] = actual_length

        if self.body and _find_header(headers, "Content-Type") is None:
            headers["Content-Type"] = DEFAULT_CONTENT_TYPE

        if server_name is not None and _find_header(headers, "Server") is None:
            headers["Server"] = server_name
        if date is not None and _find_header(headers, "Date") is None:
            headers["Date"] = date

        lines = [self.status_line]
        for name, value in headers.items():
            value = str(value)
            if any(c in name or c in value for c in "\r\n"):
                raise HeaderInjectionError(f"CR/LF in response header {name!r}")
            lines.append(f"{name}: {value}")

        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("latin-1") + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

    Example:
        response = (
            ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .header("Location", "/files/a.txt")
            .text("Created")
            .build()
        )
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""
        self._compressible = False

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._status = to_status(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = content_type
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the body; strings are encoded as UTF-8."""
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = DEFAULT_CONTENT_TYPE) -> "ResponseBuilder":
        """Plain-text body with its Content-Type."""
        self._headers["Content-Type"] = content_type
        return self.body(text)

    def compressible(self, value: bool = True) -> "ResponseBuilder":
        """Allow content negotiation to compress this response."""
        self._compressible = value
        return self

    def keep_alive(self, timeout: int = 5) -> "ResponseBuilder":
        self._headers["Connection"] = "keep-alive"
        self._headers["Keep-Alive"] = f"timeout={timeout}"
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Ask the server to close the connection after this response."""
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
            compressible=self._compressible,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: Optional[datetime] = None) -> str:
    """
    Format a datetime as an RFC 7231 HTTP-date.

        Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are always GMT. Names are spelled out by hand because
    strftime's %a and %b follow the process locale.
    """
    if dt is None:
        dt = datetime.now(timezone.utc)

    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
#     return ok("abc", compressible=True)
#     return not_found("File not found")
#
# =============================================================================

def ok(
    body: Union[str, bytes] = "",
    content_type: str = DEFAULT_CONTENT_TYPE,
    compressible: bool = False,
) -> HTTPResponse:
    """200 OK. An empty body gets no Content-Type."""
    builder = ResponseBuilder().status(HTTPStatus.OK).body(body).compressible(compressible)
    if body:
        builder.content_type(content_type)
    return builder.build()


def created(body: Union[str, bytes] = "Created", location: Optional[str] = None) -> HTTPResponse:
    """201 Created, with a Location header when given."""
    builder = ResponseBuilder().status(HTTPStatus.CREATED).body(body)
    if body:
        builder.content_type(DEFAULT_CONTENT_TYPE)
    if location:
        builder.header("Location", location)
    return builder.build()


def error_response(status: Union[HTTPStatus, int], message: Optional[str] = None) -> HTTPResponse:
    """
    Plain-text error response.

    The body defaults to the reason phrase: error_response(404) has body
    "Not Found".
    """
    status = to_status(status)
    return ResponseBuilder().status(status).text(message or status.phrase).build()


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return error_response(HTTPStatus.BAD_REQUEST, message)


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def method_not_allowed(allowed_methods: List[str]) -> HTTPResponse:
    """
    405 Method Not Allowed.

    RFC 7231 §6.5.5 requires an Allow header listing what would work.
    """
    response = error_response(HTTPStatus.METHOD_NOT_ALLOWED)
    response.set_header("Allow", ", ".join(allowed_methods))
    return response


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)
