"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the server can run into falls into one of a handful of kinds.
Each kind has exactly one place where it is handled:

    ┌──────────────────────────┬──────────────────────────────────────────┐
    │  Exception               │  Handled by                              │
    ├──────────────────────────┼──────────────────────────────────────────┤
    │  HTTPParseError          │  HTTPServer: send 400-class, then close  │
    │  ConnectionClosedError   │  HTTPServer: close silently              │
    │  RequestTimeoutError     │  HTTPServer: close silently              │
    │  HandlerError            │  HTTPServer: map to status, keep going   │
    │  HeaderInjectionError    │  HTTPServer: treated as handler failure  │
    │  BindError               │  CLI: exit(1)                            │
    │  ConfigurationError      │  CLI: exit(1)                            │
    └──────────────────────────┴──────────────────────────────────────────┘

The important property: malformed input from ONE client never escapes the
worker thread that owns that client's connection.

=============================================================================
"""


class TinyHTTPError(Exception):
    """Base class for all errors raised by tinyhttp."""


class HTTPParseError(TinyHTTPError):
    """
    Raised when a request line, header block or Content-Length is invalid.

    Carries the HTTP status code that should be sent back before the
    connection is closed:

        400 Bad Request        - Malformed request line or headers
        413 Payload Too Large  - Declared body exceeds max_body_size
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class ConnectionClosedError(TinyHTTPError):
    """The peer closed the connection before a full request arrived."""


class RequestTimeoutError(TinyHTTPError):
    """The peer went quiet for longer than the read timeout."""


class HandlerError(TinyHTTPError):
    """
    Raised by a route handler to produce an error response.

    The lifecycle manager catches this and turns it into a response with
    the given status. It is NOT a protocol failure: the connection stays
    usable for the next request.

    Example:
        raise HandlerError("File not found", status=404)
    """

    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.message = message
        self.status = status


class HeaderInjectionError(TinyHTTPError, ValueError):
    """A response header name or value contains CR or LF."""


class BindError(TinyHTTPError):
    """The listener could not acquire its address. Fatal."""

    def __init__(self, host: str, port: int, cause: OSError):
        super().__init__(f"Failed to bind to {host}:{port}: {cause}")
        self.host = host
        self.port = port
        self.cause = cause


class ConfigurationError(TinyHTTPError, ValueError):
    """Invalid ServerConfig value."""
