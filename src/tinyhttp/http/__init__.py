"""
=============================================================================
HTTP PROTOCOL
=============================================================================

    request.py        bytes → HTTPRequest
    router.py         HTTPRequest → handler → HTTPResponse
    negotiation.py    HTTPResponse → content-coded HTTPResponse
    response.py       HTTPResponse → bytes
    status_codes.py   HTTPStatus enum

=============================================================================
"""

from .request import HTTPRequest, RequestParser, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ok,
    created,
    bad_request,
    not_found,
    method_not_allowed,
    internal_error,
    error_response,
    format_http_date,
)
from .router import Router, Route, RouteKind, RouteMatch
from .negotiation import ContentNegotiator, parse_accept_encoding, select_encoding
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "parse_request",
    # Responses
    "HTTPResponse",
    "ResponseBuilder",
    "ok",
    "created",
    "bad_request",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "error_response",
    "format_http_date",
    # Routing
    "Router",
    "Route",
    "RouteKind",
    "RouteMatch",
    # Content negotiation
    "ContentNegotiator",
    "parse_accept_encoding",
    "select_encoding",
    # Status codes
    "HTTPStatus",
]
