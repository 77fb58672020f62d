"""
Simple route handlers: /, /echo/<value> and /user-agent.
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok, bad_request


WELCOME_MESSAGE = "Welcome to tinyhttp!"


def index(request: HTTPRequest) -> HTTPResponse:
    """GET / → welcome message."""
    return ok(WELCOME_MESSAGE)


def echo(request: HTTPRequest) -> HTTPResponse:
    """
    GET /echo/<value> → <value> as text/plain.

    The value is echoed byte for byte as it appeared in the path, without
    percent-decoding: /echo/a%20b answers "a%20b".
    """
    return ok(request.path_params["value"], compressible=True)


def user_agent(request: HTTPRequest) -> HTTPResponse:
    """GET /user-agent → the client's User-Agent header, byte for byte."""
    agent = request.user_agent
    if agent is None:
        return bad_request("Missing User-Agent header")
    # header values were decoded as latin-1
    return ok(agent.encode("latin-1"), compressible=True)
