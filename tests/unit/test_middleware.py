"""
Unit tests for the middleware pipeline and access logging.
"""

import json
import logging

import pytest

from tinyhttp.exceptions import HandlerError
from tinyhttp.http.request import HTTPRequest
from tinyhttp.http.response import ok
from tinyhttp.middleware import LoggingMiddleware, Middleware, MiddlewarePipeline


class Recorder(Middleware):
    """Appends its name to a shared list before and after the call."""

    def __init__(self, label, calls):
        self.label = label
        self.calls = calls

    def __call__(self, request, next):
        self.calls.append(f"{self.label}:before")
        response = next(request)
        self.calls.append(f"{self.label}:after")
        return response


def make_request(path="/echo/abc") -> HTTPRequest:
    return HTTPRequest(
        method="GET",
        path=path,
        headers={"user-agent": "pytest"},
        client_address=("127.0.0.1", 50000),
    )


class TestMiddlewarePipeline:
    """Tests for MiddlewarePipeline ordering."""

    def test_first_added_is_outermost(self):
        calls = []
        pipeline = MiddlewarePipeline().add(Recorder("a", calls)).add(Recorder("b", calls))

        handler = pipeline.wrap(lambda request: ok("done"))
        assert handler(make_request()).body == b"done"

        assert calls == ["a:before", "b:before", "b:after", "a:after"]
        assert len(pipeline) == 2

    def test_empty_pipeline(self):
        handler = MiddlewarePipeline().wrap(lambda request: ok("direct"))
        assert handler(make_request()).body == b"direct"


class TestLoggingMiddleware:
    """Tests for LoggingMiddleware."""

    def test_text_log_line(self, caplog):
        middleware = LoggingMiddleware()

        with caplog.at_level(logging.INFO, logger="tinyhttp.access"):
            response = middleware(make_request(), lambda r: ok("abc"))

        assert response.status == 200
        assert len(response.headers["X-Request-ID"]) == 8
        assert '"GET /echo/abc" 200 3' in caplog.text

    def test_json_log_line(self, caplog):
        middleware = LoggingMiddleware(log_format="json")

        with caplog.at_level(logging.INFO, logger="tinyhttp.access"):
            middleware(make_request(), lambda r: ok("abc"))

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["method"] == "GET"
        assert entry["path"] == "/echo/abc"
        assert entry["status_code"] == 200
        assert entry["user_agent"] == "pytest"

    def test_no_request_id(self):
        middleware = LoggingMiddleware(include_request_id=False)
        response = middleware(make_request(), lambda r: ok())
        assert "X-Request-ID" not in response.headers

    def test_skip_paths(self, caplog):
        middleware = LoggingMiddleware(skip_paths=["/"])

        with caplog.at_level(logging.INFO, logger="tinyhttp.access"):
            middleware(make_request("/"), lambda r: ok())

        assert not caplog.records

    def test_handler_error_reraised(self, caplog):
        def failing(request):
            raise HandlerError("Invalid file name", status=400)

        with caplog.at_level(logging.INFO, logger="tinyhttp.access"):
            with pytest.raises(HandlerError):
                LoggingMiddleware()(make_request(), failing)

        assert caplog.records[-1].levelno == logging.WARNING

    def test_unexpected_error_reraised(self, caplog):
        def failing(request):
            raise RuntimeError("boom")

        with caplog.at_level(logging.INFO, logger="tinyhttp.access"):
            with pytest.raises(RuntimeError):
                LoggingMiddleware()(make_request(), failing)

        assert caplog.records[-1].levelno == logging.ERROR
