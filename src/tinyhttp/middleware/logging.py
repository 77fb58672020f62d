"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One log line per request on the "tinyhttp.access" logger.

    text:  127.0.0.1 - - [16/Oct/2026:10:00:00 +0000] "GET /echo/abc" 200 3 0.21ms
    json:  {"request_id": "3f2a9c1b", "method": "GET", "path": "/echo/abc", ...}

Every response also gets an X-Request-ID header carrying the id from the
log line, so a client report can be matched to the server's log.

Sitting outermost, this middleware sees the response the router built,
BEFORE content negotiation: content_length is the unencoded body size.

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, asdict
from typing import Optional, Iterable

from .base import Middleware, NextHandler
from ..exceptions import HandlerError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("tinyhttp.access")


@dataclass
class RequestLog:
    """One access log entry."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        """Apache common-log flavoured line."""
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Usage:
        pipeline.add(LoggingMiddleware())                  # text
        pipeline.add(LoggingMiddleware(log_format="json"))
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        """
        Args:
            log_format: "text" or "json".
            include_request_id: Add X-Request-ID to responses.
            log_level: Level for successful requests; failures log higher.
            skip_paths: Paths not logged at all.
        """
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or ())

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        try:
            response = next(request)
        except HandlerError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                f"{request.method} {request.path} -> {e.status} {e.message} ({duration_ms:.2f}ms)"
            )
            raise
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if self.include_request_id:
            response.set_header("X-Request-ID", request_id)

        if request.path in self.skip_paths:
            return response

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=request.query,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        level = logging.WARNING if response.status >= 500 else self.log_level
        if self.log_format == "json":
            logger.log(level, json.dumps(entry.to_dict()))
        else:
            logger.log(level, entry.to_text())

        return response
