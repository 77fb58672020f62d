"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler.

=============================================================================
ROUTING FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Incoming Request                                                  │
    │   GET /echo/abc                                                     │
    │        │                                                            │
    │        ▼                                                            │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  ROUTER (frozen at server start)                            │   │
    │   │  ┌───────────────────────────────────────────────────────┐  │   │
    │   │  │ GET  /              → index                           │  │   │
    │   │  │ GET  /echo/*value   → echo        ← MATCH             │  │   │
    │   │  │ GET  /user-agent    → user_agent                      │  │   │
    │   │  │ GET  /files/*name   → files.get                       │  │   │
    │   │  │ POST /files/*name   → files.post                      │  │   │
    │   │  └───────────────────────────────────────────────────────┘  │   │
    │   │  Extracted: path_params = {"value": "abc"}                  │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    │        │                                                            │
    │        ▼                                                            │
    │   echo(request)                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ROUTE PATTERNS
=============================================================================

1. EXACT: the whole path must equal the pattern.

   Pattern: /user-agent
   Matches: /user-agent
   Doesn't match: /user-agent/, /user-agent/x

2. PREFIX (*name, last segment only): the path starts with the part
   before "*" and the NON-EMPTY remainder is captured.

   Pattern: /echo/*value
   Matches: /echo/abc     → {"value": "abc"}
            /echo/a/b     → {"value": "a/b"}
   Doesn't match: /echo/, /echo

First registered match wins. The table never changes once the server is
running, so workers read it without locks.

=============================================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Dict, List, Tuple

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed


logger = logging.getLogger(__name__)

# Every route handler has this shape. It may raise HandlerError.
Handler = Callable[[HTTPRequest], HTTPResponse]


class RouteKind(Enum):
    EXACT = "exact"
    PREFIX = "prefix"


@dataclass(frozen=True)
class Route:
    """
    A registered route.

        Route(path="/echo/*value", method="GET", handler=echo,
              kind=RouteKind.PREFIX, prefix="/echo/", param="value")
    """

    path: str
    method: str
    handler: Handler
    kind: RouteKind = RouteKind.EXACT
    prefix: str = ""
    param: Optional[str] = None

    @classmethod
    def compile(cls, path: str, method: str, handler: Handler) -> "Route":
        """Build a Route from a pattern string."""
        if not path.startswith("/"):
            raise ValueError(f"Route pattern must start with '/': {path!r}")

        star = path.find("*")
        if star == -1:
            return cls(path=path, method=method, handler=handler)

        prefix, param = path[:star], path[star + 1:]
        if not param or "/" in param or "*" in param:
            raise ValueError(f"Wildcard must be the last segment and named: {path!r}")

        return cls(
            path=path,
            method=method,
            handler=handler,
            kind=RouteKind.PREFIX,
            prefix=prefix,
            param=param,
        )

    def match(self, path: str) -> Optional[Dict[str, str]]:
        """Captured params if path matches this pattern, else None."""
        if self.kind is RouteKind.EXACT:
            return {} if path == self.path else None

        if path.startswith(self.prefix) and len(path) > len(self.prefix):
            return {self.param: path[len(self.prefix):]}
        return None


@dataclass(frozen=True)
class RouteMatch:
    """
    Result of a successful resolve().

        Pattern: /echo/*value
        Path:    /echo/abc
        Result:  RouteMatch(route=<Route>, params={"value": "abc"})
    """

    route: Route
    params: Dict[str, str]


class Router:
    """
    Method + path router.

    Example:
        router = Router()

        @router.get("/echo/*value")
        def echo(request):
            return ok(request.path_params["value"])

        router.freeze()
        response = router.handle(request)
    """

    def __init__(self):
        self._routes: List[Route] = []
        self._frozen = False

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(self, path: str, handler: Handler, method: str = "GET") -> Route:
        """
        Register a route.

        Raises:
            RuntimeError: The router is frozen.
            ValueError: Malformed pattern.
        """
        if self._frozen:
            raise RuntimeError("Cannot add routes after the server has started")

        route = Route.compile(path, method.upper(), handler)
        self._routes.append(route)
        return route

    def route(self, path: str, method: str = "GET") -> Callable[[Handler], Handler]:
        """
        Decorator form of add_route().

            @router.route("/files/*name", method="POST")
            def upload(request):
                ...
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "GET")

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "POST")

    def freeze(self) -> None:
        """Make the route table immutable. Called once at server start."""
        if not self._frozen:
            self._routes = tuple(self._routes)
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def routes(self) -> Tuple[Route, ...]:
        return tuple(self._routes)

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    def resolve(self, method: str, path: str) -> Optional[RouteMatch]:
        """First route matching both method and path, or None."""
        for route in self._routes:
            if route.method != method:
                continue
            params = route.match(path)
            if params is not None:
                return RouteMatch(route=route, params=params)
        return None

    def allowed_methods(self, path: str) -> List[str]:
        """Methods of every route whose pattern matches path, sorted."""
        return sorted({r.method for r in self._routes if r.match(path) is not None})

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Dispatch a request.

            matched             → handler(request), path_params injected
            path known, other
            method only         → 405 with Allow
            no pattern matches  → 404
        """
        match = self.resolve(request.method, request.path)

        if match is None:
            allowed = self.allowed_methods(request.path)
            if allowed:
                logger.debug(f"{request.method} {request.path}: allowed {allowed}")
                return method_not_allowed(allowed)
            return not_found()

        request.path_params = match.params
        return match.route.handler(request)
