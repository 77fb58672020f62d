"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the listener, parser, router, negotiator and serializer together and
runs the per-connection state machine.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ┌─────────────────┐                          │
    │                        │   HTTPServer    │                          │
    │                        └────────┬────────┘                          │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐         │
    │    │ SocketServer │    │ one Thread   │    │    Router    │         │
    │    │  (accept)    │    │ per client   │    │  (frozen)    │         │
    │    └──────┬───────┘    └──────┬───────┘    └──────────────┘         │
    │           ▼                   ▼                                     │
    │    ┌──────────────┐    ┌──────────────────────────────────────┐     │
    │    │  Connection  │    │ Logging middleware → router.handle   │     │
    │    └──────────────┘    │ → ContentNegotiator → to_bytes()     │     │
    │                        └──────────────────────────────────────┘     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    ┌────────────────────┐   parse ok    ┌─────────────┐
    │  AWAITING REQUEST  │──────────────►│ DISPATCHING │
    └────────────────────┘               └──────┬──────┘
       │    ▲       │                           │ response (500 if the
       │    │       │ HTTPParseError            │ handler blew up)
       │    │       ▼                           ▼
       │    │   send 4xx,              ┌─────────────┐
       │    │   Connection: close ───► │  RESPONDED  │
       │    │                          └──────┬──────┘
       │    └─── keep alive ──────────────────┤
       │                                      │ close requested,
       │ EOF / timeout (no response)          │ HTTP/1.0, or send failed
       ▼                                      ▼
    ┌────────────────────────────────────────────┐
    │                  CLOSED                    │
    └────────────────────────────────────────────┘

Errors from one client stay in that client's thread: a malformed request
or a crashing handler never affects other connections.

=============================================================================
"""

import logging
import threading
from typing import Callable, Optional, Tuple

from .config import ServerConfig
from .core.connection import Connection
from .core.socket_server import SocketServer
from .exceptions import (
    ConnectionClosedError,
    HandlerError,
    HTTPParseError,
    RequestTimeoutError,
)
from .http.negotiation import ContentNegotiator
from .http.request import HTTPRequest, RequestParser
from .http.response import HTTPResponse, error_response, format_http_date, internal_error
from .http.router import Router
from .middleware.base import Middleware, MiddlewarePipeline


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    HTTP/1.1 server.

    Example:
        server = HTTPServer(ServerConfig(port=4221))

        @server.get("/echo/*value")
        def echo(request):
            return ok(request.path_params["value"])

        server.run()   # blocks until Ctrl+C
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration; defaults when omitted.

        Raises:
            ConfigurationError: The configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._parser = RequestParser(
            max_header_size=self.config.max_header_size,
            max_body_size=self.config.max_body_size,
        )
        self._negotiator = ContentNegotiator()

        self._router = Router()
        self._middleware = MiddlewarePipeline()

        # middleware.wrap(router.handle), built in run()
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None
        self._running = False

    # =========================================================================
    # CONFIGURATION METHODS
    # =========================================================================

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add middleware. First added runs outermost."""
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    def route(self, path: str, method: str = "GET"):
        return self._router.route(path, method)

    def get(self, path: str):
        return self._router.get(path)

    def post(self, path: str):
        return self._router.post(path)

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start serving (blocking).

        Args:
            host: Override config host.
            port: Override config port (0 picks a free port).

        Raises:
            BindError: The address could not be bound.
        """
        if host is not None:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._setup_logging()

        self._router.freeze()
        self._handler = self._middleware.wrap(self._router.handle)
        self._running = True

        logger.info(f"Starting {self.config.server_name} on {self.config.host}:{self.config.port}")
        for route in self._router.routes:
            logger.debug(f"  {route.method:<6} {route.path}")

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._running = False
            logger.info("Server stopped")

    def shutdown(self):
        """Stop accepting connections. Open connections finish their current request."""
        self._running = False
        self._socket_server.shutdown()

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        """(host, port) actually bound, None before the listener is up."""
        return self._socket_server.bound_address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is listening. False on timeout."""
        return self._socket_server.ready.wait(timeout)

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("tinyhttp").setLevel(level)

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Give each accepted connection its own worker thread."""
        worker = threading.Thread(
            target=self._process_connection,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        worker.start()

    def _process_connection(self, conn: Connection):
        """
        Run the state machine for one connection (worker thread).

        Loops: read request → dispatch → send → keep alive or close.
        """
        with conn:
            try:
                while self._running:
                    # ─────────────────────────────────────────────────────
                    # AWAITING REQUEST
                    # ─────────────────────────────────────────────────────
                    conn.begin_request()
                    try:
                        request = self._parser.read_request(conn, conn.address)
                    except HTTPParseError as e:
                        logger.info(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                        self._send_error(conn, e.status_code, str(e))
                        break
                    except ConnectionClosedError as e:
                        if conn.at_request_start:
                            logger.debug(f"[{conn.id}] Client closed connection")
                        else:
                            logger.warning(f"[{conn.id}] {e}")
                        break
                    except RequestTimeoutError:
                        if conn.at_request_start:
                            logger.debug(f"[{conn.id}] Idle timeout")
                        else:
                            logger.warning(f"[{conn.id}] Timed out mid-request")
                        break

                    conn.finish_request()

                    # ─────────────────────────────────────────────────────
                    # DISPATCHING
                    # ─────────────────────────────────────────────────────
                    response = self._dispatch(request, conn)

                    # ─────────────────────────────────────────────────────
                    # RESPONDED
                    # ─────────────────────────────────────────────────────
                    keep_alive = self._should_keep_alive(request, response)
                    data = self._serialize(response, keep_alive, conn)

                    if not conn.send(data):
                        break
                    if not keep_alive:
                        break

                    conn.set_keep_alive()
            except Exception as e:
                logger.exception(f"[{conn.id}] Connection error: {e}")

    def _dispatch(self, request: HTTPRequest, conn: Connection) -> HTTPResponse:
        """Middleware + router + content negotiation, errors mapped to responses."""
        try:
            response = self._handler(request)
            return self._negotiator.negotiate(response, request.accept_encoding)
        except HandlerError as e:
            return error_response(e.status, e.message)
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error: {e}")
            return internal_error()

    def _should_keep_alive(self, request: HTTPRequest, response: HTTPResponse) -> bool:
        return (
            self.config.keep_alive
            and self._running
            and request.is_keep_alive
            and not response.close_connection
        )

    def _serialize(self, response: HTTPResponse, keep_alive: bool, conn: Connection) -> bytes:
        """
        Add connection headers and serialize.

        A response that can't be serialized (CR/LF in a header) is replaced
        by a plain 500.
        """
        self._set_connection_headers(response, keep_alive)
        try:
            return response.to_bytes(self.config.server_name, format_http_date())
        except Exception as e:
            logger.exception(f"[{conn.id}] Failed to serialize response: {e}")
            fallback = internal_error()
            self._set_connection_headers(fallback, keep_alive)
            return fallback.to_bytes(self.config.server_name, format_http_date())

    def _set_connection_headers(self, response: HTTPResponse, keep_alive: bool):
        if keep_alive:
            response.set_header("Connection", "keep-alive")
            response.set_header("Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}")
        else:
            response.set_header("Connection", "close")

    def _send_error(self, conn: Connection, status: int, message: str):
        """Best-effort error response for a request that couldn't be parsed."""
        response = error_response(status, message)
        response.set_header("Connection", "close")
        conn.send(response.to_bytes(self.config.server_name, format_http_date()))
