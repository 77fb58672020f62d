"""
=============================================================================
TCP LISTENER
=============================================================================

Owns the listening socket: bind once, accept forever, hand every accepted
client to a callback. Knows nothing about HTTP.

=============================================================================
SOCKET LIFECYCLE (server side)
=============================================================================

    1. socket()    Create the listening socket
    2. bind()      Reserve host:port       ── fails → BindError, never retried
    3. listen()    Kernel starts queueing connections (backlog)
    4. accept()    One new socket per client; the listener keeps listening
    5. close()     On shutdown

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Bound to 127.0.0.1:4221
                    └───────────┬───────────┘     Never reads or writes data
                                │
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Client 1  │         │ Client 2  │         │ Client 3  │
    │ (thread)  │         │ (thread)  │         │ (thread)  │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
SOCKET OPTIONS
=============================================================================

    SO_REUSEADDR   Rebind right after a restart instead of waiting out
                   TIME_WAIT ("Address already in use").
    TCP_NODELAY    Disable Nagle's algorithm. A response header and body
                   written back to back go out immediately.

=============================================================================
SHUTDOWN
=============================================================================

accept() runs with a 1 second timeout so the loop can notice shutdown():

    while running:
        try:
            accept()          # at most 1s
        except timeout:
            continue          # check the flag again

SIGINT (Ctrl+C) and SIGTERM call shutdown() when the listener runs in the
main thread. Python only lets the main thread install signal handlers, so
a listener started from a test thread relies on shutdown() alone.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from ..exceptions import BindError
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Accept loop around one listening socket.

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(handle_connection)   # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Optional[Tuple[str, int]] = None
        self._original_handlers: dict = {}

        self.ready = threading.Event()
        """Set once the socket is listening."""

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        """The real (host, port) after bind; resolves port 0."""
        return self._bound_address

    # =========================================================================
    # SETUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        """Install SIGINT/SIGTERM handlers (main thread only)."""
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread; skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept until shutdown().

        Args:
            connection_handler: Called with each accepted Connection. Must
                                return quickly; HTTPServer starts a thread.

        Raises:
            BindError: host:port could not be bound.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise BindError(self.config.host, self.config.port, e) from e

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._running = True
        self._setup_signals()

        host, port = self._bound_address
        logger.info(f"Server listening on {host}:{port}")
        self.ready.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                # The listener was closed under us: usually shutdown
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
            )
            connection_handler(conn)

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self):
        """Stop the accept loop. Idempotent; callable from any thread."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self.ready.clear()
        logger.info("Socket server stopped")
