"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the small API the request parser
needs: "give me the next line" and "give me exactly N bytes".

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

TCP does not preserve message boundaries. The client may write a request
in one call and we may receive it in three pieces, or receive two requests
glued together:

    Client sends:   "GET / HTTP/1.1\r\nHost: x\r\n\r\n"

    Server may see: recv() → "GET / HT"
                    recv() → "TP/1.1\r\nHost: x\r\n\r\n"

So every read goes through an internal buffer:

    ┌──────────────────────────────────────────────────────────────────┐
    │  socket ──recv()──► _buffer ──read_line()──► b"GET / HTTP/1.1"    │
    │                             ──read_exact(5)─► b"hello"            │
    └──────────────────────────────────────────────────────────────────┘

read_line() and read_exact() only call recv() when the buffer does not
already hold what they need. Bytes left over after one request stay in the
buffer for the next one.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING ────────┐
     │             │                                    │           │
     │             │                                    │           ▼
     │             │                                    │      KEEP_ALIVE
     │             │                                    │           │
     │             ▼                                    │           │
     └──────────► CLOSING ◄─────────────────────────────┴───────────┘
                    │
                    ▼
                  CLOSED

The state is informational (logs, tests). The decisions that move a
connection between states are made by HTTPServer._process_connection.

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field

from ..exceptions import ConnectionClosedError, HTTPParseError, RequestTimeoutError


logger = logging.getLogger(__name__)

CRLF = b"\r\n"


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"                # Just accepted
    READING = "reading"        # Waiting for / reading a request
    PROCESSING = "processing"  # Request parsed, handler running
    WRITING = "writing"        # Sending the response
    KEEP_ALIVE = "keep_alive"  # Response sent, waiting for the next request
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection owned by exactly one worker thread.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short unique id used to prefix log lines.
        state: Current ConnectionState.
        requests_handled: Completed requests on this connection.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 4096
    timeout: float = 30.0             # first request
    keep_alive_timeout: float = 5.0   # idle time between requests

    _buffer: bytearray = field(default_factory=bytearray, repr=False)
    _request_started: bool = field(default=False, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def idle_time(self) -> float:
        """Seconds since the last successful read or write."""
        return time.time() - self.last_activity

    @property
    def at_request_start(self) -> bool:
        """
        True while no byte of the current request has arrived yet.

        Lets the lifecycle manager tell an idle keep-alive close (normal)
        apart from a peer that vanished halfway through a request.
        """
        return not self._request_started

    # =========================================================================
    # READING
    # =========================================================================

    def begin_request(self) -> None:
        """
        Prepare to read the next request.

        The first request gets the full read timeout. Subsequent requests
        on a kept-alive connection get the shorter idle timeout: if the
        client wanted another request it would already be sending it.
        """
        self.state = ConnectionState.READING
        self._request_started = len(self._buffer) > 0

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)
        else:
            self.socket.settimeout(self.timeout)

    def read_line(self, limit: int) -> bytes:
        """
        Return the bytes up to (not including) the next CRLF.

        Args:
            limit: Maximum line length. Longer lines are rejected.

        Raises:
            ConnectionClosedError: Peer closed before the CRLF arrived.
            RequestTimeoutError: Read timed out.
            HTTPParseError: Line exceeds limit.
        """
        while True:
            index = self._buffer.find(CRLF)
            if index != -1:
                if index > limit:
                    raise HTTPParseError(f"Line exceeds {limit} bytes")
                line = bytes(self._buffer[:index])
                del self._buffer[:index + len(CRLF)]
                return line

            if len(self._buffer) > limit:
                raise HTTPParseError(f"Line exceeds {limit} bytes")

            self._fill()

    def read_exact(self, n: int) -> bytes:
        """
        Return exactly n bytes.

        Raises:
            ConnectionClosedError: Peer closed before n bytes arrived.
            RequestTimeoutError: Read timed out.
        """
        while len(self._buffer) < n:
            self._fill()

        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        return data

    def finish_request(self) -> None:
        """Mark the current request as fully read."""
        self.requests_handled += 1
        self.state = ConnectionState.PROCESSING
        self.last_activity = time.time()

    def _fill(self) -> None:
        """Append one recv() worth of data to the buffer."""
        chunk = self._recv()
        if not chunk:
            if self._request_started:
                raise ConnectionClosedError(
                    f"Peer closed mid-request after {len(self._buffer)} buffered bytes"
                )
            raise ConnectionClosedError("Peer closed the connection")

        self._request_started = True
        self._buffer += chunk

    def _recv(self) -> bytes:
        """
        socket.recv() with error translation.

        Returns:
            Received bytes, or b"" if the peer reset the connection.

        Raises:
            RequestTimeoutError: Socket timeout expired.
        """
        try:
            data = self.socket.recv(self.buffer_size)
        except socket.timeout as e:
            raise RequestTimeoutError("Read timed out") from e
        except (ConnectionResetError, BrokenPipeError):
            return b""

        self.last_activity = time.time()
        return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send all of data.

        sendall() loops until every byte is handed to the kernel; plain
        send() may write only part of the buffer.

        Returns:
            True on success, False if the peer is gone.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

        self.last_activity = time.time()
        return True

    def set_keep_alive(self) -> None:
        """Response sent; wait for the next request."""
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close the connection. Safe to call more than once.

            1. shutdown(SHUT_WR)  send FIN, we're done writing
            2. drain              read what the client still sends, briefly
            3. close()            release the file descriptor

        Draining matters: closing a socket with unread data makes the
        kernel send RST, and the client may lose the response we just
        wrote.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
