"""
pytest configuration and fixtures.
"""

import socket
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Generator, List, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tinyhttp import HTTPServer, ServerConfig, create_app
from tinyhttp.core.connection import Connection


# =============================================================================
# SAMPLE REQUESTS
# =============================================================================

@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /echo/abc?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:4221\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept-Encoding: gzip\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    return (
        b"POST /files/test.txt HTTP/1.1\r\n"
        b"Host: localhost:4221\r\n"
        b"Content-Type: application/octet-stream\r\n"
        b"Content-Length: 5\r\n"
        b"Connection: close\r\n"
        b"\r\n"
        b"hello"
    )


# =============================================================================
# IN-MEMORY SOCKET
# =============================================================================

class FakeSocket:
    """
    Stands in for a connected client socket.

    recv() hands out the given chunks one by one (never more than the
    requested size), then b"" for EOF, or raises socket.timeout when
    timeout_at_end is set.
    """

    def __init__(self, chunks: List[bytes], timeout_at_end: bool = False):
        self._chunks = [c for c in chunks if c]
        self.timeout_at_end = timeout_at_end
        self.sent = bytearray()
        self.timeouts: List[Optional[float]] = []
        self.closed = False
        self.recv_calls = 0

    def recv(self, size: int) -> bytes:
        self.recv_calls += 1
        if not self._chunks:
            if self.timeout_at_end:
                raise socket.timeout("timed out")
            return b""
        chunk = self._chunks[0]
        data, rest = chunk[:size], chunk[size:]
        if rest:
            self._chunks[0] = rest
        else:
            self._chunks.pop(0)
        return data

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise BrokenPipeError("closed")
        self.sent += data

    def settimeout(self, value: Optional[float]) -> None:
        self.timeouts.append(value)

    def setblocking(self, flag: bool) -> None:
        pass

    def shutdown(self, how: int) -> None:
        pass

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_connection():
    """Factory: Connection over a FakeSocket fed with the given chunks."""
    def factory(*chunks: bytes, timeout_at_end: bool = False, **kwargs) -> Connection:
        sock = FakeSocket(list(chunks), timeout_at_end=timeout_at_end)
        return Connection(socket=sock, address=("127.0.0.1", 50000), **kwargs)
    return factory


# =============================================================================
# LIVE SERVER
# =============================================================================

@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.bound_address[1]

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def connect(self) -> "RawClient":
        return RawClient(self.port)


@dataclass
class RawResponse:
    status: int
    reason: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    head: bytes = b""


class RawClient:
    """
    A client that speaks bytes, so tests can assert on exactly what the
    server put on the wire.
    """

    def __init__(self, port: int, timeout: float = 5.0):
        self.sock = socket.create_connection(("127.0.0.1", port), timeout=timeout)
        self._buffer = b""

    def send(self, data: bytes) -> None:
        self.sock.sendall(data)

    def _fill(self) -> None:
        chunk = self.sock.recv(65536)
        if not chunk:
            raise ConnectionError("server closed the connection")
        self._buffer += chunk

    def read_response(self) -> RawResponse:
        """Read one Content-Length framed response."""
        while b"\r\n\r\n" not in self._buffer:
            self._fill()

        head, self._buffer = self._buffer.split(b"\r\n\r\n", 1)
        status_line, *header_lines = head.decode("latin-1").split("\r\n")
        _, code, reason = status_line.split(" ", 2)

        headers = {}
        for line in header_lines:
            name, _, value = line.partition(":")
            headers[name.strip().lower()] = value.strip()

        length = int(headers.get("content-length", "0"))
        while len(self._buffer) < length:
            self._fill()
        body, self._buffer = self._buffer[:length], self._buffer[length:]

        return RawResponse(int(code), reason, headers, body, head)

    def request(self, data: bytes) -> RawResponse:
        self.send(data)
        return self.read_response()

    def is_closed(self, wait: float = 2.0) -> bool:
        """True if the server closed its side within `wait` seconds."""
        self.sock.settimeout(wait)
        try:
            return self.sock.recv(1) == b""
        except socket.timeout:
            return False
        except ConnectionResetError:
            return True

    def close(self) -> None:
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


@pytest.fixture
def files_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "files"
    directory.mkdir()
    return directory


@pytest.fixture
def server_config(files_dir: Path) -> ServerConfig:
    """Test configuration: OS-assigned port, short timeouts."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        timeout=5.0,
        keep_alive_timeout=2.0,
        directory=str(files_dir),
        log_level="WARNING",
    )


@pytest.fixture
def run_server() -> Generator[Callable[[HTTPServer], TestServer], None, None]:
    """Factory: start any HTTPServer in the background, stopped at teardown."""
    started: List[TestServer] = []

    def factory(server: HTTPServer) -> TestServer:
        test_srv = TestServer(server)
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(server_config: ServerConfig, run_server) -> TestServer:
    """The standard application running on a background thread."""
    return run_server(create_app(server_config))
