"""
=============================================================================
CORE NETWORKING
=============================================================================

    socket_server.py   SocketServer: bind, listen, accept loop, signals
    connection.py      Connection: buffered reads, send, graceful close

Nothing in here knows about HTTP; it moves bytes.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
]
