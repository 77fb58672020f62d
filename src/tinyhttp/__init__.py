"""
=============================================================================
TINYHTTP
=============================================================================

A small HTTP/1.1 server built directly on sockets.

    from tinyhttp import ServerConfig, create_app

    server = create_app(ServerConfig(port=4221, directory="/tmp"))
    server.run()

Or from a shell:

    python -m tinyhttp --directory /tmp

=============================================================================
"""

from .app import create_app
from .config import ServerConfig
from .server import HTTPServer

__version__ = "1.0.0"

__all__ = [
    "HTTPServer",
    "ServerConfig",
    "create_app",
    "__version__",
]
