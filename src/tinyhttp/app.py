"""
Application factory: an HTTPServer with the standard routes.

    GET  /               welcome message
    GET  /echo/*value    echo the rest of the path
    GET  /user-agent     echo the User-Agent header
    GET  /files/*name    read <directory>/<name>
    POST /files/*name    write <directory>/<name>
    GET  /files/         400, no file name
    POST /files/         400, no file name
"""

from typing import Optional

from .config import ServerConfig
from .handlers import FileHandler, echo, index, user_agent
from .middleware import LoggingMiddleware
from .server import HTTPServer


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """
    Build a server with access logging and the standard routes registered.

    Raises:
        ConfigurationError: config is invalid.
    """
    server = HTTPServer(config)
    server.use(LoggingMiddleware(log_format=server.config.log_format))

    files = FileHandler(server.config.directory)

    server.get("/")(index)
    server.get("/echo/*value")(echo)
    server.get("/user-agent")(user_agent)
    server.get("/files/*name")(files.get)
    server.post("/files/*name")(files.post)
    server.get("/files/")(files.missing_name)
    server.post("/files/")(files.missing_name)

    return server
