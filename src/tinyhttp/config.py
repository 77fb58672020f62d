"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

All tunables live in one dataclass. The server treats it as read-only once
running: every worker thread reads the same ServerConfig, and nobody writes
to it, so there is nothing to lock.

=============================================================================
WHERE VALUES COME FROM
=============================================================================

    defaults (this file)
        │
        ▼
    environment (ServerConfig.from_env)     TINYHTTP_PORT=8080 ...
        │
        ▼
    command line (__main__.py)              --port 8080 --directory /tmp
        │
        ▼
    validate()                              fail fast, before bind()

=============================================================================
TIMEOUTS
=============================================================================

Two different clocks guard a connection:

    timeout              How long the FIRST request may take to arrive.
                         A client that connects and says nothing is
                         dropped after this.

    keep_alive_timeout   How long an idle kept-alive connection may sit
                         between requests. Shorter, because a client that
                         wanted another request would already have sent it.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for HTTPServer.

    Example:
        config = ServerConfig(port=8080, directory="/tmp/files")
        server = create_app(config)
        server.run()
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────
    host: str = "127.0.0.1"
    port: int = 4221              # 0 = let the OS pick a free port
    backlog: int = 128            # accept queue length passed to listen()
    buffer_size: int = 4096       # bytes per recv() call

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────
    timeout: float = 30.0
    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_header_size: int = 8192                # request line + headers
    max_body_size: int = 10 * 1024 * 1024      # 10 MB

    # ─────────────────────────────────────────────────────────────────────
    # FILES
    # ─────────────────────────────────────────────────────────────────────
    directory: Optional[str] = None
    """Base directory for /files/<name>. None disables file serving."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "text"
    server_name: str = "tinyhttp/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Build a configuration from environment variables.

            TINYHTTP_HOST                 (default 127.0.0.1)
            TINYHTTP_PORT                 (default 4221)
            TINYHTTP_DIRECTORY            (default unset)
            TINYHTTP_TIMEOUT              (default 30)
            TINYHTTP_KEEP_ALIVE_TIMEOUT   (default 5)
            TINYHTTP_LOG_LEVEL            (default INFO)

        Raises:
            ConfigurationError: If a numeric variable doesn't parse.
        """
        try:
            return cls(
                host=os.getenv("TINYHTTP_HOST", "127.0.0.1"),
                port=int(os.getenv("TINYHTTP_PORT", "4221")),
                directory=os.getenv("TINYHTTP_DIRECTORY") or None,
                timeout=float(os.getenv("TINYHTTP_TIMEOUT", "30")),
                keep_alive_timeout=float(os.getenv("TINYHTTP_KEEP_ALIVE_TIMEOUT", "5")),
                log_level=os.getenv("TINYHTTP_LOG_LEVEL", "INFO").upper(),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e

    def validate(self) -> None:
        """
        Check every value once, at startup.

        Raises:
            ConfigurationError: On the first invalid value.
        """
        if not 0 <= self.port < 65536:
            raise ConfigurationError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.backlog < 1:
            raise ConfigurationError("backlog must be >= 1")
        if self.buffer_size < 1024:
            raise ConfigurationError("buffer_size must be >= 1024")
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be > 0")
        if self.keep_alive_timeout <= 0:
            raise ConfigurationError("keep_alive_timeout must be > 0")
        if self.max_header_size < 256:
            raise ConfigurationError("max_header_size must be >= 256")
        if self.max_body_size < 0:
            raise ConfigurationError("max_body_size must be >= 0")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level: {self.log_level}")
        if self.log_format not in LOG_FORMATS:
            raise ConfigurationError(f"Unknown log format: {self.log_format}")
        if self.directory is not None and not os.path.isdir(self.directory):
            raise ConfigurationError(f"Directory does not exist: {self.directory}")
