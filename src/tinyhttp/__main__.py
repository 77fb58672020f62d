"""
=============================================================================
TINYHTTP CLI ENTRY POINT
=============================================================================

    # Defaults (127.0.0.1:4221, no file serving)
    python -m tinyhttp

    # Serve and accept files under /tmp/data
    python -m tinyhttp --directory /tmp/data

    # All interfaces, verbose
    tinyhttp --host 0.0.0.0 --port 8080 --log-level DEBUG

Defaults come from the environment (TINYHTTP_PORT, TINYHTTP_DIRECTORY, ...)
and flags override them. Invalid configuration or a port that can't be
bound ends the process with exit status 1.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .app import create_app
from .config import LOG_FORMATS, LOG_LEVELS, ServerConfig
from .exceptions import BindError, ConfigurationError


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tinyhttp",
        description="A small HTTP/1.1 server built directly on sockets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tinyhttp                          # 127.0.0.1:4221
  tinyhttp --directory /tmp/data    # enable /files/<name>
  tinyhttp --host 0.0.0.0 -p 8080   # all interfaces, port 8080
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})"
    )
    parser.add_argument(
        "--keep-alive-timeout",
        type=float,
        default=defaults.keep_alive_timeout,
        help=f"Idle seconds before a kept-alive connection is closed (default: {defaults.keep_alive_timeout})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # FILES
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--directory", "-d",
        default=defaults.directory,
        help="Directory for GET/POST /files/<name> (default: disabled)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=defaults.log_level,
        help=f"Logging level (default: {defaults.log_level})"
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=defaults.log_format,
        help=f"Access log format (default: {defaults.log_format})"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"tinyhttp {__version__}"
    )
    return parser


def main(argv=None) -> int:
    """
    Parse arguments, build the server and run it.

    Returns:
        Process exit status.
    """
    try:
        defaults = ServerConfig.from_env()
    except ConfigurationError as e:
        print(f"tinyhttp: {e}", file=sys.stderr)
        return 1

    args = build_parser(defaults).parse_args(argv)

    config = ServerConfig(
        host=args.host,
        port=args.port,
        keep_alive_timeout=args.keep_alive_timeout,
        directory=args.directory,
        log_level=args.log_level,
        log_format=args.log_format,
        timeout=defaults.timeout,
    )

    try:
        server = create_app(config)
        server.run()
    except (ConfigurationError, BindError) as e:
        print(f"tinyhttp: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
