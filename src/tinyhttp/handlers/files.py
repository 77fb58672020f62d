"""
=============================================================================
FILE HANDLER
=============================================================================

Reads and writes files under one base directory.

    GET  /files/<name>   → 200 application/octet-stream, file bytes
    POST /files/<name>   → 201 Created, body written to <directory>/<name>
    GET|POST /files/     → 400, no name given

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

<name> comes straight from the request path, so "/files/../../etc/passwd"
would otherwise read outside the base directory. Every name is resolved
(following ".." and symlinks) and must still lie inside the directory:

    base     = /srv/files
    name     = ../../etc/passwd
    resolved = /etc/passwd            → not under /srv/files → 400

=============================================================================
CONCURRENCY
=============================================================================

Two clients POSTing the same name at once race on the filesystem; the last
writer wins. There is no locking between connections.

=============================================================================
"""

import logging
from pathlib import Path
from typing import Optional

from ..exceptions import HandlerError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok, created, not_found, bad_request


logger = logging.getLogger(__name__)

OCTET_STREAM = "application/octet-stream"
MISSING_NAME_MESSAGE = "File asked but no filename provided"


class FileHandler:
    """
    Handler for /files/<name>.

    Usage:
        files = FileHandler("/tmp/data")
        router.get("/files/*name")(files.get)
        router.post("/files/*name")(files.post)
        router.get("/files/")(files.missing_name)

    With directory=None every request answers 404.
    """

    def __init__(self, directory: Optional[str] = None):
        """
        Args:
            directory: Base directory, or None to disable file serving.

        Raises:
            ValueError: directory is set but isn't a directory.
        """
        self.directory: Optional[Path] = None
        if directory is not None:
            self.directory = Path(directory).resolve()
            if not self.directory.is_dir():
                raise ValueError(f"Files directory does not exist: {directory}")

    def _resolve(self, name: str) -> Path:
        """
        Map a request name to a path inside the base directory.

        Raises:
            HandlerError: 400 if the name escapes the directory.
        """
        full_path = (self.directory / name).resolve()
        try:
            relative = full_path.relative_to(self.directory)
        except ValueError:
            logger.warning(f"Path traversal attempt: {name}")
            raise HandlerError("Invalid file name", status=400)

        if not relative.parts:
            raise HandlerError("Invalid file name", status=400)
        return full_path

    def missing_name(self, request: HTTPRequest) -> HTTPResponse:
        """/files/ with nothing after the slash."""
        return bad_request(MISSING_NAME_MESSAGE)

    def get(self, request: HTTPRequest) -> HTTPResponse:
        """Serve a file's bytes."""
        if self.directory is None:
            return not_found()

        name = request.path_params["name"]
        path = self._resolve(name)
        if not path.is_file():
            return not_found()

        try:
            content = path.read_bytes()
        except OSError as e:
            logger.error(f"Error reading file {path}: {e}")
            raise HandlerError("Failed to read file", status=500) from e

        return ok(content, content_type=OCTET_STREAM, compressible=True)

    def post(self, request: HTTPRequest) -> HTTPResponse:
        """Create or overwrite a file with the request body."""
        if self.directory is None:
            return not_found()

        name = request.path_params["name"]
        path = self._resolve(name)

        try:
            path.write_bytes(request.body)
        except OSError as e:
            logger.error(f"Error writing file {path}: {e}")
            raise HandlerError("Failed to write file", status=500) from e

        logger.info(f"Wrote {len(request.body)} bytes to {path}")
        return created("Created", location=f"/files/{name}")

