"""
Static HTTP server for the generated output tree.
Serves whatever is currently on disk; it never talks to the builder.
"""

from __future__ import annotations

import http.server
import logging
import socketserver
import threading
from pathlib import Path
from typing import Optional

from mdmirror.errors import FatalSetupError

logger = logging.getLogger(__name__)


class QuietHandler(http.server.SimpleHTTPRequestHandler):
    """Route access lines into the logger instead of stderr."""

    def log_message(self, format: str, *args: object) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


class _Server(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class SiteServer:
    """Serve ``site_dir`` on ``port``. Binding happens in the constructor."""

    def __init__(self, site_dir: Path, port: int, host: str = ""):
        self.site_dir = site_dir
        directory = str(site_dir)

        class Handler(QuietHandler):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, directory=directory, **kwargs)

        try:
            self.httpd = _Server((host, port), Handler)
        except OSError as exc:
            raise FatalSetupError(f"Failed to bind port {port}: {exc}") from exc
        self.thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.httpd.server_address[1]

    @property
    def url(self) -> str:
        return f"http://localhost:{self.port}"

    def serve_forever(self) -> None:
        logger.info("Listening on port %d", self.port)
        self.httpd.serve_forever()

    def start(self) -> None:
        """Serve from a daemon thread."""
        self.thread = threading.Thread(target=self.serve_forever, name="mdmirror-http", daemon=True)
        self.thread.start()

    def shutdown(self) -> None:
        # shutdown() waits for serve_forever, so only call it when a loop is running
        if self.thread is not None:
            self.httpd.shutdown()
            self.thread.join()
            self.thread = None
        self.httpd.server_close()
