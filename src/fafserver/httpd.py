"""HTTPS file server.

Every request must carry the session's Basic credentials; authenticated
requests are served by ContentServer from the configured root.
"""

import logging
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, Optional
from urllib.parse import unquote, urlsplit

from fafserver import __version__
from fafserver.auth import challenge_header, validate_basic_auth
from fafserver.config import ServerConfig
from fafserver.content import ContentServer
from fafserver.paths import ServeError
from fafserver.tls import TLSConfig, create_server_context

logger = logging.getLogger(__name__)

SERVER_ID = f"fafserver/{__version__}"


class FileRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler serving static content behind Basic auth."""

    server_version = SERVER_ID

    def version_string(self) -> str:
        """Value of the Server header."""
        return self.server_version

    def log_message(self, format: str, *args):
        """Override to use Python logging."""
        logger.info("%s - %s", self.address_string(), format % args)

    def end_headers(self):
        self._response_started = True
        super().end_headers()

    def send_text(self, status: int, message: str, headers: Optional[Dict[str, str]] = None):
        """Send a plain-text response."""
        body = (message + "\n").encode("utf-8")
        self.send_response(status)
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("X-Content-Type-Options", "nosniff")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def url_path(self) -> str:
        """Percent-decoded path component of the request target."""
        return unquote(urlsplit(self.path).path, errors="surrogateescape")

    def do_GET(self):
        """Handle GET requests."""
        self._handle_request()

    def do_HEAD(self):
        """Handle HEAD requests (headers only)."""
        self._handle_request()

    def __getattr__(self, name: str):
        """Serve any other method (POST, PROPFIND, custom verbs) like a GET.

        handle_one_request looks up do_<METHOD> and answers 501 when it is
        missing, which would bypass the auth check.
        """
        if name.startswith("do_"):
            return self._handle_request
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def _handle_request(self):
        """Authenticate, then serve; failures never escape this boundary."""
        self._response_started = False
        config: ServerConfig = self.server.config

        try:
            auth_error = validate_basic_auth(self.headers.get("Authorization"), config.credential)
            if auth_error:
                self.send_text(
                    auth_error.http_status,
                    auth_error.message,
                    {"WWW-Authenticate": challenge_header(config.realm)},
                )
                return

            self.server.content_server.serve(self, self.url_path())

        except ServeError as e:
            if self._response_started:
                self.close_connection = True
                return
            self.send_text(e.http_status, e.message, e.headers)

        except Exception as e:
            logger.exception("Error serving %s %s", self.command, self.path)
            if self._response_started:
                # Too late for an error status; drop the connection instead
                self.close_connection = True
                return
            self.send_text(HTTPStatus.INTERNAL_SERVER_ERROR, str(e))


class FileHTTPServer(ThreadingHTTPServer):
    """Threaded HTTP server holding the immutable session config."""

    daemon_threads = True

    def __init__(self, server_address, RequestHandlerClass, config: ServerConfig):
        super().__init__(server_address, RequestHandlerClass)
        self.config = config
        self.content_server = ContentServer(str(config.root), config.index_name)


class Server:
    """HTTPS static file server."""

    def __init__(self, config: ServerConfig, tls_config: TLSConfig):
        """Initialize server.

        Args:
            config: Session configuration (root, address, credential, ...)
            tls_config: Certificate and key to serve with
        """
        self.config = config
        self.tls_config = tls_config
        self.server: Optional[FileHTTPServer] = None

    @property
    def port(self) -> int:
        """Port actually bound (differs from config.port when that is 0)."""
        if self.server:
            return self.server.server_address[1]
        return self.config.port

    def start(self):
        """Bind the listener and wrap it with TLS.

        Raises:
            RuntimeError: If server cannot be started
        """
        try:
            context = create_server_context(self.tls_config)
        except (OSError, ValueError) as e:
            logger.error("Failed to load TLS material: %s", e)
            raise RuntimeError(f"TLS init failed: {e}") from e

        try:
            server = FileHTTPServer(
                (self.config.host, self.config.port), FileRequestHandler, self.config
            )
        except OSError as e:
            logger.error("Failed to listen on %s:%d: %s", self.config.host, self.config.port, e)
            raise RuntimeError(f"Listen failed: {e}") from e

        server.socket = context.wrap_socket(server.socket, server_side=True)
        self.server = server

        logger.info("Server starting on https://%s:%d", self.config.host, self.port)
        logger.info("Serving %s", self.config.root)

    def serve_forever(self):
        """Start serving requests."""
        if not self.server:
            raise RuntimeError("Server not started")

        try:
            self.server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Shutdown requested")
        finally:
            self.shutdown()

    def shutdown(self):
        """Stop serving and release the listening socket."""
        server, self.server = self.server, None
        if server:
            logger.info("Shutting down server")
            server.shutdown()
            server.server_close()


def create_server(config: ServerConfig, tls_config: TLSConfig) -> Server:
    """Create a server instance.

    Args:
        config: Session configuration
        tls_config: TLS configuration

    Returns:
        Server instance (not yet started)
    """
    return Server(config=config, tls_config=tls_config)
