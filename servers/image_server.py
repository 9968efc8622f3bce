#!/usr/bin/env python
"""
HTTP server that serves image files from a configured folder.

Run directly for the container variant: configuration comes from the
PORT and IMAGE_FOLDER environment variables and the server runs in the
foreground until the process is stopped.
"""

import sys
import os

# Add parent directory to path so we can import core
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import socket
import threading
import time
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
import logging
from typing import Optional, Tuple

from core.config import ServerConfig, get_env_str, load_env_config
from core.errors import ImageServerError, ListenerBindFailure, ShutdownTimeout
from services.logger import setup_console_logger

logger = logging.getLogger(__name__)

READ_TIMEOUT_SECONDS = 15.0
WRITE_TIMEOUT_SECONDS = 15.0
IDLE_TIMEOUT_SECONDS = 60.0
SHUTDOWN_TIMEOUT_SECONDS = 5.0


class ImageRequestHandler(SimpleHTTPRequestHandler):
    """Serve files below the configured folder, logging each request."""

    protocol_version = "HTTP/1.1"
    server_version = "ImageServer/1.0"

    def setup(self):
        # sockets carry a single timeout for both directions
        self.timeout = max(self.server.read_timeout, self.server.write_timeout)
        super().setup()

    def handle(self):
        self.close_connection = True
        self.handle_one_request()
        while not self.close_connection:
            if not self.server.mark_idle(self.connection):
                break
            self.connection.settimeout(self.server.idle_timeout)
            self.handle_one_request()

    def parse_request(self):
        self.server.mark_busy(self.connection)
        self.connection.settimeout(self.timeout)
        return super().parse_request()

    def finish(self):
        try:
            super().finish()
        finally:
            self.server.forget(self.connection)

    def do_GET(self):
        logger.info("Received request: %s %s", self.command, self.path)
        super().do_GET()

    def do_HEAD(self):
        logger.info("Received request: %s %s", self.command, self.path)
        super().do_HEAD()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def log_error(self, format, *args):
        # 404s and keep-alive timeouts land here; they are routine
        logger.info("%s - %s", self.address_string(), format % args)


class ImageHTTPServer(ThreadingHTTPServer):
    """ThreadingHTTPServer that can drain in-flight requests on shutdown."""

    daemon_threads = True
    block_on_close = False

    def __init__(self, server_address, folder: str,
                 read_timeout: float = READ_TIMEOUT_SECONDS,
                 write_timeout: float = WRITE_TIMEOUT_SECONDS,
                 idle_timeout: float = IDLE_TIMEOUT_SECONDS):
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.idle_timeout = idle_timeout
        self.stopping = False
        self._active = 0
        self._idle = set()
        self._cond = threading.Condition()
        super().__init__(server_address, partial(ImageRequestHandler, directory=folder))

    def process_request(self, request, client_address):
        with self._cond:
            self._active += 1
        super().process_request(request, client_address)

    def process_request_thread(self, request, client_address):
        try:
            super().process_request_thread(request, client_address)
        finally:
            with self._cond:
                self._active -= 1
                self._cond.notify_all()

    def handle_error(self, request, client_address):
        logger.warning("Error handling request from %s", client_address[0], exc_info=True)

    def mark_idle(self, conn) -> bool:
        with self._cond:
            if self.stopping:
                return False
            self._idle.add(conn)
            return True

    def mark_busy(self, conn) -> None:
        with self._cond:
            self._idle.discard(conn)

    def forget(self, conn) -> None:
        with self._cond:
            self._idle.discard(conn)

    def drain(self, timeout: float) -> bool:
        """Close idle keep-alive connections and wait for active ones to finish."""
        with self._cond:
            self.stopping = True
            for conn in list(self._idle):
                try:
                    conn.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
            self._idle.clear()
            return self._cond.wait_for(lambda: self._active == 0, timeout=max(timeout, 0.0))

    @property
    def active_connections(self) -> int:
        with self._cond:
            return self._active


class ImageServer:
    """HTTP listener for one configured folder."""

    def __init__(self, config: ServerConfig, host: str = "",
                 read_timeout: float = READ_TIMEOUT_SECONDS,
                 write_timeout: float = WRITE_TIMEOUT_SECONDS,
                 idle_timeout: float = IDLE_TIMEOUT_SECONDS):
        self.config = config
        self.host = host
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self.idle_timeout = idle_timeout

        self.bound = threading.Event()
        self._httpd: Optional[ImageHTTPServer] = None
        self._closing = False
        self._lock = threading.Lock()

    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        with self._lock:
            if self._httpd is None:
                return None
            return self._httpd.server_address[:2]

    def wait_until_bound(self, timeout: Optional[float] = None) -> bool:
        return self.bound.wait(timeout)

    def _bind(self) -> ImageHTTPServer:
        address = (self.host, self.config.port_number)
        try:
            return ImageHTTPServer(
                address,
                self.config.folder,
                read_timeout=self.read_timeout,
                write_timeout=self.write_timeout,
                idle_timeout=self.idle_timeout,
            )
        except OSError as exc:
            raise ListenerBindFailure(f"failed to listen on {self.host}:{self.config.port}: {exc}") from exc

    def serve_forever(self) -> None:
        """Bind and serve until shutdown() is called."""
        with self._lock:
            if self._closing:
                return

        httpd = self._bind()
        with self._lock:
            if self._closing:
                httpd.server_close()
                return
            self._httpd = httpd
        self.bound.set()

        host, port = httpd.server_address[:2]
        logger.info("Serving %s on http://%s:%s", self.config.folder, host, port)
        try:
            httpd.serve_forever()
        finally:
            httpd.server_close()

    def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT_SECONDS) -> None:
        """Stop accepting connections and wait for in-flight requests."""
        deadline = time.monotonic() + timeout
        with self._lock:
            self._closing = True
            httpd = self._httpd
        if httpd is None:
            return

        stopper = threading.Thread(target=httpd.shutdown, name="image-server-shutdown", daemon=True)
        stopper.start()
        stopper.join(timeout)
        if stopper.is_alive():
            raise ShutdownTimeout(f"listener did not stop accepting within {timeout}s")

        if not httpd.drain(deadline - time.monotonic()):
            raise ShutdownTimeout(
                f"{httpd.active_connections} connection(s) still active after {timeout}s"
            )
        logger.info("HTTP server shut down")


def run_foreground(config: ServerConfig, host: str = "") -> None:
    """Serve in the current thread until interrupted."""
    server = ImageServer(config, host=host)
    logger.info("Server will run indefinitely. Press Ctrl+C to stop.")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Image server shutting down...")
    finally:
        logger.info("Image server stopped.")


def main() -> int:
    """Start the image server from environment configuration."""
    setup_console_logger(logs_dir=get_env_str("LOGS_DIR") or None)
    try:
        config = load_env_config()
        run_foreground(config)
    except ImageServerError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
