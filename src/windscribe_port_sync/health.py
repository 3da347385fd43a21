"""Health check HTTP server."""

import json
import logging
import threading
from datetime import datetime
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

from .forwarding import CachedPort


class HealthState:
    """Thread-safe health state container."""

    def __init__(self):
        self._lock = threading.Lock()
        self._healthy = False
        self._reason = "Starting up"
        self._port: CachedPort | None = None
        self._next_wake: datetime | None = None
        self._next_wake_kind: str | None = None

    def set_healthy(self, healthy: bool, reason: str = "") -> None:
        """Update health state."""
        with self._lock:
            self._healthy = healthy
            self._reason = reason

    def set_active_port(self, port: CachedPort | None) -> None:
        with self._lock:
            self._port = port

    def set_next_wake(self, at: datetime | None, kind: str) -> None:
        with self._lock:
            self._next_wake = at
            self._next_wake_kind = kind

    def get_status(self) -> tuple[bool, dict[str, Any]]:
        """Get current health status and the details reported with it."""
        with self._lock:
            details: dict[str, Any] = {
                "port": self._port.port if self._port else None,
                "expires_at": self._port.expires_at.isoformat() if self._port else None,
                "next_wake": self._next_wake.isoformat() if self._next_wake else None,
                "next_wake_kind": self._next_wake_kind,
            }
            if not self._healthy:
                details["reason"] = self._reason
            return self._healthy, details


def create_health_handler(state: HealthState, logger: logging.Logger):
    """Create a request handler class with access to health state."""

    class HealthHandler(BaseHTTPRequestHandler):
        """HTTP request handler for health checks."""

        def log_message(self, format: str, *args) -> None:
            """Override to use our logger."""
            logger.debug(f"Health check: {args[0]}")

        def do_GET(self) -> None:
            """Handle GET requests."""
            if self.path == "/health":
                healthy, details = state.get_status()

                if healthy:
                    self.send_response(200)
                    response = {"status": "healthy", **details}
                else:
                    self.send_response(503)
                    response = {"status": "unhealthy", **details}

                self.send_header("Content-Type", "application/json")
                self.end_headers()
                self.wfile.write(json.dumps(response).encode())
            else:
                self.send_response(404)
                self.end_headers()

    return HealthHandler


class HealthServer:
    """Health check HTTP server running in a background thread."""

    def __init__(self, port: int, state: HealthState, logger: logging.Logger):
        self.port = port
        self.state = state
        self.logger = logger
        self._server: HTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the health server in a background thread."""
        handler = create_health_handler(self.state, self.logger)
        self._server = HTTPServer(("0.0.0.0", self.port), handler)

        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

        self.logger.info(f"Health server started on port {self.port}")

    def _serve(self) -> None:
        """Serve requests until shutdown."""
        if self._server:
            self._server.serve_forever()

    def stop(self) -> None:
        """Stop the health server."""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self.logger.debug("Health server stopped")
