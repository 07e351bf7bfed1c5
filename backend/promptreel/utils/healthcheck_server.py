"""
HTTP healthcheck server for the generation worker.

Runs in a daemon thread beside the Celery worker process. ``/health`` answers
as long as the process lives; ``/ready`` also pings the Redis broker.
"""

import json
import threading
import logging
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Tuple

import redis

from ..config import settings

logger = logging.getLogger(__name__)

SERVICE_NAME = "promptreel-worker"


def broker_reachable() -> bool:
    try:
        redis.from_url(settings.celery_broker_url).ping()
        return True
    except redis.RedisError as e:
        logger.error(f"Broker health check failed: {e}")
        return False


def build_response(path: str) -> Tuple[int, dict]:
    """Status code and JSON body for a healthcheck path."""
    if path in ("/", "/health"):
        return 200, {"status": "healthy", "service": SERVICE_NAME}
    if path == "/ready":
        ready = broker_reachable()
        return (200 if ready else 503), {
            "status": "ready" if ready else "not ready",
            "checks": {"broker": ready},
        }
    return 404, {"error": "not found"}


class HealthCheckHandler(BaseHTTPRequestHandler):
    """Answers healthcheck probes with JSON."""

    def log_message(self, format, *args):
        pass

    def _respond(self, include_body: bool):
        status, body = build_response(self.path)
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        if include_body:
            self.wfile.write(json.dumps(body).encode())

    def do_GET(self):
        self._respond(include_body=True)

    def do_HEAD(self):
        self._respond(include_body=False)


def start_healthcheck_server(port: int = None) -> HTTPServer:
    """Start the healthcheck server in a daemon thread."""
    port = port if port is not None else settings.worker_healthcheck_port
    server = HTTPServer(("0.0.0.0", port), HealthCheckHandler)

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    logger.info(f"Healthcheck server running at http://0.0.0.0:{port}/health")
    return server
