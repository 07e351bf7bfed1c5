#!/usr/bin/env python3
"""
Worker entry point: healthcheck server plus the Celery worker (and beat).

The healthcheck server runs in this process; Celery runs as a subprocess so
the probe keeps answering while the worker executes long generations.
"""

import sys
import logging
import subprocess
import signal

from promptreel.config import settings
from promptreel.utils.healthcheck_server import start_healthcheck_server

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Global reference to celery process for cleanup
celery_process = None


def celery_command() -> list:
    args = [
        "celery",
        "-A",
        "promptreel.tasks.celery_tasks",
        "worker",
        "--loglevel=info",
        f"--concurrency={settings.celery_worker_concurrency}",
        f"--prefetch-multiplier={settings.celery_worker_prefetch_multiplier}",
    ]
    if settings.worker_beat_enabled:
        args.append("--beat")
    return args


def main():
    """Start healthcheck server and Celery worker."""
    global celery_process

    try:
        start_healthcheck_server()
    except OSError as e:
        # Celery is more important than the probe
        logger.error(f"Failed to start healthcheck server: {e}")

    celery_args = celery_command()
    logger.info(f"Celery command: {' '.join(celery_args)}")

    def shutdown_handler(signum, frame):
        logger.info("Received shutdown signal, stopping Celery...")
        if celery_process:
            celery_process.terminate()
            try:
                celery_process.wait(timeout=10)
            except subprocess.TimeoutExpired:
                celery_process.kill()
        logger.info("Shutdown complete")
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    try:
        celery_process = subprocess.Popen(celery_args)
        logger.info(f"Celery worker started with PID {celery_process.pid}")

        exit_code = celery_process.wait()
        logger.info(f"Celery worker exited with code {exit_code}")
        sys.exit(exit_code)

    except OSError as e:
        logger.error(f"Failed to start Celery: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
