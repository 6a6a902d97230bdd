"""
Startup script for the API server and the Celery worker (with embedded beat).
Both run as child processes; if either dies the other is stopped too.
"""

import multiprocessing
import signal
import subprocess
import sys
import time
from pathlib import Path

import redis

# Add the parent directory to Python path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config.settings import settings
from app.utils.logging import get_logger

logger = get_logger()

PROJECT_ROOT = str(Path(__file__).parent.parent)


def setup_signal_handlers():
    """Setup signal handlers for graceful shutdown"""

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def _run(name: str, cmd: list):
    try:
        logger.info(f"Starting {name} process", command=" ".join(cmd[2:]))
        subprocess.run(cmd, check=True, cwd=PROJECT_ROOT)
    except subprocess.CalledProcessError as e:
        logger.error(f"{name} process failed with return code {e.returncode}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info(f"{name} process interrupted by user")


def run_api_server():
    _run(
        "API",
        [sys.executable, "-m", "uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", "8000"],
    )


def celery_worker_command() -> list:
    """Worker with embedded beat, so the cycle cadence needs no extra process."""
    return [
        sys.executable,
        "-m",
        "celery",
        "-A",
        "app.celery",
        "worker",
        "--beat",
        "--loglevel=info",
        f"--concurrency={settings.WORKER_CONCURRENCY}",
    ]


def run_celery_worker():
    _run("Celery", celery_worker_command())


def check_redis_connection() -> bool:
    """Check if Redis server is accessible"""
    try:
        redis.Redis.from_url(settings.redis_url, socket_connect_timeout=5).ping()
        logger.info("Redis connection successful")
        return True
    except redis.RedisError as e:
        logger.error(f"Redis connection failed: {e}")
        return False


def terminate_processes(processes):
    logger.info("Initiating graceful shutdown of all services")
    for process in processes:
        if process.is_alive():
            process.terminate()

    for process in processes:
        process.join(timeout=10)
        if process.is_alive():
            logger.warning(f"{process.name} did not terminate gracefully, force killing")
            process.kill()
            process.join()


def main():
    setup_signal_handlers()
    logger.info(f"Starting {settings.NAME} services (API + Celery worker/beat)")

    if not check_redis_connection():
        logger.error("Cannot start services without Redis connection")
        sys.exit(1)

    processes = [
        multiprocessing.Process(target=run_api_server, name="API"),
        multiprocessing.Process(target=run_celery_worker, name="Celery"),
    ]

    try:
        for process in processes:
            process.start()

        while all(process.is_alive() for process in processes):
            time.sleep(1)

        dead = [p.name for p in processes if not p.is_alive()]
        logger.error(f"Process died unexpectedly: {', '.join(dead)}")
    except KeyboardInterrupt:
        logger.info("Shutdown signal received")
    finally:
        terminate_processes(processes)
        logger.info("All services stopped")


if __name__ == "__main__":
    main()
