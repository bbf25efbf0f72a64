# workload_engine/engine/client.py
"""
Container engine client.

One explicit DockerClient handle is created here and injected into every
component; nothing reaches for a process-global client.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

import docker
import requests
from docker.errors import APIError, DockerException, NotFound

from workload_engine.config import EngineSettings
from workload_engine.core.errors import (
    EngineOperationError,
    EngineUnavailable,
    ResourceNotFound,
    WorkloadError,
)

logger = logging.getLogger(__name__)


def create_docker_client(settings: EngineSettings) -> docker.DockerClient:
    """
    Connect to the engine. Every call made through the client is bounded
    by settings.engine_timeout_seconds.

    Raises:
        EngineUnavailable: If the daemon cannot be reached
    """
    try:
        client = docker.DockerClient(
            base_url=settings.docker_base_url,
            timeout=settings.engine_timeout_seconds,
        )
        client.ping()
    except (DockerException, requests.exceptions.RequestException) as e:
        logger.error(f"❌ Failed to connect to Docker at {settings.docker_base_url}: {e}")
        raise EngineUnavailable(f"Cannot connect to container engine: {e}") from e

    logger.info(f"✅ Connected to Docker daemon at {settings.docker_base_url}")
    return client


def check_engine_health(client) -> bool:
    """True if the engine answers a ping."""
    try:
        return bool(client.ping())
    except (DockerException, requests.exceptions.RequestException) as e:
        logger.warning(f"Engine health check failed: {e}")
        return False


def engine_info(client) -> Optional[Dict[str, Any]]:
    """Host summary reported by the engine, or None if unavailable."""
    try:
        info = client.info()
    except (DockerException, requests.exceptions.RequestException) as e:
        logger.error(f"Failed to get engine info: {e}")
        return None

    return {
        "docker_version": info.get("ServerVersion", "unknown"),
        "containers_running": info.get("ContainersRunning", 0),
        "containers_total": info.get("Containers", 0),
        "images_count": info.get("Images", 0),
        "memory_total": info.get("MemTotal", 0),
        "cpu_count": info.get("NCPU", 0),
    }


def translate_engine_error(error: Exception, operation: str) -> WorkloadError:
    """Map a docker SDK / transport exception onto the workload taxonomy."""
    if isinstance(error, WorkloadError):
        return error
    if isinstance(error, NotFound):
        return ResourceNotFound(f"{operation}: {error.explanation or error}")
    if isinstance(error, APIError):
        return EngineOperationError(f"{operation}: {error.explanation or error}")
    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return EngineUnavailable(f"{operation}: engine unreachable ({error})")
    if isinstance(error, DockerException):
        return EngineUnavailable(f"{operation}: {error}")
    return EngineOperationError(f"{operation}: {error}")


@contextmanager
def engine_call(operation: str):
    """Run engine calls and re-raise failures as WorkloadError subclasses."""
    try:
        yield
    except (DockerException, requests.exceptions.RequestException) as e:
        raise translate_engine_error(e, operation) from e
