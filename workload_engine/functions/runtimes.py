"""Function runtime lookup."""

from typing import Mapping

from workload_engine.config import RuntimeImage
from workload_engine.core.errors import ConfigurationError


def resolve_runtime(runtimes: Mapping[str, RuntimeImage], runtime: str) -> RuntimeImage:
    """
    Image and handler convention for a runtime id.

    Raises:
        ConfigurationError: Unsupported runtime
    """
    config = runtimes.get(runtime) if runtime else None
    if config is None:
        raise ConfigurationError(f"Unsupported runtime: {runtime}")
    return config
