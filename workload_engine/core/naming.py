#workload_engine\core\naming.py
"""
Deterministic engine names.

The only identity index: every engine object name is recomputed from the
logical identity, so nothing has to persist engine container IDs.
"""

import re

from workload_engine.core.errors import ConfigurationError
from workload_engine.core.models import LogicalResource, ResourceKind

NAME_PREFIX = "bunker"

KIND_SEGMENTS = {
    ResourceKind.APP: "app",
    ResourceKind.DATABASE: "db",
    ResourceKind.FUNCTION_INVOCATION: "fn",
}

FUNCTION_CONTAINER_PREFIX = f"{NAME_PREFIX}-{KIND_SEGMENTS[ResourceKind.FUNCTION_INVOCATION]}-"

# Docker accepts [a-zA-Z0-9][a-zA-Z0-9_.-]+ for container names
_VALID_ID = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]{0,127}$")


def _require_valid(value: str, what: str) -> str:
    if not value or not _VALID_ID.match(value):
        raise ConfigurationError(f"Invalid {what}: {value!r}")
    return value


def container_name(kind: ResourceKind, resource_id: str) -> str:
    """Engine container name for (kind, resource_id)."""
    _require_valid(resource_id, "resource id")
    return f"{NAME_PREFIX}-{KIND_SEGMENTS[kind]}-{resource_id}"


def resource_container_name(resource: LogicalResource) -> str:
    return container_name(resource.kind, resource.resource_id)


def invocation_container_name(function_id: str, invocation_id: str) -> str:
    """
    Ephemeral container name for one invocation.

    The function part is shortened for readability; the invocation part is
    kept whole so two invocations never map to the same name.
    """
    _require_valid(function_id, "function id")
    _require_valid(invocation_id, "invocation id")
    return f"{FUNCTION_CONTAINER_PREFIX}{function_id[:8]}-{invocation_id}"


def is_invocation_container(name: str) -> bool:
    return name.lstrip("/").startswith(FUNCTION_CONTAINER_PREFIX)
