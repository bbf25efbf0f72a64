# workload_engine/services/databases.py
"""
Database service - ad-hoc postgres / mysql / redis / mongodb instances.

Each instance gets generated credentials and a host port allocated from
the database range, bound to the engine's default port. Deleting an
instance removes its volumes too.
"""

import logging
import re
import secrets
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Set

from workload_engine.config import EngineSettings
from workload_engine.core.errors import ConfigurationError, ResourceExhausted, ResourceNotFound
from workload_engine.core.labels import TYPE_LABEL
from workload_engine.core.models import (
    ContainerSnapshot,
    ContainerStats,
    DeploySpec,
    ExposedPort,
    LogicalResource,
    NetworkPlacement,
    Outcome,
    ResourceKind,
)
from workload_engine.lifecycle.manager import ContainerLifecycleManager
from workload_engine.metrics.collector import MetricsCollector
from workload_engine.network.ports import PORT_COLLISION, PortAllocator
from workload_engine.resources.limits import ResourceLimits
from workload_engine.services.templates import DATABASE_TEMPLATES
from workload_engine.services.templates.base import DEFAULT_USERNAME, DatabaseTemplate

logger = logging.getLogger(__name__)

_DATABASE_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]{0,62}$")
PASSWORD_BYTES = 24  # 32 url-safe characters


@dataclass
class DatabaseCredentials:
    username: Optional[str]
    password: str
    database: Optional[str]


@dataclass
class DatabaseInstance:
    """A provisioned instance and how to reach it."""
    instance_id: str
    owner_id: str
    name: str
    engine: str
    container_id: str
    host: str
    port: int
    status: str
    credentials: DatabaseCredentials

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def generate_instance_id() -> str:
    return f"db-{secrets.token_hex(6)}"


def generate_password() -> str:
    return secrets.token_urlsafe(PASSWORD_BYTES)


class DatabaseService:
    """Provisions and operates `bunker-db-*` containers."""

    def __init__(
        self,
        lifecycle: ContainerLifecycleManager,
        ports: PortAllocator,
        metrics: MetricsCollector,
        settings: EngineSettings,
        templates: Optional[Dict[str, DatabaseTemplate]] = None,
    ):
        self._lifecycle = lifecycle
        self._ports = ports
        self._metrics = metrics
        self._settings = settings
        self._templates = templates or DATABASE_TEMPLATES

    def template_for(self, engine: str) -> DatabaseTemplate:
        template = self._templates.get(engine)
        if template is None:
            raise ConfigurationError(
                f"Unsupported database type: {engine} (supported: {', '.join(sorted(self._templates))})"
            )
        return template

    def build_deploy_spec(
        self,
        resource: LogicalResource,
        template: DatabaseTemplate,
        credentials: DatabaseCredentials,
        host_port: int,
    ) -> DeploySpec:
        return DeploySpec(
            resource=resource,
            image=template.image,
            limits=ResourceLimits.from_strings(
                template.memory,
                None,
                memory_swap=template.memory_swap,
            ),
            placement=NetworkPlacement(
                self._settings.databases_network,
                subnet=self._settings.databases_subnet,
                purpose="databases",
            ),
            ports=[ExposedPort(template.internal_port, host_port)],
            environment=template.environment(
                credentials.username or "",
                credentials.password,
                credentials.database or "",
            ),
            labels={
                "bunker.service": "database",
                TYPE_LABEL: template.engine,
                "bunker.instance": resource.resource_id,
            },
            command=template.command(credentials.password),
            restart_policy="unless-stopped",
        )

    def provision(self, owner_id: str, name: str, engine: str, database: Optional[str] = None) -> DatabaseInstance:
        """
        Create a new instance.

        A host-port collision at start time (another allocation raced us to
        the same port) is retried with a fresh port, up to
        settings.database_port_attempts times.

        Raises:
            ConfigurationError: Unknown engine or invalid database name
            ResourceExhausted: No port could be bound
        """
        template = self.template_for(engine)
        database = database or name
        if template.has_database and not _DATABASE_NAME.match(database or ""):
            raise ConfigurationError(f"Invalid database name: {database!r}")

        instance_id = generate_instance_id()
        resource = LogicalResource(owner_id, instance_id, ResourceKind.DATABASE)
        credentials = DatabaseCredentials(
            username=DEFAULT_USERNAME if template.has_username else None,
            password=generate_password(),
            database=database if template.has_database else None,
        )

        tried: Set[int] = set()
        attempts = max(1, self._settings.database_port_attempts)
        for attempt in range(1, attempts + 1):
            port = self._ports.allocate_port(
                self._settings.database_port_low,
                self._settings.database_port_high,
                exclude=tried,
            )
            tried.add(port)
            spec = self.build_deploy_spec(resource, template, credentials, port)

            try:
                container_id = self._lifecycle.deploy(spec)
            except ResourceExhausted as e:
                if e.code != PORT_COLLISION or attempt == attempts:
                    raise
                logger.warning(f"[{instance_id}] Port {port} taken at start, retrying ({attempt}/{attempts})")
                continue

            logger.info(f"[{instance_id}] ✅ Provisioned {engine} on port {port}")
            return DatabaseInstance(
                instance_id=instance_id,
                owner_id=owner_id,
                name=name,
                engine=engine,
                container_id=container_id,
                host="localhost",
                port=port,
                status="running",
                credentials=credentials,
            )

        # Unreachable: the last attempt either returns or raises
        raise ResourceExhausted(f"Could not bind a port for {instance_id}", code=PORT_COLLISION)

    def get(self, owner_id: str, instance_id: str) -> Optional[ContainerSnapshot]:
        return self._lifecycle.inspect(self._resource(owner_id, instance_id))

    def status(self, owner_id: str, instance_id: str) -> str:
        return self._lifecycle.status(self._resource(owner_id, instance_id))

    def logs(self, owner_id: str, instance_id: str, tail: int = 100) -> str:
        return self._lifecycle.logs(self._resource(owner_id, instance_id), tail=tail)

    def stats(self, owner_id: str, instance_id: str) -> Optional[ContainerStats]:
        return self._metrics.get_resource_stats(self._resource(owner_id, instance_id))

    def start(self, owner_id: str, instance_id: str) -> Outcome:
        return self._transition(self._lifecycle.start, owner_id, instance_id)

    def stop(self, owner_id: str, instance_id: str) -> Outcome:
        return self._transition(self._lifecycle.stop, owner_id, instance_id)

    def delete(self, owner_id: str, instance_id: str) -> bool:
        """Stop and remove the instance together with its volumes."""
        return self._lifecycle.delete(self._resource(owner_id, instance_id), remove_volumes=True)

    def _transition(self, action, owner_id: str, instance_id: str) -> Outcome:
        try:
            action(self._resource(owner_id, instance_id))
        except ResourceNotFound as e:
            return Outcome.failure(e.code, f"Database instance {instance_id} not found")
        return Outcome.success()

    def _resource(self, owner_id: str, instance_id: str) -> LogicalResource:
        return LogicalResource(owner_id, instance_id, ResourceKind.DATABASE)
