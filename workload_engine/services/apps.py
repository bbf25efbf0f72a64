#workload_engine\services\apps.py

"""App service - long-running HTTP applications behind the ingress."""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from workload_engine.config import EngineSettings
from workload_engine.core.errors import ConfigurationError, ResourceNotFound
from workload_engine.core.labels import routing_labels
from workload_engine.core.models import (
    ContainerSnapshot,
    ContainerStats,
    DeploySpec,
    ExposedPort,
    HealthProbe,
    LogicalResource,
    NetworkPlacement,
    Outcome,
    ResourceKind,
)
from workload_engine.lifecycle.manager import ContainerLifecycleManager
from workload_engine.metrics.collector import MetricsCollector
from workload_engine.resources.limits import ResourceLimits

logger = logging.getLogger(__name__)

# Becomes a DNS label under the apps base domain
_APP_NAME = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")


@dataclass
class AppHealthCheck:
    path: str = "/"
    interval_seconds: int = 30
    timeout_seconds: int = 5


@dataclass
class AppDeployRequest:
    """What an owning service asks for when deploying an app."""
    owner_id: str
    app_id: str
    name: str
    image: str
    port: int
    env: Dict[str, str] = field(default_factory=dict)
    memory: Optional[str] = None
    cpus: Optional[str] = None
    health_check: Optional[AppHealthCheck] = None


class AppService:
    """Deploys and operates `bunker-app-*` containers."""

    def __init__(self, lifecycle: ContainerLifecycleManager, metrics: MetricsCollector, settings: EngineSettings):
        self._lifecycle = lifecycle
        self._metrics = metrics
        self._settings = settings

    def hostname(self, name: str) -> str:
        return f"{name}.{self._settings.apps_base_domain}"

    def build_deploy_spec(self, request: AppDeployRequest) -> DeploySpec:
        """
        Translate a deploy request. Fails fast on bad input, before any
        engine call is made.
        """
        if not _APP_NAME.match(request.name or ""):
            raise ConfigurationError(f"Invalid app name: {request.name!r}")
        if not 1 <= request.port <= 65535:
            raise ConfigurationError(f"Invalid app port: {request.port}")

        resource = LogicalResource(request.owner_id, request.app_id, ResourceKind.APP)
        limits = ResourceLimits.from_strings(
            request.memory or self._settings.default_app_memory,
            request.cpus or self._settings.default_app_cpus,
        )

        environment = dict(request.env)
        environment["PORT"] = str(request.port)

        labels = {
            "bunker.app.name": request.name,
            "bunker.app.port": str(request.port),
        }
        labels.update(routing_labels(
            router_id=f"app-{request.app_id}",
            hostname=self.hostname(request.name),
            backend_port=request.port,
            entrypoint=self._settings.ingress_entrypoint,
            cert_resolver=self._settings.ingress_cert_resolver,
        ))

        probe = None
        if request.health_check:
            probe = HealthProbe(
                http_path=request.health_check.path,
                http_port=request.port,
                interval_seconds=request.health_check.interval_seconds,
                timeout_seconds=request.health_check.timeout_seconds,
            )

        return DeploySpec(
            resource=resource,
            image=request.image,
            limits=limits,
            placement=NetworkPlacement(self._settings.apps_network, purpose="apps"),
            ports=[ExposedPort(request.port)],
            publish_all_ports=True,
            environment=environment,
            labels=labels,
            restart_policy="unless-stopped",
            health_probe=probe,
        )

    def deploy(self, request: AppDeployRequest) -> str:
        """Create or replace the app container. Returns the container ID."""
        spec = self.build_deploy_spec(request)
        logger.info(f"Deploying app {request.app_id} ({request.image}, {spec.limits})")
        return self._lifecycle.deploy(spec)

    def get(self, owner_id: str, app_id: str) -> Optional[ContainerSnapshot]:
        return self._lifecycle.inspect(self._resource(owner_id, app_id))

    def logs(self, owner_id: str, app_id: str, tail: int = 100) -> str:
        return self._lifecycle.logs(self._resource(owner_id, app_id), tail=tail)

    def stats(self, owner_id: str, app_id: str) -> Optional[ContainerStats]:
        return self._metrics.get_resource_stats(self._resource(owner_id, app_id))

    def start(self, owner_id: str, app_id: str) -> Outcome:
        return self._transition(self._lifecycle.start, owner_id, app_id)

    def stop(self, owner_id: str, app_id: str) -> Outcome:
        return self._transition(self._lifecycle.stop, owner_id, app_id)

    def restart(self, owner_id: str, app_id: str) -> Outcome:
        return self._transition(self._lifecycle.restart, owner_id, app_id)

    def delete(self, owner_id: str, app_id: str) -> bool:
        return self._lifecycle.delete(self._resource(owner_id, app_id))

    def _transition(self, action, owner_id: str, app_id: str) -> Outcome:
        try:
            action(self._resource(owner_id, app_id))
        except ResourceNotFound as e:
            return Outcome.failure(e.code, f"App {app_id} not found")
        return Outcome.success()

    def _resource(self, owner_id: str, app_id: str) -> LogicalResource:
        return LogicalResource(owner_id, app_id, ResourceKind.APP)
