#workload_engine\container.py

"""Dependency injection container - wires all services together."""

from dataclasses import dataclass
from typing import Optional

from workload_engine.config import EngineSettings, get_settings
from workload_engine.core.events import LoggingEventEmitter, MultiEventEmitter
from workload_engine.engine.client import create_docker_client
from workload_engine.functions.executor import FunctionExecutor
from workload_engine.functions.warm_cache import WarmContainerCache
from workload_engine.health_monitor.monitor import HealthMonitor
from workload_engine.lifecycle.locks import ResourceLockRegistry
from workload_engine.lifecycle.manager import ContainerLifecycleManager
from workload_engine.metrics.collector import MetricsCollector
from workload_engine.network.ports import PortAllocator
from workload_engine.network.provisioner import NetworkProvisioner
from workload_engine.reaper.reaper import Reaper
from workload_engine.services.apps import AppService
from workload_engine.services.databases import DatabaseService


@dataclass
class Components:
    settings: EngineSettings
    client: object
    emitters: MultiEventEmitter
    networks: NetworkProvisioner
    ports: PortAllocator
    lifecycle: ContainerLifecycleManager
    metrics: MetricsCollector
    executor: FunctionExecutor
    reaper: Reaper
    apps: AppService
    databases: DatabaseService


def build_components(
    settings: Optional[EngineSettings] = None,
    client=None,
    emitters: Optional[MultiEventEmitter] = None,
) -> Components:
    """
    Build every component around one engine client handle.

    Tests pass a fake client; production connects using settings.
    """
    settings = settings or get_settings()
    client = client or create_docker_client(settings)

    # ============================================
    # EVENTS
    # ============================================

    emitters = emitters or MultiEventEmitter([
        LoggingEventEmitter()
    ])

    # ============================================
    # ENGINE-FACING COMPONENTS
    # ============================================

    networks = NetworkProvisioner(client)
    ports = PortAllocator(
        client,
        low=settings.database_port_low,
        high=settings.database_port_high,
    )
    lifecycle = ContainerLifecycleManager(
        client,
        networks,
        locks=ResourceLockRegistry(),
        emitters=emitters,
        stop_timeout=settings.stop_timeout_seconds,
    )
    metrics = MetricsCollector(client)
    executor = FunctionExecutor.from_settings(
        client,
        networks,
        settings,
        warm_cache=WarmContainerCache(settings.warm_cache_size),
        emitters=emitters,
    )
    reaper = Reaper(client, interval=settings.reaper_interval, emitters=emitters)

    # ============================================
    # SERVICES
    # ============================================

    apps = AppService(lifecycle, metrics, settings)
    databases = DatabaseService(lifecycle, ports, metrics, settings)

    return Components(
        settings=settings,
        client=client,
        emitters=emitters,
        networks=networks,
        ports=ports,
        lifecycle=lifecycle,
        metrics=metrics,
        executor=executor,
        reaper=reaper,
        apps=apps,
        databases=databases,
    )


def build_health_monitor(components: Components) -> HealthMonitor:
    settings = components.settings
    return HealthMonitor(
        components.client,
        components.lifecycle,
        check_interval=settings.health_check_interval,
        failure_threshold=settings.health_failure_threshold,
        restart_cooldown=settings.health_restart_cooldown,
    )
