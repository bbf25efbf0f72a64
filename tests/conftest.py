#tests\conftest.py

"""Pytest configuration and fixtures."""

import pytest

from fake_docker import FakeDockerClient

from workload_engine.config import EngineSettings
from workload_engine.container import build_components
from workload_engine.core.events import MultiEventEmitter, RecordingEventEmitter
from workload_engine.functions.executor import FunctionExecutor
from workload_engine.functions.warm_cache import WarmContainerCache
from workload_engine.lifecycle.manager import ContainerLifecycleManager
from workload_engine.metrics.collector import MetricsCollector
from workload_engine.network.provisioner import NetworkProvisioner
from workload_engine.reaper.reaper import Reaper


@pytest.fixture
def docker_client():
    """Fresh in-memory engine for each test."""
    return FakeDockerClient()


@pytest.fixture
def settings():
    """Settings isolated from the developer's environment and .env file."""
    return EngineSettings(_env_file=None, stop_timeout_seconds=1)


@pytest.fixture
def recorder():
    return RecordingEventEmitter()


@pytest.fixture
def emitters(recorder):
    return MultiEventEmitter([recorder])


@pytest.fixture
def networks(docker_client):
    return NetworkProvisioner(docker_client)


@pytest.fixture
def lifecycle(docker_client, networks, emitters):
    return ContainerLifecycleManager(docker_client, networks, emitters=emitters, stop_timeout=1)


@pytest.fixture
def metrics(docker_client):
    return MetricsCollector(docker_client)


@pytest.fixture
def warm_cache():
    return WarmContainerCache(max_entries=16)


@pytest.fixture
def executor(docker_client, networks, settings, emitters):
    """Executor without a warm cache."""
    return FunctionExecutor.from_settings(docker_client, networks, settings, emitters=emitters)


@pytest.fixture
def reaper(docker_client, emitters):
    return Reaper(docker_client, interval=1, emitters=emitters)


@pytest.fixture
def components(docker_client, settings, emitters):
    """Fully wired components around the fake engine."""
    return build_components(settings=settings, client=docker_client, emitters=emitters)
