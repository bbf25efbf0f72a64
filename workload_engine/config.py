#workload_engine\config.py

from functools import lru_cache
from typing import Dict

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class RuntimeImage(BaseModel):
    """Container image used to run one function runtime."""

    image: str
    handler: str
    extension: str


DEFAULT_RUNTIMES: Dict[str, RuntimeImage] = {
    "nodejs20": RuntimeImage(image="bunker-runtime-nodejs20:latest", handler="index.handler", extension=".js"),
    "nodejs18": RuntimeImage(image="bunker-runtime-nodejs18:latest", handler="index.handler", extension=".js"),
    "python311": RuntimeImage(image="bunker-runtime-python311:latest", handler="handler.handler", extension=".py"),
    "python310": RuntimeImage(image="bunker-runtime-python310:latest", handler="handler.handler", extension=".py"),
    "go121": RuntimeImage(image="bunker-runtime-go121:latest", handler="main", extension=".go"),
    "rust": RuntimeImage(image="bunker-runtime-rust:latest", handler="bootstrap", extension=".rs"),
}


class EngineSettings(BaseSettings):
    """Workload engine configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WORKLOAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Container engine
    docker_base_url: str = "unix:///var/run/docker.sock"
    engine_timeout_seconds: int = 60
    stop_timeout_seconds: int = 10

    # Networks (distinct namespaces, never shared)
    apps_network: str = "bunker-apps"
    databases_network: str = "bunker-databases"
    databases_subnet: str = "172.30.0.0/16"
    functions_network: str = "bunker-functions"

    # Routing
    apps_base_domain: str = "apps.bunkercorpo.com"
    ingress_entrypoint: str = "websecure"
    ingress_cert_resolver: str = "letsencrypt"

    # App defaults
    default_app_memory: str = "256m"
    default_app_cpus: str = "0.25"

    # Database instances
    database_port_low: int = 20000
    database_port_high: int = 30000
    database_port_attempts: int = 3

    # Function execution (milliseconds / MiB / bytes)
    function_default_timeout_ms: int = 30000
    function_max_timeout_ms: int = 300000
    function_default_memory_mb: int = 128
    function_max_memory_mb: int = 1024
    function_max_payload_bytes: int = 6291456
    function_cpu_quota: int = 50000
    function_tmpfs_size: str = "64m"
    warm_cache_size: int = 256
    runtimes: Dict[str, RuntimeImage] = dict(DEFAULT_RUNTIMES)

    # Background workers (seconds)
    reaper_interval: int = 60
    health_check_interval: int = 10
    health_failure_threshold: int = 3
    health_restart_cooldown: int = 60

    # Runtime agent
    agent_host: str = "0.0.0.0"
    agent_port: int = 9000


@lru_cache
def get_settings() -> EngineSettings:
    return EngineSettings()


settings = get_settings()
