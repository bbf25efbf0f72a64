"""Ownership and routing labels emitted on every managed container."""

from typing import Dict

from workload_engine.core.models import LogicalResource

MANAGED_LABEL = "bunker.managed"
OWNER_LABEL = "bunker.owner"
KIND_LABEL = "bunker.kind"
RESOURCE_LABEL = "bunker.resource_id"
TYPE_LABEL = "bunker.type"


def ownership_labels(resource: LogicalResource) -> Dict[str, str]:
    """Labels that let cleanup tooling rediscover a container without an index."""
    return {
        MANAGED_LABEL: "true",
        OWNER_LABEL: resource.owner_id,
        KIND_LABEL: resource.kind.value,
        RESOURCE_LABEL: resource.resource_id,
    }


def routing_labels(
    router_id: str,
    hostname: str,
    backend_port: int,
    entrypoint: str = "websecure",
    cert_resolver: str = "letsencrypt",
) -> Dict[str, str]:
    """
    Traefik labels consumed by the external ingress.

    The engine never configures routing itself, it only emits these.
    """
    return {
        "traefik.enable": "true",
        f"traefik.http.routers.{router_id}.rule": f"Host(`{hostname}`)",
        f"traefik.http.routers.{router_id}.entrypoints": entrypoint,
        f"traefik.http.routers.{router_id}.tls.certresolver": cert_resolver,
        f"traefik.http.services.{router_id}.loadbalancer.server.port": str(backend_port),
    }
