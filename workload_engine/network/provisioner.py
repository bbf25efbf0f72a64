# workload_engine/network/provisioner.py
"""Network provisioner - makes sure a named bridge network exists."""

import logging
from typing import Dict, Optional

from docker.errors import APIError, NotFound
from docker.types import IPAMConfig, IPAMPool

from workload_engine.core.labels import MANAGED_LABEL, TYPE_LABEL
from workload_engine.core.models import NetworkPlacement
from workload_engine.engine.client import engine_call

logger = logging.getLogger(__name__)


def _is_conflict(error: APIError) -> bool:
    if error.status_code == 409:
        return True
    return "already exists" in str(error.explanation or error).lower()


class NetworkProvisioner:
    """
    Idempotent network creation.

    Two callers racing to create the same network both succeed: the loser's
    "already exists" answer is treated as success.
    """

    def __init__(self, client, driver: str = "bridge"):
        self._client = client
        self._driver = driver

    def ensure_network(
        self,
        name: str,
        subnet: Optional[str] = None,
        purpose: str = "workloads",
    ) -> None:
        """
        Create the network if it does not exist.

        Raises:
            EngineUnavailable / EngineOperationError: For anything but
                "not found" on inspect or "already exists" on create
        """
        with engine_call(f"inspect network {name}"):
            try:
                self._client.networks.get(name)
                return
            except NotFound:
                pass

        labels: Dict[str, str] = {
            MANAGED_LABEL: "true",
            TYPE_LABEL: f"{purpose}-network",
        }
        kwargs = {"driver": self._driver, "labels": labels}
        if subnet:
            kwargs["ipam"] = IPAMConfig(pool_configs=[IPAMPool(subnet=subnet)])

        with engine_call(f"create network {name}"):
            try:
                self._client.networks.create(name, **kwargs)
                logger.info(f"Created network: {name}")
            except APIError as e:
                if not _is_conflict(e):
                    raise
                logger.debug(f"Network {name} created concurrently, reusing it")

    def ensure_placement(self, placement: NetworkPlacement) -> None:
        self.ensure_network(placement.name, subnet=placement.subnet, purpose=placement.purpose)
