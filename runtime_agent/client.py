# runtime_agent/client.py
"""Runtime Agent client used by the owning services (apps, databases, functions)."""

import requests
from typing import Dict, Any, Optional
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)


@dataclass
class DeploymentResult:
    """Result from app deployment."""
    container_id: str
    container_name: str
    hostname: Optional[str]


class AgentRequestError(RuntimeError):
    """Agent answered with an error status."""

    def __init__(self, message: str, status_code: int, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class RuntimeAgentClient:
    """Client for communicating with Runtime Agent."""

    def __init__(self, agent_url: str, owner_id: str = "", timeout: int = 30):
        """
        Initialize client.

        Args:
            agent_url: Base URL of runtime agent (e.g., "http://10.0.1.10:9000")
            owner_id: Owner the requests act for (sent as X-Owner-Id)
            timeout: Request timeout in seconds
        """
        self.base_url = agent_url.rstrip('/')
        self.owner_id = owner_id
        self.timeout = timeout

    def _request(self, method: str, path: str, timeout: Optional[float] = None, **kwargs) -> Any:
        """
        Send a request and decode the JSON body.

        Raises:
            AgentRequestError: Agent returned 4xx/5xx
            RuntimeError: Agent unreachable or timed out
        """
        timeout = timeout or self.timeout
        headers = {"X-Owner-Id": self.owner_id}
        try:
            response = requests.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                timeout=timeout,
                **kwargs
            )
        except requests.exceptions.Timeout:
            raise RuntimeError(f"{method} {path} timeout after {timeout}s")
        except requests.exceptions.ConnectionError:
            raise RuntimeError(f"Cannot connect to runtime agent at {self.base_url}")

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"detail": response.text}
            raise AgentRequestError(
                f"{method} {path} failed: {body.get('detail')}",
                status_code=response.status_code,
                code=body.get("code"),
            )
        return response.json()

    # ============================================
    # NODE
    # ============================================

    def health_check(self) -> bool:
        """
        Check if agent is healthy.

        Returns:
            True if healthy, False otherwise
        """
        try:
            response = requests.get(
                f"{self.base_url}/health",
                timeout=5
            )
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.error(f"Health check failed: {e}")
            return False

    # ============================================
    # APPS
    # ============================================

    def deploy_app(self, app_spec: Dict[str, Any]) -> DeploymentResult:
        """
        Deploy (or redeploy) an app.

        Args:
            app_spec: app_id, name, image, port and optional env/memory/cpus/health_check

        Raises:
            AgentRequestError / RuntimeError: If deployment fails
        """
        logger.info(f"[{app_spec.get('app_id')}] Deploying app to {self.base_url}")
        data = self._request("POST", "/apps/deploy", json=app_spec)
        logger.info(f"[{app_spec.get('app_id')}] ✅ App deployed: {data['container_id'][:12]}")

        return DeploymentResult(
            container_id=data['container_id'],
            container_name=data['container_name'],
            hostname=data.get('hostname'),
        )

    def get_app(self, app_id: str) -> Optional[Dict[str, Any]]:
        """Container snapshot, or None if the app has no container."""
        try:
            return self._request("GET", f"/apps/{app_id}", timeout=10)
        except AgentRequestError as e:
            if e.status_code == 404:
                return None
            raise

    def get_app_logs(self, app_id: str, lines: int = 100) -> str:
        return self._request("GET", f"/apps/{app_id}/logs", params={"lines": lines})["logs"]

    def get_app_stats(self, app_id: str) -> Optional[Dict[str, Any]]:
        return self._request("GET", f"/apps/{app_id}/stats", timeout=10)["stats"]

    def start_app(self, app_id: str) -> None:
        self._request("POST", f"/apps/{app_id}/start")

    def stop_app(self, app_id: str) -> None:
        self._request("POST", f"/apps/{app_id}/stop")

    def restart_app(self, app_id: str) -> None:
        self._request("POST", f"/apps/{app_id}/restart")

    def delete_app(self, app_id: str) -> bool:
        """True if a container was removed, False if there was none."""
        return self._request("DELETE", f"/apps/{app_id}")["existed"]

    # ============================================
    # DATABASES
    # ============================================

    def create_database(self, name: str, db_type: str, database: Optional[str] = None) -> Dict[str, Any]:
        """Provision an instance. The response carries the generated credentials."""
        payload = {"name": name, "type": db_type}
        if database:
            payload["database"] = database
        return self._request("POST", "/databases", json=payload)

    def get_database(self, instance_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._request("GET", f"/databases/{instance_id}", timeout=10)
        except AgentRequestError as e:
            if e.status_code == 404:
                return None
            raise

    def start_database(self, instance_id: str) -> None:
        self._request("POST", f"/databases/{instance_id}/start")

    def stop_database(self, instance_id: str) -> None:
        self._request("POST", f"/databases/{instance_id}/stop")

    def delete_database(self, instance_id: str) -> bool:
        return self._request("DELETE", f"/databases/{instance_id}")["existed"]

    # ============================================
    # FUNCTIONS
    # ============================================

    def invoke_function(
        self,
        function_id: str,
        runtime: str,
        payload: Any = None,
        timeout_ms: Optional[int] = None,
        **options
    ) -> Dict[str, Any]:
        """
        Run a function once and return its execution result.

        The HTTP timeout is stretched to cover the function's own timeout.
        """
        body = {"function_id": function_id, "runtime": runtime, "payload": payload, **options}
        if timeout_ms is not None:
            body["timeout_ms"] = timeout_ms

        http_timeout = self.timeout
        if timeout_ms:
            http_timeout = max(self.timeout, timeout_ms / 1000 + 10)

        return self._request("POST", "/functions/invoke", json=body, timeout=http_timeout)

    # ============================================
    # MAINTENANCE
    # ============================================

    def reap(self) -> int:
        return self._request("POST", "/maintenance/reap")["removed"]
