# runtime_agent/server.py
"""
Runtime Agent - Runs on compute nodes.
Exposes app, database and function workloads of this node over HTTP.

Owner IDs arrive in the X-Owner-Id header and are trusted as-is; the
calling service has already authenticated the user.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from workload_engine.container import Components
from workload_engine.core.errors import (
    ConfigurationError,
    EngineUnavailable,
    ResourceExhausted,
    ResourceNotFound,
    WorkloadError,
)
from workload_engine.core.models import FunctionSpec, Outcome, ResourceKind
from workload_engine.core.naming import container_name
from workload_engine.engine.client import check_engine_health, engine_info
from workload_engine.services.apps import AppDeployRequest, AppHealthCheck

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ConfigurationError: 400,
    ResourceNotFound: 404,
    ResourceExhausted: 409,
    EngineUnavailable: 503,
}


def status_for(error: WorkloadError) -> int:
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


# ============================================
# REQUEST/RESPONSE MODELS
# ============================================

class HealthCheckSpec(BaseModel):
    """HTTP probe run inside the app container."""
    path: str = "/"
    interval: int = Field(default=30, ge=1, description="Seconds between probes")
    timeout: int = Field(default=5, ge=1, description="Probe timeout in seconds")


class AppDeployBody(BaseModel):
    """Deploy app request."""
    app_id: str
    name: str = Field(..., description="Subdomain under the apps base domain")
    image: str = Field(..., description="Docker image (e.g., 'nginx:alpine')")
    port: int = Field(..., ge=1, le=65535)
    env: Dict[str, str] = Field(default_factory=dict)
    memory: Optional[str] = Field(default=None, description="e.g. '256m', '1g'")
    cpus: Optional[str] = Field(default=None, description="Core count, e.g. '0.5'")
    health_check: Optional[HealthCheckSpec] = None


class DeployResponse(BaseModel):
    container_id: str
    container_name: str
    hostname: Optional[str] = None


class DatabaseCreateBody(BaseModel):
    """Provision database request."""
    name: str
    type: str = Field(..., description="postgres, mysql, redis or mongodb")
    database: Optional[str] = None


class InvokeBody(BaseModel):
    """Invoke function request."""
    function_id: str
    runtime: str
    payload: Any = None
    handler: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    memory_mb: Optional[int] = None
    timeout_ms: Optional[int] = None


class ReapResponse(BaseModel):
    removed: int


# ============================================
# APP FACTORY
# ============================================

def create_app(components: Components) -> FastAPI:
    """Build the agent around already-wired components."""
    app = FastAPI(
        title="Runtime Agent",
        description="Container workload agent for apps, databases and functions",
        version="2.0.0"
    )
    app.state.components = components

    @app.exception_handler(WorkloadError)
    async def workload_error_handler(request: Request, exc: WorkloadError):
        status = status_for(exc)
        if status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status, content={"detail": str(exc), "code": exc.code})

    def outcome_or_404(outcome: Outcome) -> Dict[str, Any]:
        if not outcome.ok:
            raise HTTPException(status_code=404, detail=outcome.message)
        return {"status": "ok"}

    # -------------------------
    # NODE
    # -------------------------

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        if not check_engine_health(components.client):
            raise HTTPException(status_code=503, detail="Docker not available")
        return {"status": "healthy", "docker_connected": True}

    @app.get("/info")
    def get_node_info():
        info = engine_info(components.client)
        if info is None:
            raise HTTPException(status_code=503, detail="Docker not available")
        return info

    # -------------------------
    # APPS
    # -------------------------

    @app.post("/apps/deploy", response_model=DeployResponse)
    def deploy_app(body: AppDeployBody, x_owner_id: str = Header(default="")):
        request = AppDeployRequest(
            owner_id=x_owner_id,
            app_id=body.app_id,
            name=body.name,
            image=body.image,
            port=body.port,
            env=body.env,
            memory=body.memory,
            cpus=body.cpus,
            health_check=AppHealthCheck(
                path=body.health_check.path,
                interval_seconds=body.health_check.interval,
                timeout_seconds=body.health_check.timeout,
            ) if body.health_check else None,
        )
        container_id = components.apps.deploy(request)
        return DeployResponse(
            container_id=container_id,
            container_name=container_name(ResourceKind.APP, body.app_id),
            hostname=components.apps.hostname(body.name),
        )

    @app.get("/apps/{app_id}")
    def get_app(app_id: str, x_owner_id: str = Header(default="")):
        snapshot = components.apps.get(x_owner_id, app_id)
        if snapshot is None:
            raise HTTPException(status_code=404, detail=f"App {app_id} not found")
        return snapshot.to_dict()

    @app.get("/apps/{app_id}/logs")
    def get_app_logs(app_id: str, lines: int = Query(default=100, ge=1, le=10000), x_owner_id: str = Header(default="")):
        return {"logs": components.apps.logs(x_owner_id, app_id, tail=lines)}

    @app.get("/apps/{app_id}/stats")
    def get_app_stats(app_id: str, x_owner_id: str = Header(default="")):
        stats = components.apps.stats(x_owner_id, app_id)
        return {"stats": stats.to_dict() if stats else None}

    @app.post("/apps/{app_id}/start")
    def start_app(app_id: str, x_owner_id: str = Header(default="")):
        return outcome_or_404(components.apps.start(x_owner_id, app_id))

    @app.post("/apps/{app_id}/stop")
    def stop_app(app_id: str, x_owner_id: str = Header(default="")):
        return outcome_or_404(components.apps.stop(x_owner_id, app_id))

    @app.post("/apps/{app_id}/restart")
    def restart_app(app_id: str, x_owner_id: str = Header(default="")):
        return outcome_or_404(components.apps.restart(x_owner_id, app_id))

    @app.delete("/apps/{app_id}")
    def delete_app(app_id: str, x_owner_id: str = Header(default="")):
        existed = components.apps.delete(x_owner_id, app_id)
        return {"status": "removed", "existed": existed}

    # -------------------------
    # DATABASES
    # -------------------------

    @app.post("/databases", status_code=201)
    def create_database(body: DatabaseCreateBody, x_owner_id: str = Header(default="")):
        instance = components.databases.provision(x_owner_id, body.name, body.type, body.database)
        return instance.to_dict()

    @app.get("/databases/{instance_id}")
    def get_database(instance_id: str, x_owner_id: str = Header(default="")):
        snapshot = components.databases.get(x_owner_id, instance_id)
        if snapshot is None:
            raise HTTPException(status_code=404, detail=f"Database instance {instance_id} not found")
        return snapshot.to_dict()

    @app.get("/databases/{instance_id}/logs")
    def get_database_logs(instance_id: str, lines: int = Query(default=100, ge=1, le=10000), x_owner_id: str = Header(default="")):
        return {"logs": components.databases.logs(x_owner_id, instance_id, tail=lines)}

    @app.get("/databases/{instance_id}/stats")
    def get_database_stats(instance_id: str, x_owner_id: str = Header(default="")):
        stats = components.databases.stats(x_owner_id, instance_id)
        return {"stats": stats.to_dict() if stats else None}

    @app.post("/databases/{instance_id}/start")
    def start_database(instance_id: str, x_owner_id: str = Header(default="")):
        return outcome_or_404(components.databases.start(x_owner_id, instance_id))

    @app.post("/databases/{instance_id}/stop")
    def stop_database(instance_id: str, x_owner_id: str = Header(default="")):
        return outcome_or_404(components.databases.stop(x_owner_id, instance_id))

    @app.delete("/databases/{instance_id}")
    def delete_database(instance_id: str, x_owner_id: str = Header(default="")):
        existed = components.databases.delete(x_owner_id, instance_id)
        return {"status": "removed", "existed": existed}

    # -------------------------
    # FUNCTIONS
    # -------------------------

    @app.post("/functions/invoke")
    def invoke_function(body: InvokeBody, x_owner_id: str = Header(default="")):
        spec = FunctionSpec(
            function_id=body.function_id,
            runtime=body.runtime,
            payload=body.payload,
            handler=body.handler,
            env=body.env,
            memory_mb=body.memory_mb,
            timeout_ms=body.timeout_ms,
            owner_id=x_owner_id,
        )
        # Timeouts and failed handlers are results, so this is always 200
        return components.executor.execute(spec).to_dict()

    # -------------------------
    # MAINTENANCE
    # -------------------------

    @app.post("/maintenance/reap", response_model=ReapResponse)
    def reap():
        return ReapResponse(removed=components.reaper.sweep())

    return app


def main():
    import uvicorn

    from workload_engine.container import build_components

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    components = build_components()
    settings = components.settings

    logger.info("🚀 Starting Runtime Agent...")
    logger.info(f"📍 Listening on {settings.agent_host}:{settings.agent_port}")

    uvicorn.run(
        create_app(components),
        host=settings.agent_host,
        port=settings.agent_port,
        log_level="info"
    )


if __name__ == "__main__":
    main()
