"""FastAPI health endpoints for Kubernetes liveness and readiness probes."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .models import ConnectorStatus, HealthStatus

if TYPE_CHECKING:
    from .runner import CrawlRunner


def create_health_app(runner: CrawlRunner) -> FastAPI:
    """Build a minimal FastAPI app with ``/health`` and ``/ready`` routes.

    ``/health`` reports the runner status, the outcome of the last crawl
    cycle and whatever the connector's ``health_check()`` returns.
    """
    app = FastAPI(title=f"{runner.config.name} health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        details = dict(await runner.connector.health_check())
        details["last_cycle"] = (
            runner.last_cycle.model_dump() if runner.last_cycle is not None else None
        )
        details["last_cycle_at"] = (
            runner.last_cycle_at.isoformat() if runner.last_cycle_at is not None else None
        )
        status = HealthStatus(
            connector_name=runner.config.name,
            status=runner.status,
            uptime_seconds=time.monotonic() - runner.start_time,
            details=details,
        )
        code = 200 if runner.status in (ConnectorStatus.RUNNING, ConnectorStatus.STARTING) else 503
        return JSONResponse(content=status.model_dump(mode="json"), status_code=code)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        is_ready = runner.status == ConnectorStatus.RUNNING
        return JSONResponse(
            content={"ready": is_ready},
            status_code=200 if is_ready else 503,
        )

    return app
