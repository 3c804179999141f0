"""FastAPI health endpoints for process supervisors."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .models import FilterStatus, HealthStatus

if TYPE_CHECKING:
    from .host import FilterHost

ALIVE_STATUSES = (FilterStatus.STARTING, FilterStatus.RUNNING)


def _readiness(host: FilterHost) -> dict[str, Any]:
    # smtpd only sends mail to the filter once it has seen register|ready
    return {
        "ready": host.status == FilterStatus.RUNNING and host.registered,
        "registered": host.registered,
        "protocol_version": host.protocol_version,
        "active_sessions": host.active_sessions,
    }


def create_health_app(host: FilterHost) -> FastAPI:
    """Build the ``/health`` and ``/ready`` routes over a running :class:`FilterHost`.

    ``/health`` reports liveness together with the lookup counters.
    ``/ready`` only answers 200 after the protocol handshake with smtpd
    has completed and while the host is not shutting down.
    """
    app = FastAPI(title=f"{host.name} health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        body = HealthStatus(
            filter_name=host.name,
            version=host.version,
            status=host.status,
            uptime_seconds=time.monotonic() - host.start_time,
            active_sessions=host.active_sessions,
            stats=host.controller.stats,
            details={
                "directory_url": host.config.directory.url,
                "lookup_enabled": host.config.lookup_enabled,
                "registered": host.registered,
                "protocol_version": host.protocol_version,
            },
        )
        return JSONResponse(
            content=body.model_dump(mode="json"),
            status_code=200 if host.status in ALIVE_STATUSES else 503,
        )

    @app.get("/ready")
    async def ready() -> JSONResponse:
        body = _readiness(host)
        return JSONResponse(content=body, status_code=200 if body["ready"] else 503)

    return app
