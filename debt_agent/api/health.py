"""
Health and scheduler status endpoints.
"""
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from debt_agent.core.dependencies import ServiceContainer, get_container
from debt_agent.services.message_channel import WhatsAppGatewayChannel

router = APIRouter()

_started_at = time.monotonic()


class HealthResponse(BaseModel):
    status: str
    service_name: str
    version: str
    uptime_seconds: float
    timestamp: datetime


@router.get("/health", response_model=HealthResponse)
async def health_check(container: ServiceContainer = Depends(get_container)) -> HealthResponse:
    """Liveness check."""
    return HealthResponse(
        status="healthy",
        service_name=container.settings.service_name,
        version=container.settings.service_version,
        uptime_seconds=round(time.monotonic() - _started_at, 2),
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/health/dependencies")
async def dependencies_health(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    """Message channel reachability and circuit breaker state."""
    channel = container.channel
    if isinstance(channel, WhatsAppGatewayChannel):
        gateway_healthy = await channel.health_check()
        channel_status = channel.get_status()
    else:
        gateway_healthy = True
        channel_status = {}

    return {
        "message_channel": gateway_healthy,
        "message_channel_circuit": channel_status,
        "text_intelligence": type(container.intelligence).__name__,
        "overall_status": "healthy" if gateway_healthy else "degraded",
    }


@router.get("/scheduler/status")
async def scheduler_status(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
    return container.scheduler.get_status()
