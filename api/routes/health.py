"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from api.routes.deps import get_engine
from core import __version__
from sync_engine.service import IntegrationService


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]
    paused_clients: int = 0
    pending_retry_jobs: int = 0


@router.get("/health", response_model=HealthResponse)
async def health_check(engine: IntegrationService = Depends(get_engine)) -> HealthResponse:
    """Health check endpoint."""
    circuits = engine.integration_logger.get_all_circuit_states()
    paused = sum(1 for state in circuits.values() if state.is_paused)

    return HealthResponse(
        status="degraded" if paused else "healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        services={
            "api": "up",
            "storage": "up",
            "task_queue": engine.settings.task_queue_backend,
        },
        paused_clients=paused,
        pending_retry_jobs=len(engine.retry_queue.get_all_jobs()),
    )


@router.get("/ready")
async def readiness_check() -> Dict[str, str]:
    """Readiness probe for Kubernetes."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check(response: Response) -> Dict[str, str]:
    """Liveness probe for Kubernetes."""
    return {"status": "alive"}
