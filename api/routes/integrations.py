"""Integration endpoints.

Trigger syncs, read status and logs, and manage the circuit breaker and
retry jobs for each client.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.routes.deps import get_engine
from core.models.refs import (
    CircuitState,
    ClientConfig,
    IntegrationLogEntry,
    IntegrationStatus,
    RetryJob,
    StoredSale,
    SyncResult,
    SyncTask,
)
from sync_engine.service import IntegrationService


router = APIRouter()


class ClientConfigRequest(BaseModel):
    """Request to create or update a client's integration settings."""
    name: Optional[str] = None
    pos_type: str
    simulation_mode: bool = True
    sync_frequency_minutes: int = Field(default=60, ge=5, le=1440)
    active: bool = True
    pos_settings: Dict[str, Any] = Field(default_factory=dict)
    erp_settings: Dict[str, Any] = Field(default_factory=dict)


class ResetCircuitRequest(BaseModel):
    """Request to reset a client's circuit breaker."""
    reason: str = Field(default="Manual reset", min_length=1)


class CancelResult(BaseModel):
    cancelled: int


# =============================================================================
# Registry and clients
# =============================================================================

@router.get("/adapters")
async def list_adapters(engine: IntegrationService = Depends(get_engine)) -> List[Dict[str, Any]]:
    """List registered POS adapters and their features."""
    return engine.list_adapters()


@router.get("", response_model=List[ClientConfig])
async def list_clients(
    active_only: bool = False,
    engine: IntegrationService = Depends(get_engine),
) -> List[ClientConfig]:
    return engine.list_clients(active_only=active_only)


@router.put("/{client_id}", response_model=ClientConfig)
async def upsert_client(
    client_id: str,
    request: ClientConfigRequest,
    engine: IntegrationService = Depends(get_engine),
) -> ClientConfig:
    """Create or replace a client's integration configuration."""
    config = ClientConfig(client_id=client_id, **request.model_dump())
    return engine.register_client(config)


@router.get("/{client_id}", response_model=ClientConfig)
async def get_client(client_id: str, engine: IntegrationService = Depends(get_engine)) -> ClientConfig:
    return engine.get_client(client_id)


# =============================================================================
# Sync
# =============================================================================

@router.post("/{client_id}/sync", response_model=SyncResult)
async def trigger_sync(
    client_id: str,
    force: bool = Query(default=False, description="Run even if the circuit breaker is open"),
    engine: IntegrationService = Depends(get_engine),
) -> SyncResult:
    """Trigger a sync. Simulation clients finish before responding; production returns a task id."""
    return await engine.trigger_sync(client_id, force=force)


@router.get("/{client_id}/status", response_model=IntegrationStatus)
async def get_status(client_id: str, engine: IntegrationService = Depends(get_engine)) -> IntegrationStatus:
    return await engine.get_integration_status(client_id)


@router.get("/{client_id}/tasks", response_model=List[SyncTask])
async def get_tasks(client_id: str, engine: IntegrationService = Depends(get_engine)) -> List[SyncTask]:
    return await engine.get_tasks(client_id)


@router.get("/tasks/{task_id}", response_model=SyncTask)
async def get_task(task_id: str, engine: IntegrationService = Depends(get_engine)) -> SyncTask:
    task = await engine.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task '{task_id}' not found")
    return task


@router.get("/{client_id}/sales", response_model=List[StoredSale])
async def get_sales(
    client_id: str,
    limit: int = Query(default=50, ge=1, le=1000),
    engine: IntegrationService = Depends(get_engine),
) -> List[StoredSale]:
    return engine.get_sales(client_id, limit=limit)


# =============================================================================
# Logs and circuit breaker
# =============================================================================

@router.get("/{client_id}/logs", response_model=List[IntegrationLogEntry])
async def get_logs(
    client_id: str,
    limit: int = Query(default=50, ge=1, le=1000),
    engine: IntegrationService = Depends(get_engine),
) -> List[IntegrationLogEntry]:
    """Most recent log entries for a client, newest first."""
    return engine.get_logs(client_id, limit=limit)


@router.get("/{client_id}/logs/export")
async def export_logs(client_id: str, engine: IntegrationService = Depends(get_engine)) -> List[Dict[str, Any]]:
    """Every retained log entry for a client as JSON, oldest first."""
    return engine.export_logs(client_id)


@router.post("/{client_id}/circuit/reset", response_model=CircuitState)
async def reset_circuit(
    client_id: str,
    request: Optional[ResetCircuitRequest] = None,
    engine: IntegrationService = Depends(get_engine),
) -> CircuitState:
    reason = request.reason if request else "Manual reset"
    return engine.reset_circuit_breaker(client_id, reason)


# =============================================================================
# Retry jobs
# =============================================================================

@router.get("/{client_id}/retry-jobs", response_model=List[RetryJob])
async def get_retry_jobs(client_id: str, engine: IntegrationService = Depends(get_engine)) -> List[RetryJob]:
    return engine.get_retry_jobs(client_id)


@router.delete("/{client_id}/retry-jobs", response_model=CancelResult)
async def cancel_client_retries(client_id: str, engine: IntegrationService = Depends(get_engine)) -> CancelResult:
    return CancelResult(cancelled=engine.cancel_client_retries(client_id))


@router.delete("/retry-jobs/{job_id}", response_model=CancelResult)
async def cancel_retry_job(job_id: str, engine: IntegrationService = Depends(get_engine)) -> CancelResult:
    if not engine.cancel_retry_job(job_id):
        raise HTTPException(status_code=404, detail=f"Retry job '{job_id}' not found")
    return CancelResult(cancelled=1)
