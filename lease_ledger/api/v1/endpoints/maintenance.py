"""Billing maintenance API endpoints: manual trigger and status."""

import logging

from fastapi import APIRouter, HTTPException, status

from lease_ledger.api.deps import MaintenanceRunner
from lease_ledger.core.exceptions import LockUnavailable, MaintenanceAlreadyRunning
from lease_ledger.jobs.scheduler import get_job_status, trigger_maintenance_now
from lease_ledger.schemas.maintenance import MaintenanceRunResponse, MaintenanceStatus

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Maintenance"])


@router.post(
    "/run",
    response_model=MaintenanceRunResponse,
    summary="Run billing maintenance now",
)
async def run_maintenance(runner: MaintenanceRunner):
    """Run all maintenance tasks once. 409 if a run is in progress, 503 if the lock is held elsewhere."""
    try:
        metrics = await trigger_maintenance_now(runner)
    except MaintenanceAlreadyRunning as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.user_message)
    except LockUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.user_message)

    if metrics.errors:
        message = f"Maintenance completed with {len(metrics.errors)} error(s)"
    else:
        message = "Maintenance completed"
    return MaintenanceRunResponse(success=not metrics.errors, message=message, metrics=metrics)


@router.get(
    "/status",
    response_model=MaintenanceStatus,
    summary="Scheduler and maintenance status",
)
async def maintenance_status(runner: MaintenanceRunner):
    return get_job_status(runner)
