"""Reminder sweep trigger.

Routes:
    POST   /api/v1/sweeps - Run one pickup-reminder / auto-close sweep

Meant for an external scheduler. Overlapping or too-frequent calls come back
with ``skipped: true`` instead of running twice.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from fulfillment_orchestrator.api.deps import get_reminder_scheduler
from fulfillment_orchestrator.schemas.orders import SweepResponse
from fulfillment_orchestrator.services.reminder_scheduler import ReminderScheduler

router = APIRouter(prefix="/api/v1/sweeps", tags=["Sweeps"])


@router.post("", response_model=SweepResponse, summary="Run a reminder sweep")
async def run_sweep(
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
) -> SweepResponse:
    result = await scheduler.sweep()
    return SweepResponse(
        closed=result.closed,
        reminded=result.reminded,
        failed=result.failed,
        skipped=result.skipped,
        reason=result.reason,
    )
