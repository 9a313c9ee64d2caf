"""
Sync Routes

Status of the background reconciler, and a trigger for an immediate cycle.
"""

from fastapi import APIRouter, Depends, Response, status
from typing import Annotated

from .models import (
    CycleReportModel,
    StoreStatsModel,
    SyncRunResponse,
    SyncStatusResponse,
)
from .dependencies import get_reconciler, get_store
from ..db.vector_store import VectorStore
from ..sync.reconciler import SyncReconciler

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get(
    "/status",
    response_model=SyncStatusResponse,
    summary="Reconciler state and store statistics",
)
async def sync_status(
    reconciler: Annotated[SyncReconciler, Depends(get_reconciler)],
    store: Annotated[VectorStore, Depends(get_store)],
) -> SyncStatusResponse:
    report = reconciler.last_report
    stats = await store.stats()

    return SyncStatusResponse(
        state=reconciler.state.value,
        running=reconciler.running,
        space_key=reconciler.space_key,
        interval_seconds=reconciler.interval_seconds,
        cycles_completed=reconciler.cycles_completed,
        last_report=CycleReportModel(**report.to_dict()) if report else None,
        store=StoreStatsModel(**stats),
    )


@router.post(
    "/run",
    response_model=SyncRunResponse,
    summary="Start a sync cycle now",
)
async def sync_run(
    response: Response,
    reconciler: Annotated[SyncReconciler, Depends(get_reconciler)],
) -> SyncRunResponse:
    """
    Wake the background loop, or run one cycle inline if the loop is not
    running (sync disabled).
    """
    if reconciler.running:
        reconciler.request_cycle()
        response.status_code = status.HTTP_202_ACCEPTED
        return SyncRunResponse(status="scheduled")

    report = await reconciler.run_cycle()
    return SyncRunResponse(
        status="completed",
        report=CycleReportModel(**report.to_dict()),
    )
