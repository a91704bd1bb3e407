"""Admin view of external calendar sync."""

from typing import List

from fastapi import APIRouter, Depends, Query

from backend.app.dependencies.auth import get_current_admin
from backend.app.dependencies.services import get_reconciler
from backend.app.models.user import User
from backend.app.schemas.calendar import CalendarStatusRead, CalendarSyncToggle, SweepResultRead, SyncLogEntryRead
from backend.app.services.calendar.reconciler import CalendarReconciler
from backend.app.services.policy_settings import PolicySettingsProvider

router = APIRouter(prefix="/admin/calendar", tags=["admin-calendar"])


@router.get("/status", response_model=CalendarStatusRead)
def calendar_status(
    current_admin: User = Depends(get_current_admin),
    reconciler: CalendarReconciler = Depends(get_reconciler),
):
    return reconciler.status()


@router.get("/logs", response_model=List[SyncLogEntryRead])
def list_sync_logs(
    limit: int = Query(50, ge=1, le=500),
    current_admin: User = Depends(get_current_admin),
    reconciler: CalendarReconciler = Depends(get_reconciler),
):
    return reconciler.list_logs(limit=limit)


@router.post("/sync", response_model=SweepResultRead)
def trigger_sync(
    mode: str = Query("incremental", pattern="^(incremental|full)$"),
    current_admin: User = Depends(get_current_admin),
    reconciler: CalendarReconciler = Depends(get_reconciler),
):
    if mode == "full":
        return reconciler.full_sweep()
    return reconciler.incremental_sweep()


@router.post("/sync/toggle", response_model=CalendarStatusRead)
def toggle_sync(
    payload: CalendarSyncToggle,
    current_admin: User = Depends(get_current_admin),
    reconciler: CalendarReconciler = Depends(get_reconciler),
):
    PolicySettingsProvider(reconciler.db).set_calendar_sync(payload.enabled)
    return reconciler.status()
