"""Recurring lesson commitments, their billing cycles, and the public blackout calendar."""

from datetime import date
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from backend.app.core.time import to_local, utc_now
from backend.app.crud.crud_blackout import blackout_crud
from backend.app.db.session import get_db
from backend.app.dependencies.auth import get_current_admin, get_current_user
from backend.app.dependencies.services import get_recurring_service
from backend.app.models.user import User
from backend.app.schemas.billing import BillingCyclePaid, BillingCycleRead
from backend.app.schemas.blackout import BlackoutRead
from backend.app.schemas.recurring import MaterializeRead, RecurringCreate, RecurringRead, RecurringUpdate
from backend.app.services import billing
from backend.app.services.calendar.reconciler import push_booking_in_background
from backend.app.services.recurring import RecurringService

router = APIRouter(prefix="/recurring", tags=["recurring"])


@router.post("", response_model=RecurringRead, status_code=status.HTTP_201_CREATED)
def create_recurring(
    payload: RecurringCreate,
    current_user: User = Depends(get_current_user),
    service: RecurringService = Depends(get_recurring_service),
):
    return service.create_commitment(
        current_user,
        duration=payload.duration,
        day_of_week=payload.day_of_week,
        lesson_time=payload.time,
        frequency=payload.frequency,
        start_date=payload.start_date,
        lesson_type=payload.lesson_type,
        end_date=payload.end_date,
    )


@router.get("", response_model=List[RecurringRead])
def list_my_recurring(
    current_user: User = Depends(get_current_user),
    service: RecurringService = Depends(get_recurring_service),
):
    return service.list_for_client(current_user)


@router.get("/all", response_model=List[RecurringRead])
def list_all_recurring(
    status: str | None = None,
    current_admin: User = Depends(get_current_admin),
    service: RecurringService = Depends(get_recurring_service),
):
    return service.list_all(status=status)


@router.get("/billing", response_model=List[BillingCycleRead])
def list_my_billing(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return billing.list_cycles_for_user(db, current_user.id)


@router.post("/billing/{cycle_id}/paid", response_model=BillingCycleRead)
def mark_billing_paid(
    cycle_id: int,
    payload: BillingCyclePaid,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    today = to_local(utc_now()).date()
    return billing.mark_cycle_paid(db, cycle_id, payload.payment_method, payload.payment_reference, today)


@router.get("/blackout-dates", response_model=List[BlackoutRead])
def list_blackout_dates(db: Session = Depends(get_db)):
    return blackout_crud.upcoming(db, today=to_local(utc_now()).date())


@router.put("/{commitment_id}", response_model=RecurringRead)
def update_recurring(
    commitment_id: int,
    payload: RecurringUpdate,
    current_user: User = Depends(get_current_user),
    service: RecurringService = Depends(get_recurring_service),
):
    return service.update_commitment(
        commitment_id,
        current_user,
        day_of_week=payload.day_of_week,
        lesson_time=payload.time,
        frequency=payload.frequency,
    )


@router.get("/{commitment_id}/billing", response_model=List[BillingCycleRead])
def list_commitment_billing(
    commitment_id: int,
    current_user: User = Depends(get_current_user),
    service: RecurringService = Depends(get_recurring_service),
):
    commitment = service.get_for_actor(commitment_id, current_user)
    return billing.list_cycles_for_commitment(service.db, commitment.id)


@router.post("/{commitment_id}/pause", response_model=RecurringRead)
def pause_recurring(
    commitment_id: int,
    current_admin: User = Depends(get_current_admin),
    service: RecurringService = Depends(get_recurring_service),
):
    return service.pause(commitment_id, current_admin)


@router.post("/{commitment_id}/resume", response_model=RecurringRead)
def resume_recurring(
    commitment_id: int,
    current_admin: User = Depends(get_current_admin),
    service: RecurringService = Depends(get_recurring_service),
):
    return service.resume(commitment_id, current_admin)


@router.post("/{commitment_id}/cancel", response_model=RecurringRead)
def cancel_recurring(
    commitment_id: int,
    current_user: User = Depends(get_current_user),
    service: RecurringService = Depends(get_recurring_service),
):
    return service.cancel(commitment_id, current_user)


@router.post("/{commitment_id}/materialize", response_model=MaterializeRead)
def materialize_recurring(
    commitment_id: int,
    background_tasks: BackgroundTasks,
    through: date | None = None,
    current_admin: User = Depends(get_current_admin),
    service: RecurringService = Depends(get_recurring_service),
):
    result = service.materialize_occurrences(commitment_id, through=through)
    for booking in result.created:
        background_tasks.add_task(push_booking_in_background, booking.id)
    return {
        "created": result.created,
        "skipped": [{"date": day, "code": code} for day, code in result.skipped],
    }
