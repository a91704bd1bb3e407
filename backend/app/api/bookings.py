"""Client booking routes."""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, status

from backend.app.dependencies.auth import get_current_user
from backend.app.dependencies.services import get_booking_service
from backend.app.models.user import User
from backend.app.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingEventRead,
    BookingRead,
    BookingReschedule,
    CancellationRead,
)
from backend.app.services.booking_service import BookingService
from backend.app.services.calendar.reconciler import push_booking_in_background
from backend.app.services.events import list_events_for_booking

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: BookingCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.create_booking(current_user, payload.start_time, payload.duration, payload.notes)
    background_tasks.add_task(push_booking_in_background, booking.id)
    return booking


@router.get("", response_model=List[BookingRead])
def list_my_bookings(
    status: str | None = None,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_for_client(current_user, status=status)


@router.get("/{booking_id}", response_model=BookingRead)
def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_for_actor(booking_id, current_user)


@router.put("/{booking_id}/reschedule", response_model=BookingRead)
def reschedule_booking(
    booking_id: int,
    payload: BookingReschedule,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.reschedule_booking(booking_id, current_user, payload.new_start, payload.notes)
    background_tasks.add_task(push_booking_in_background, booking.id)
    return booking


@router.post("/{booking_id}/cancel", response_model=CancellationRead)
def cancel_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    payload: BookingCancel | None = None,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    outcome = service.cancel_booking(booking_id, current_user, reason=payload.reason if payload else None)
    background_tasks.add_task(push_booking_in_background, booking_id)
    return {
        "booking": outcome.booking,
        "late_fee_charged": outcome.late_fee_charged,
        "fee_payment": outcome.fee_payment,
    }


@router.get("/{booking_id}/events", response_model=List[BookingEventRead])
def get_booking_events(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.get_for_actor(booking_id, current_user)
    return list_events_for_booking(service.db, booking.id)
