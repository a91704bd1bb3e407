"""Admin routes for the booking ledger and payment signals."""

from datetime import datetime
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends

from backend.app.core.time import to_storage
from backend.app.dependencies.auth import get_current_admin
from backend.app.dependencies.services import get_booking_service
from backend.app.models.user import User
from backend.app.schemas.booking import BookingEventRead, BookingRead, BookingStatusUpdate
from backend.app.services.booking_service import BookingService
from backend.app.services.calendar.reconciler import push_booking_in_background
from backend.app.services.events import list_events_since

router = APIRouter(prefix="/admin", tags=["admin-bookings"])


@router.get("/bookings", response_model=List[BookingRead])
def list_bookings(
    start: datetime | None = None,
    end: datetime | None = None,
    status: str | None = None,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_range(start=start, end=end, status=status)


@router.put("/bookings/{booking_id}/status", response_model=BookingRead)
def set_booking_status(
    booking_id: int,
    payload: BookingStatusUpdate,
    background_tasks: BackgroundTasks,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.set_status(booking_id, payload.status, payload.reason)
    background_tasks.add_task(push_booking_in_background, booking.id)
    return booking


@router.post("/bookings/{booking_id}/complete", response_model=BookingRead)
def complete_booking(
    booking_id: int,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.complete_booking(booking_id)


@router.post("/bookings/{booking_id}/payment-success", response_model=BookingRead)
def payment_success(
    booking_id: int,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return service.confirm_payment_success(booking_id)


@router.post("/bookings/{booking_id}/payment-failure", response_model=BookingRead)
def payment_failure(
    booking_id: int,
    background_tasks: BackgroundTasks,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.confirm_payment_failure(booking_id)
    background_tasks.add_task(push_booking_in_background, booking.id)
    return booking


@router.get("/events", response_model=List[BookingEventRead])
def list_events(
    since: datetime | None = None,
    limit: int = 200,
    current_admin: User = Depends(get_current_admin),
    service: BookingService = Depends(get_booking_service),
):
    return list_events_since(service.db, to_storage(since) if since else None, limit=limit)
