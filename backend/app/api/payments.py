"""Payment records for lessons."""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, status

from backend.app.dependencies.auth import get_current_admin, get_current_user
from backend.app.dependencies.services import get_payment_service
from backend.app.models.user import User
from backend.app.schemas.payment import PaymentComplete, PaymentCreate, PaymentRead, RefundRequest
from backend.app.services.calendar.reconciler import push_booking_in_background
from backend.app.services.payments import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def create_payment(
    payload: PaymentCreate,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_payment(current_user, payload.booking_id, payload.method, payload.reference)


@router.get("", response_model=List[PaymentRead])
def list_my_payments(
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.list_for_client(current_user)


@router.get("/{payment_id}", response_model=PaymentRead)
def get_payment(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.get_for_actor(payment_id, current_user)


@router.put("/{payment_id}/complete", response_model=PaymentRead)
def complete_payment(
    payment_id: int,
    payload: PaymentComplete | None = None,
    current_admin: User = Depends(get_current_admin),
    service: PaymentService = Depends(get_payment_service),
):
    return service.complete_payment(payment_id, reference=payload.reference if payload else None)


@router.put("/{payment_id}/fail", response_model=PaymentRead)
def fail_payment(
    payment_id: int,
    background_tasks: BackgroundTasks,
    current_admin: User = Depends(get_current_admin),
    service: PaymentService = Depends(get_payment_service),
):
    payment = service.fail_payment(payment_id)
    background_tasks.add_task(push_booking_in_background, payment.booking_id)
    return payment


@router.post("/{payment_id}/refund", response_model=PaymentRead)
def refund_payment(
    payment_id: int,
    payload: RefundRequest,
    current_admin: User = Depends(get_current_admin),
    service: PaymentService = Depends(get_payment_service),
):
    return service.refund_payment(payment_id, payload.reason)
