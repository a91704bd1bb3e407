"""Make-up lesson requests and Saturday group sessions."""

from typing import List

from fastapi import APIRouter, Depends, status

from backend.app.dependencies.auth import get_current_admin, get_current_user
from backend.app.dependencies.services import get_makeup_service
from backend.app.models.user import User
from backend.app.schemas.makeup import (
    MakeupCreate,
    MakeupRead,
    MakeupSchedule,
    SaturdayJoin,
    SaturdaySessionCreate,
    SaturdaySessionRead,
)
from backend.app.services.makeup import MakeupService

router = APIRouter(prefix="/makeup", tags=["makeup"])


@router.post("", response_model=MakeupRead, status_code=status.HTTP_201_CREATED)
def request_makeup(
    payload: MakeupCreate,
    current_user: User = Depends(get_current_user),
    service: MakeupService = Depends(get_makeup_service),
):
    return service.request_makeup(current_user, payload.original_booking_id, payload.reason)


@router.get("", response_model=List[MakeupRead])
def list_my_makeups(
    current_user: User = Depends(get_current_user),
    service: MakeupService = Depends(get_makeup_service),
):
    return service.list_for_client(current_user)


@router.get("/all", response_model=List[MakeupRead])
def list_all_makeups(
    status: str | None = None,
    current_admin: User = Depends(get_current_admin),
    service: MakeupService = Depends(get_makeup_service),
):
    return service.list_all(status=status)


@router.get("/saturday-sessions", response_model=List[SaturdaySessionRead])
def list_saturday_sessions(
    current_user: User = Depends(get_current_user),
    service: MakeupService = Depends(get_makeup_service),
):
    return service.list_upcoming_sessions()


@router.post("/saturday-sessions", response_model=SaturdaySessionRead, status_code=status.HTTP_201_CREATED)
def create_saturday_session(
    payload: SaturdaySessionCreate,
    current_admin: User = Depends(get_current_admin),
    service: MakeupService = Depends(get_makeup_service),
):
    return service.create_session(payload.session_date, payload.start_time, payload.end_time, payload.max_students)


@router.post("/saturday-sessions/{session_id}/join", response_model=MakeupRead)
def join_saturday_session(
    session_id: int,
    payload: SaturdayJoin,
    current_user: User = Depends(get_current_user),
    service: MakeupService = Depends(get_makeup_service),
):
    return service.join_session(session_id, current_user, payload.makeup_lesson_id)


@router.put("/{makeup_id}/schedule", response_model=MakeupRead)
def schedule_makeup(
    makeup_id: int,
    payload: MakeupSchedule,
    current_admin: User = Depends(get_current_admin),
    service: MakeupService = Depends(get_makeup_service),
):
    return service.schedule(makeup_id, payload.makeup_date)


@router.put("/{makeup_id}/complete", response_model=MakeupRead)
def complete_makeup(
    makeup_id: int,
    current_admin: User = Depends(get_current_admin),
    service: MakeupService = Depends(get_makeup_service),
):
    return service.complete(makeup_id)


@router.put("/{makeup_id}/expire", response_model=MakeupRead)
def expire_makeup(
    makeup_id: int,
    current_admin: User = Depends(get_current_admin),
    service: MakeupService = Depends(get_makeup_service),
):
    return service.expire(makeup_id)
