"""Admin management of blackout ranges."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from backend.app.crud.crud_blackout import blackout_crud
from backend.app.db.session import get_db
from backend.app.dependencies.auth import get_current_admin
from backend.app.models.user import User
from backend.app.schemas.blackout import BlackoutCreate, BlackoutRead

router = APIRouter(prefix="/admin/blackouts", tags=["admin-blackouts"])


@router.post("", response_model=BlackoutRead, status_code=status.HTTP_201_CREATED)
def create_blackout(
    payload: BlackoutCreate,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return blackout_crud.create(db, obj_in=payload)


@router.get("", response_model=List[BlackoutRead])
def list_blackouts(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return blackout_crud.get_multi(db, include_inactive=include_inactive)


@router.post("/{blackout_id}/deactivate", response_model=BlackoutRead)
def deactivate_blackout(
    blackout_id: int,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    blackout = blackout_crud.get(db, blackout_id=blackout_id)
    if not blackout:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blackout range not found")
    return blackout_crud.deactivate(db, db_obj=blackout)
