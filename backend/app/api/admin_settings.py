"""Admin access to studio policy settings."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.db.session import get_db
from backend.app.dependencies.auth import get_current_admin
from backend.app.models.user import User
from backend.app.schemas.settings import SettingRead, SettingUpdate
from backend.app.services.policy_settings import PolicySettingsProvider

router = APIRouter(prefix="/admin/settings", tags=["admin-settings"])


@router.get("", response_model=List[SettingRead])
def list_settings(db: Session = Depends(get_db), current_admin: User = Depends(get_current_admin)):
    return PolicySettingsProvider(db).list_settings()


@router.put("/{key}", response_model=SettingRead)
def update_setting(
    key: str,
    payload: SettingUpdate,
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return PolicySettingsProvider(db).update(key, payload.value)
