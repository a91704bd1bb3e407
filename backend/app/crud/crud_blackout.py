"""CRUD operations for blackout ranges."""

from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from backend.app.models.blackout import BlackoutRange
from backend.app.schemas.blackout import BlackoutCreate


class CRUDBlackout:
    def create(self, db: Session, *, obj_in: BlackoutCreate) -> BlackoutRange:
        obj = BlackoutRange(**obj_in.model_dump())
        db.add(obj)
        db.commit()
        db.refresh(obj)
        return obj

    def get(self, db: Session, *, blackout_id: int) -> Optional[BlackoutRange]:
        return db.query(BlackoutRange).filter(BlackoutRange.id == blackout_id).first()

    def get_multi(self, db: Session, *, include_inactive: bool = False) -> List[BlackoutRange]:
        query = db.query(BlackoutRange)
        if not include_inactive:
            query = query.filter(BlackoutRange.is_active.is_(True))
        return query.order_by(BlackoutRange.start_date.asc(), BlackoutRange.id.asc()).all()

    def active_between(self, db: Session, *, start: date, end: date) -> List[BlackoutRange]:
        """Active ranges overlapping the inclusive ``start``..``end`` window."""
        return (
            db.query(BlackoutRange)
            .filter(
                BlackoutRange.is_active.is_(True),
                BlackoutRange.start_date <= end,
                BlackoutRange.end_date >= start,
            )
            .order_by(BlackoutRange.start_date.asc())
            .all()
        )

    def upcoming(self, db: Session, *, today: date) -> List[BlackoutRange]:
        return (
            db.query(BlackoutRange)
            .filter(BlackoutRange.is_active.is_(True), BlackoutRange.end_date >= today)
            .order_by(BlackoutRange.start_date.asc())
            .all()
        )

    def deactivate(self, db: Session, *, db_obj: BlackoutRange) -> BlackoutRange:
        db_obj.is_active = False
        db.commit()
        db.refresh(db_obj)
        return db_obj


blackout_crud = CRUDBlackout()
