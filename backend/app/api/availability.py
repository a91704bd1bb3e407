"""Public availability lookups."""

from datetime import date

from fastapi import APIRouter, Depends, Query

from backend.app.dependencies.services import get_availability_resolver
from backend.app.schemas.availability import AvailabilityRead
from backend.app.services.availability import AvailabilityResolver

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("/{day}", response_model=AvailabilityRead)
def get_availability(
    day: date,
    duration: int = Query(60),
    resolver: AvailabilityResolver = Depends(get_availability_resolver),
):
    return {"date": day, "duration": duration, "slots": resolver.resolve(day, duration)}


@router.get("/{day}/open", response_model=AvailabilityRead)
def get_open_slots(
    day: date,
    duration: int = Query(60),
    resolver: AvailabilityResolver = Depends(get_availability_resolver),
):
    slots = [slot for slot in resolver.resolve(day, duration) if slot.available]
    return {"date": day, "duration": duration, "slots": slots}
