"""Read-only business parameters backed by the ``settings`` table.

Every scheduling component takes a ``PolicySettings`` snapshot rather than
reading rows ad hoc, so a single operation sees one consistent view.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List

from sqlalchemy.orm import Session

from backend.app.core.exceptions import FatalConfigError, NotFoundError, ValidationError
from backend.app.core.time import parse_clock
from backend.app.models.studio_setting import StudioSetting

logger = logging.getLogger(__name__)

ALLOWED_DURATIONS = (30, 45, 60)

DEFAULT_SETTINGS: Dict[str, tuple[str, str]] = {
    "business_hours_start": ("09:00", "Business hours start time"),
    "business_hours_end": ("18:00", "Business hours end time"),
    "booking_advance_hours": ("24", "Minimum hours in advance for booking"),
    "lesson_30_price": ("60.00", "Price for 30-minute lesson"),
    "lesson_45_price": ("80.00", "Price for 45-minute lesson"),
    "lesson_60_price": ("95.00", "Price for 60-minute lesson"),
    "max_reschedules_per_month": ("2", "Maximum reschedules allowed per month"),
    "max_pending_makeups": ("2", "Maximum pending make-up lessons"),
    "cancellation_policy_hours": ("24", "Free cancellation window in hours"),
    "saturday_makeup_max_students": ("4", "Maximum students per Saturday makeup session"),
    "academic_year_start": ("2025-09-01", "Academic year start date"),
    "academic_year_end": ("2026-06-30", "Academic year end date"),
    "calendar_sync_enabled": ("true", "Push bookings to the external calendar"),
}


def price_key(duration: int) -> str:
    return f"lesson_{duration}_price"


def _parse_int(value: str) -> int:
    parsed = int(value)
    if parsed < 0:
        raise ValueError("must not be negative")
    return parsed


def _parse_price(value: str) -> Decimal:
    try:
        parsed = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError("not a decimal amount") from exc
    if parsed <= 0:
        raise ValueError("must be positive")
    return parsed.quantize(Decimal("0.01"))


def _parse_flag(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise ValueError("not a boolean flag")


_PARSERS: Dict[str, Callable[[str], object]] = {
    "business_hours_start": parse_clock,
    "business_hours_end": parse_clock,
    "booking_advance_hours": _parse_int,
    "max_reschedules_per_month": _parse_int,
    "max_pending_makeups": _parse_int,
    "cancellation_policy_hours": _parse_int,
    "saturday_makeup_max_students": _parse_int,
    "academic_year_start": date.fromisoformat,
    "academic_year_end": date.fromisoformat,
    "calendar_sync_enabled": _parse_flag,
}
for _duration in ALLOWED_DURATIONS:
    _PARSERS[price_key(_duration)] = _parse_price


@dataclass(frozen=True)
class PolicySettings:
    business_hours_start: time
    business_hours_end: time
    booking_advance_hours: int
    cancellation_policy_hours: int
    max_reschedules_per_month: int
    max_pending_makeups: int
    saturday_makeup_max_students: int
    academic_year_start: date
    academic_year_end: date
    prices: Dict[int, Decimal] = field(default_factory=dict)
    calendar_sync_enabled: bool = True

    def price_for(self, duration: int) -> Decimal:
        if duration not in ALLOWED_DURATIONS:
            raise ValidationError(
                f"Unsupported lesson duration {duration}. Allowed durations are 30, 45, or 60 minutes.",
                code="invalid_duration",
                details={"duration": duration, "allowed": list(ALLOWED_DURATIONS)},
            )
        price = self.prices.get(duration)
        if price is None:
            raise FatalConfigError(
                f"No price configured for {duration}-minute lessons",
                code="price_not_configured",
                details={"setting": price_key(duration)},
            )
        return price


class PolicySettingsProvider:
    """Loads and edits the settings table for one store session."""

    def __init__(self, db: Session):
        self.db = db

    def ensure_defaults(self) -> int:
        existing = {row.key for row in self.db.query(StudioSetting.key).all()}
        created = 0
        for key, (value, description) in DEFAULT_SETTINGS.items():
            if key in existing:
                continue
            self.db.add(StudioSetting(key=key, value=value, description=description))
            created += 1
        if created:
            self.db.commit()
            logger.info("Seeded %d default studio settings", created)
        return created

    def raw(self) -> Dict[str, str]:
        return {row.key: row.value for row in self.db.query(StudioSetting).all()}

    def load(self) -> PolicySettings:
        stored = self.raw()
        values: Dict[str, object] = {}
        for key, parser in _PARSERS.items():
            if key.startswith("lesson_"):
                continue
            raw_value = stored.get(key, DEFAULT_SETTINGS[key][0])
            try:
                values[key] = parser(raw_value)
            except ValueError as exc:
                raise FatalConfigError(
                    f"Setting {key} has an invalid value",
                    code="invalid_setting",
                    details={"setting": key, "value": raw_value},
                ) from exc

        # Prices come only from the table; a missing row means the duration cannot be sold
        prices: Dict[int, Decimal] = {}
        for duration in ALLOWED_DURATIONS:
            raw_price = stored.get(price_key(duration))
            if raw_price is None:
                continue
            try:
                prices[duration] = _parse_price(raw_price)
            except ValueError as exc:
                raise FatalConfigError(
                    f"Setting {price_key(duration)} has an invalid value",
                    code="invalid_setting",
                    details={"setting": price_key(duration), "value": raw_price},
                ) from exc

        if values["business_hours_end"] <= values["business_hours_start"]:
            raise FatalConfigError("Business hours end must be after start", code="invalid_setting")

        return PolicySettings(prices=prices, **values)

    def list_settings(self) -> List[StudioSetting]:
        return self.db.query(StudioSetting).order_by(StudioSetting.key.asc()).all()

    def update(self, key: str, value: str) -> StudioSetting:
        parser = _PARSERS.get(key)
        if parser is None:
            raise NotFoundError(f"Unknown setting {key}", code="unknown_setting")
        if value is None or not str(value).strip():
            raise ValidationError("Value is required", code="missing_value")
        try:
            parser(str(value).strip())
        except ValueError as exc:
            raise ValidationError(
                f"Invalid value for {key}", code="invalid_setting", details={"setting": key, "value": value}
            ) from exc

        row = self.db.query(StudioSetting).filter(StudioSetting.key == key).first()
        if row is None:
            row = StudioSetting(key=key, value=str(value).strip(), description=DEFAULT_SETTINGS[key][1])
            self.db.add(row)
        else:
            row.value = str(value).strip()
        self.db.commit()
        self.db.refresh(row)
        logger.info("Studio setting %s updated to %s", key, row.value)
        return row

    def calendar_sync_enabled(self) -> bool:
        row = self.db.query(StudioSetting).filter(StudioSetting.key == "calendar_sync_enabled").first()
        raw_value = row.value if row is not None else DEFAULT_SETTINGS["calendar_sync_enabled"][0]
        try:
            return _parse_flag(raw_value)
        except ValueError as exc:
            raise FatalConfigError(
                "Setting calendar_sync_enabled has an invalid value",
                code="invalid_setting",
                details={"setting": "calendar_sync_enabled", "value": raw_value},
            ) from exc

    def set_calendar_sync(self, enabled: bool) -> StudioSetting:
        return self.update("calendar_sync_enabled", "true" if enabled else "false")
