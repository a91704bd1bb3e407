import os
from datetime import date

from sqlalchemy.orm import Session

from backend.app.core.security import get_password_hash
from backend.app.models.blackout import BlackoutRange
from backend.app.models.user import User
from backend.app.services.policy_settings import PolicySettingsProvider


DEFAULT_DEV_PASSWORD = "Secret123!"
DEFAULT_DEV_ADMIN = "admin@studio.example.com"

# 2025-2026 academic year closures
DEFAULT_BLACKOUTS = [
    (date(2025, 9, 22), date(2025, 9, 22), "Rosh Hashanah", "After 5pm - Jewish holiday"),
    (date(2025, 10, 2), date(2025, 10, 2), "Yom Kippur", "Jewish holiday - full day"),
    (date(2025, 11, 24), date(2025, 11, 29), "Thanksgiving Break", "Thanksgiving week break"),
    (date(2025, 12, 19), date(2026, 1, 3), "Winter Break", "Winter holiday break"),
    (date(2026, 3, 15), date(2026, 3, 22), "Spring Break", "Spring break week"),
    (date(2026, 5, 26), date(2026, 5, 26), "Memorial Day", "Federal holiday"),
    (date(2026, 6, 7), date(2026, 6, 30), "Studio Closure", "End of academic year closure"),
]


def ensure_policy_defaults(db: Session) -> int:
    """Seed any missing policy rows. Runs in every environment, tests included."""
    return PolicySettingsProvider(db).ensure_defaults()


def ensure_default_dev_data(db: Session) -> None:
    """
    Create a default admin user and the academic-year blackout ranges for local development.
    Skips execution when running under pytest to avoid altering test expectations.
    """
    if os.getenv("PYTEST_CURRENT_TEST"):
        return

    created = False
    if not db.query(User).filter(User.email == DEFAULT_DEV_ADMIN).first():
        db.add(
            User(
                email=DEFAULT_DEV_ADMIN,
                hashed_password=get_password_hash(DEFAULT_DEV_PASSWORD),
                first_name="Studio",
                last_name="Admin",
                is_active=True,
                is_admin=True,
            )
        )
        created = True

    if not db.query(BlackoutRange).first():
        for start_date, end_date, reason, description in DEFAULT_BLACKOUTS:
            db.add(BlackoutRange(start_date=start_date, end_date=end_date, reason=reason, description=description))
        created = True

    if created:
        db.commit()
