from decimal import Decimal
from datetime import time

import pytest

from backend.app.core.exceptions import FatalConfigError, NotFoundError, ValidationError
from backend.app.db.base import Base
from backend.app.db.session import SessionLocal, engine
from backend.app.models.studio_setting import StudioSetting
from backend.app.services.policy_settings import DEFAULT_SETTINGS, PolicySettingsProvider


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def test_ensure_defaults_is_idempotent():
    with SessionLocal() as db:
        provider = PolicySettingsProvider(db)
        assert provider.ensure_defaults() == len(DEFAULT_SETTINGS)
        assert provider.ensure_defaults() == 0
        assert db.query(StudioSetting).count() == len(DEFAULT_SETTINGS)


def test_load_parses_typed_values():
    with SessionLocal() as db:
        provider = PolicySettingsProvider(db)
        provider.ensure_defaults()
        policy = provider.load()
        assert policy.business_hours_start == time(9, 0)
        assert policy.business_hours_end == time(18, 0)
        assert policy.cancellation_policy_hours == 24
        assert policy.max_reschedules_per_month == 2
        assert policy.price_for(60) == Decimal("95.00")
        assert policy.price_for(30) == Decimal("60.00")


def test_unsupported_duration_is_a_validation_error():
    with SessionLocal() as db:
        provider = PolicySettingsProvider(db)
        provider.ensure_defaults()
        with pytest.raises(ValidationError) as exc:
            provider.load().price_for(50)
        assert exc.value.code == "invalid_duration"


def test_missing_price_is_fatal():
    with SessionLocal() as db:
        provider = PolicySettingsProvider(db)
        provider.ensure_defaults()
        db.query(StudioSetting).filter(StudioSetting.key == "lesson_45_price").delete()
        db.commit()
        policy = provider.load()
        with pytest.raises(FatalConfigError) as exc:
            policy.price_for(45)
        assert exc.value.code == "price_not_configured"
        assert policy.price_for(60) == Decimal("95.00")


def test_invalid_stored_value_is_fatal():
    with SessionLocal() as db:
        provider = PolicySettingsProvider(db)
        provider.ensure_defaults()
        row = db.query(StudioSetting).filter(StudioSetting.key == "booking_advance_hours").one()
        row.value = "soon"
        db.commit()
        with pytest.raises(FatalConfigError):
            provider.load()


def test_update_validates_key_and_value():
    with SessionLocal() as db:
        provider = PolicySettingsProvider(db)
        provider.ensure_defaults()
        with pytest.raises(NotFoundError):
            provider.update("venmo_username", "studio")
        with pytest.raises(ValidationError):
            provider.update("lesson_60_price", "-5")
        row = provider.update("lesson_60_price", "100")
        assert row.value == "100"
        assert provider.load().price_for(60) == Decimal("100.00")
