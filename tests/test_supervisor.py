import asyncio
from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo

import pytest

from backend.app.core.settings import get_settings
from backend.app.db.base import Base
from backend.app.db.session import SessionLocal, engine
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.user import User
from backend.app.services.policy_settings import PolicySettingsProvider
from backend.app.services.recurring import RecurringService
from backend.app.services.supervisor import (
    PeriodicTask,
    Supervisor,
    background_enabled,
    daily_at,
    every,
    run_maintenance,
)

PACIFIC = ZoneInfo("America/Los_Angeles")


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        PolicySettingsProvider(db).ensure_defaults()
    yield
    Base.metadata.drop_all(bind=engine)


def test_every_is_a_fixed_interval():
    assert every(15)(datetime(2025, 11, 10, 0, 0, tzinfo=UTC)) == 900


def test_daily_at_targets_next_local_hour():
    assert daily_at(2)(datetime(2025, 11, 10, 1, 0, tzinfo=PACIFIC)) == 3600
    assert daily_at(2)(datetime(2025, 11, 10, 3, 0, tzinfo=PACIFIC)) == 23 * 3600


def test_daily_at_accounts_for_dst_change():
    # Clocks fall back overnight, so the next 02:00 is a full 24 hours away
    assert daily_at(2)(datetime(2025, 11, 1, 3, 0, tzinfo=PACIFIC)) == 24 * 3600


def test_background_disabled_under_pytest():
    assert background_enabled(get_settings()) is False


def test_periodic_task_runs_until_stopped():
    calls = []

    async def scenario():
        task = PeriodicTask("tick", lambda: calls.append(1), lambda now: 0.01)
        task.start()
        await asyncio.sleep(0.2)
        assert task.running
        await task.stop()
        return task

    task = asyncio.run(scenario())
    assert task.runs >= 1
    assert not task.running
    assert len(calls) == task.runs


def test_failing_job_does_not_stop_the_loop():
    def boom():
        raise RuntimeError("job failed")

    async def scenario():
        task = PeriodicTask("boom", boom, lambda now: 0.01)
        task.start()
        await asyncio.sleep(0.2)
        await task.stop()
        return task

    assert asyncio.run(scenario()).runs >= 2


def test_default_supervisor_has_three_tasks():
    supervisor = Supervisor.default(get_settings())
    assert [task.name for task in supervisor.tasks] == ["calendar-incremental", "calendar-full", "maintenance"]


def test_maintenance_marks_past_cycles_overdue():
    with SessionLocal() as db:
        client = User(email="client@example.com", hashed_password="x")
        db.add(client)
        db.commit()
        RecurringService(db, PolicySettingsProvider(db).load()).create_commitment(
            client, 60, 0, time(15, 0), "weekly", date(2025, 11, 3), end_date=date(2025, 12, 31)
        )

    run_maintenance()

    with SessionLocal() as db:
        statuses = {cycle.status for cycle in db.query(BillingCycle).all()}
    assert statuses == {"overdue"}
