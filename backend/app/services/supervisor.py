"""Background supervisor for calendar sweeps and daily maintenance.

Each periodic task is an asyncio task that sleeps until its next run or
until its stop event is set. Jobs touch the database synchronously, so they
run in a worker thread with their own session.
"""

import asyncio
import logging
import os
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, List, Optional

from backend.app.core.settings import Settings, get_settings
from backend.app.core.time import to_local, utc_now
from backend.app.db.session import SessionLocal
from backend.app.services.billing import mark_overdue_cycles
from backend.app.services.calendar.integration import get_calendar_integration
from backend.app.services.calendar.reconciler import CalendarReconciler
from backend.app.services.makeup import MakeupService
from backend.app.services.policy_settings import PolicySettingsProvider
from backend.app.services.recurring import RecurringService

logger = logging.getLogger(__name__)


def every(minutes: float) -> Callable[[datetime], float]:
    def delay(now: datetime) -> float:
        return minutes * 60

    return delay


def daily_at(hour: int) -> Callable[[datetime], float]:
    """Seconds until the next ``hour``:00 in the studio zone."""

    def delay(now: datetime) -> float:
        local_now = to_local(now)
        target = local_now.replace(hour=hour, minute=0, second=0, microsecond=0)
        if target <= local_now:
            target = target + timedelta(days=1)
        # Subtract in UTC so a DST change overnight is accounted for
        return (target.astimezone(UTC) - now.astimezone(UTC)).total_seconds()

    return delay


class PeriodicTask:
    def __init__(self, name: str, job: Callable[[], Any], next_delay: Callable[[datetime], float]):
        self.name = name
        self.job = job
        self.next_delay = next_delay
        self.runs = 0
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self.name)

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.next_delay(utc_now()))
                break
            except asyncio.TimeoutError:
                pass
            try:
                await asyncio.to_thread(self.job)
            except Exception:
                logger.error("Background job %s failed", self.name, exc_info=True)
            self.runs += 1

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None


def run_incremental_sync() -> None:
    db = SessionLocal()
    try:
        CalendarReconciler(db, get_calendar_integration()).incremental_sweep()
    finally:
        db.close()


def run_full_sync() -> None:
    db = SessionLocal()
    try:
        reconciler = CalendarReconciler(
            db, get_calendar_integration(), delay_seconds=get_settings().full_sync_delay_seconds
        )
        reconciler.full_sweep()
    finally:
        db.close()


def run_maintenance() -> None:
    now = utc_now()
    db = SessionLocal()
    try:
        policy = PolicySettingsProvider(db).load()
        steps = (
            ("overdue billing", lambda: mark_overdue_cycles(db, to_local(now).date())),
            ("make-up expiry", lambda: MakeupService(db, policy).expire_stale()),
            (
                "recurring materialization",
                lambda: RecurringService(db, policy, get_calendar_integration()).materialize_all_active(now=now),
            ),
        )
        # One failing step must not starve the others
        for label, step in steps:
            try:
                step()
            except Exception:
                db.rollback()
                logger.error("Maintenance step %s failed", label, exc_info=True)
    finally:
        db.close()


def background_enabled(settings: Settings) -> bool:
    return settings.background_sync_enabled and not os.getenv("PYTEST_CURRENT_TEST")


class Supervisor:
    def __init__(self, tasks: List[PeriodicTask]):
        self.tasks = tasks

    @classmethod
    def default(cls, settings: Settings) -> "Supervisor":
        return cls(
            [
                PeriodicTask("calendar-incremental", run_incremental_sync, every(settings.incremental_sync_minutes)),
                PeriodicTask("calendar-full", run_full_sync, daily_at(settings.full_sync_hour)),
                PeriodicTask("maintenance", run_maintenance, daily_at(settings.maintenance_hour)),
            ]
        )

    def start(self) -> None:
        for task in self.tasks:
            task.start()
        logger.info("Supervisor started %d background tasks", len(self.tasks))

    async def stop(self) -> None:
        await asyncio.gather(*(task.stop() for task in self.tasks))
        logger.info("Supervisor stopped")
