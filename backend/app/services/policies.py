"""Policy engine: pure predicates over plain values.

None of these functions touch the database or the clock; callers pass
``now`` and the relevant counts so that decisions are reproducible in tests.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from backend.app.core.time import from_storage

REFUNDABLE_REASONS = ("instructor_cancellation",)


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str = ""
    code: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = PolicyDecision(True)


def evaluate_cancellation(lesson_start: datetime, now: datetime, policy_hours: int) -> PolicyDecision:
    """Free cancellation when the lesson is at least ``policy_hours`` away (boundary inclusive)."""
    hours_until = (from_storage(lesson_start) - from_storage(now)) / timedelta(hours=1)
    if hours_until >= policy_hours:
        return ALLOW
    return PolicyDecision(
        False,
        f"Cancellations within {policy_hours} hours of the lesson are charged the full lesson price",
        "late_cancellation",
    )


def evaluate_reschedule(
    original_start: datetime,
    new_start: datetime,
    reschedules_in_month: int,
    max_per_month: int,
    tz: ZoneInfo,
) -> PolicyDecision:
    original_local = from_storage(original_start).astimezone(tz)
    new_local = from_storage(new_start).astimezone(tz)
    if (original_local.year, original_local.month) != (new_local.year, new_local.month):
        return PolicyDecision(False, "Lessons can only be rescheduled within the same month", "cross_month")
    if reschedules_in_month >= max_per_month:
        return PolicyDecision(
            False,
            f"Maximum {max_per_month} reschedules per month exceeded",
            "reschedule_limit",
        )
    return ALLOW


def evaluate_makeup(pending_count: int, max_pending: int) -> PolicyDecision:
    if pending_count >= max_pending:
        return PolicyDecision(False, f"Maximum {max_pending} pending make-up lessons allowed", "makeup_limit")
    return ALLOW


def evaluate_refund(reason: Optional[str]) -> PolicyDecision:
    if reason in REFUNDABLE_REASONS:
        return ALLOW
    return PolicyDecision(False, "Refunds are only issued when the instructor cancels", "refund_not_allowed")


def evaluate_blackout(day: date, blackouts: Iterable) -> PolicyDecision:
    for blackout in blackouts:
        if blackout.start_date <= day <= blackout.end_date:
            return PolicyDecision(False, blackout.reason, "blackout_date")
    return ALLOW
