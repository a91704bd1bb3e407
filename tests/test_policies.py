from datetime import UTC, date, datetime, timedelta
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from backend.app.services.policies import (
    evaluate_blackout,
    evaluate_cancellation,
    evaluate_makeup,
    evaluate_refund,
    evaluate_reschedule,
)

PACIFIC = ZoneInfo("America/Los_Angeles")
LESSON = datetime(2025, 11, 10, 14, 0, tzinfo=PACIFIC)


def test_cancellation_exactly_at_boundary_is_free():
    now = LESSON - timedelta(hours=24)
    assert evaluate_cancellation(LESSON, now, 24).allowed


def test_cancellation_one_second_inside_window_is_late():
    now = LESSON - timedelta(hours=24) + timedelta(seconds=1)
    decision = evaluate_cancellation(LESSON, now, 24)
    assert not decision.allowed
    assert decision.code == "late_cancellation"


def test_cancellation_accepts_naive_stored_lesson_time():
    stored = datetime(2025, 11, 10, 22, 0)
    now = datetime(2025, 11, 8, 12, 0, tzinfo=UTC)
    assert evaluate_cancellation(stored, now, 24)


def test_reschedule_within_month_is_allowed():
    new_start = datetime(2025, 11, 12, 15, 0, tzinfo=PACIFIC)
    assert evaluate_reschedule(LESSON, new_start, 0, 2, PACIFIC).allowed


def test_reschedule_across_months_is_rejected():
    new_start = datetime(2025, 12, 1, 15, 0, tzinfo=PACIFIC)
    decision = evaluate_reschedule(LESSON, new_start, 0, 2, PACIFIC)
    assert not decision.allowed
    assert decision.code == "cross_month"


def test_reschedule_month_is_judged_in_studio_zone():
    # 2025-12-01 05:00 UTC is still November 30th in the studio
    original = datetime(2025, 11, 28, 14, 0, tzinfo=PACIFIC)
    new_start = datetime(2025, 12, 1, 5, 0, tzinfo=UTC)
    assert evaluate_reschedule(original, new_start, 0, 2, PACIFIC).allowed


def test_reschedule_limit_reached():
    new_start = datetime(2025, 11, 12, 15, 0, tzinfo=PACIFIC)
    decision = evaluate_reschedule(LESSON, new_start, 2, 2, PACIFIC)
    assert not decision.allowed
    assert decision.code == "reschedule_limit"


def test_makeup_cap():
    assert evaluate_makeup(1, 2).allowed
    decision = evaluate_makeup(2, 2)
    assert not decision
    assert decision.code == "makeup_limit"


def test_refund_only_for_instructor_cancellation():
    assert evaluate_refund("instructor_cancellation").allowed
    assert evaluate_refund("schedule_change").code == "refund_not_allowed"
    assert not evaluate_refund(None).allowed


def test_blackout_reports_its_reason():
    blackouts = [SimpleNamespace(start_date=date(2025, 11, 24), end_date=date(2025, 11, 29), reason="Thanksgiving Break")]
    decision = evaluate_blackout(date(2025, 11, 29), blackouts)
    assert not decision.allowed
    assert decision.reason == "Thanksgiving Break"
    assert decision.code == "blackout_date"
    assert evaluate_blackout(date(2025, 11, 30), blackouts).allowed
