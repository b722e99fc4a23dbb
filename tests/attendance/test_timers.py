from datetime import datetime, timedelta, timezone

from time_attendance.attendance.model import AttendanceSession, BreakInterval
from time_attendance.attendance.timers import compute_timers
from time_attendance.core.enums import TrackingMethod

START = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def at(hours: float) -> datetime:
    return START + timedelta(hours=hours)


def make_session(*breaks: BreakInterval) -> AttendanceSession:
    return AttendanceSession(
        session_id="s1",
        user_id="u1",
        store_id="store-a",
        tracking_method=TrackingMethod.GPS,
        clock_in_at=START,
        breaks=tuple(breaks),
    )


def test_no_session_gives_zero_timers():
    timers = compute_timers(None, START)

    assert timers.elapsed_work_seconds == 0
    assert timers.break_seconds == 0
    assert not timers.needs_break
    assert not timers.is_overtime


def test_running_break_counts_as_break_time():
    session = make_session(BreakInterval(start=at(3)))

    timers = compute_timers(session, at(3.5))

    assert timers.break_seconds == 30 * 60
    assert timers.elapsed_work_seconds == 3 * 3600
    assert timers.shift_seconds == int(3.5 * 3600)


def test_needs_break_after_six_hours_of_work_without_break():
    session = make_session()

    assert not compute_timers(session, at(5.99)).needs_break
    assert compute_timers(session, at(6)).needs_break


def test_needs_break_clears_once_a_break_starts():
    session = make_session().with_break_started(at(6.5))

    assert not compute_timers(session, at(6.6)).needs_break


def test_overtime_counts_the_whole_shift_span():
    session = make_session(BreakInterval(start=at(3.5), end=at(3.75)))

    timers = compute_timers(session, START + timedelta(hours=8, minutes=10))

    assert timers.elapsed_work_seconds == 7 * 3600 + 55 * 60
    assert timers.is_overtime
    assert not timers.exceeds_max_session


def test_max_session_flag_after_twelve_hours():
    assert compute_timers(make_session(), at(12)).exceeds_max_session


def test_closed_session_stops_at_clock_out():
    session = make_session().closed_at(at(4), close_open_break=False)

    timers = compute_timers(session, at(10))

    assert timers.elapsed_work_seconds == 4 * 3600
    assert timers.to_dict()["elapsedTime"] == {"hours": 4, "minutes": 0, "seconds": 0, "totalSeconds": 14400}
