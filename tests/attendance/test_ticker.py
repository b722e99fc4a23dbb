import threading
from datetime import timedelta

from time_attendance.attendance.machine import AttendanceStateMachine
from time_attendance.attendance.model import VerificationPayload
from time_attendance.attendance.ticker import AttendanceTicker
from time_attendance.core.enums import AttendanceAlert, TrackingMethod


def clocked_in_machine(gateway, clock, store):
    machine = AttendanceStateMachine("u1", gateway, clock=clock)
    machine.select_store(store)
    machine.select_method(TrackingMethod.WEB)
    machine.clock_in(VerificationPayload(method=TrackingMethod.WEB, evidence={}, captured_at=clock()))
    return machine


def test_tick_raises_each_alert_once(gateway, clock, store_a):
    machine = clocked_in_machine(gateway, clock, store_a)
    alerts = []
    ticker = AttendanceTicker(machine, on_alert=lambda alert, timers: alerts.append(alert))

    ticker.tick(clock() + timedelta(hours=5))
    assert alerts == []

    ticker.tick(clock() + timedelta(hours=6))
    ticker.tick(clock() + timedelta(hours=6, seconds=1))
    assert alerts == [AttendanceAlert.BREAK_REQUIRED]

    ticker.tick(clock() + timedelta(hours=8))
    ticker.tick(clock() + timedelta(hours=12))
    assert alerts == [AttendanceAlert.BREAK_REQUIRED, AttendanceAlert.OVERTIME, AttendanceAlert.MAX_SESSION]
    assert ticker.last_timers.exceeds_max_session


def test_ticker_thread_ticks_until_stopped(gateway, clock, store_a):
    machine = clocked_in_machine(gateway, clock, store_a)
    ticked = threading.Event()
    ticker = AttendanceTicker(machine, interval_seconds=0.01, on_tick=lambda timers: ticked.set())

    with ticker:
        assert ticked.wait(2)
        assert ticker.is_running

    assert not ticker.is_running


def test_machine_starts_and_stops_real_ticker(gateway, clock, store_a):
    machine = AttendanceStateMachine(
        "u1",
        gateway,
        clock=clock,
        ticker_factory=lambda m: AttendanceTicker(m, interval_seconds=0.01),
    )
    machine.select_store(store_a)
    machine.select_method(TrackingMethod.WEB)
    machine.clock_in(VerificationPayload(method=TrackingMethod.WEB, evidence={}, captured_at=clock()))
    ticker = machine._ticker
    assert ticker.is_running

    machine.close()

    assert not ticker.is_running
