from __future__ import annotations

import threading

import pytest

from time_attendance.attendance.service import AttendanceService
from time_attendance.core.exceptions import ConflictError, PreparationError, TransportError
from time_attendance.stores.model import Position
from time_attendance.stores.position import ReportedPositionSource
from time_attendance.strategies.base import DeviceCapabilities, StrategyContext
from time_attendance.strategies.devices import HeadlessDeviceBridge
from time_attendance.strategies.qr_tokens import QRTokenIssuer
from time_attendance.strategies.registry import StrategyRegistry

from fakes import BASE_LAT, BASE_LNG

FINGERPRINT = {
    "userAgent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/128.0",
    "platform": "Linux x86_64",
    "cookieEnabled": True,
    "protocol": "https",
}


def web_context(**kwargs) -> StrategyContext:
    return StrategyContext(user_id="u1", inputs={"fingerprint": FINGERPRINT}, **kwargs)


@pytest.fixture
def bridge():
    return HeadlessDeviceBridge()


@pytest.fixture
def service(gateway, directory, clock, bridge):
    issuer = QRTokenIssuer("service-secret", clock=clock)
    service = AttendanceService(
        gateway,
        directory,
        registry_factory=lambda: StrategyRegistry.default(bridge, issuer),
        tenant_id="t1",
        clock=clock,
    )
    yield service
    service.close()


@pytest.fixture
def ready(service):
    here = ReportedPositionSource(Position(lat=BASE_LAT, lng=BASE_LNG, accuracy_meters=10))
    service.resolve_stores("u1", here)
    service.select_method("u1", "web", web_context())
    return service


def test_clock_in_uses_resolved_store_and_method(ready, gateway):
    result = ready.clock_in("u1", web_context())

    assert result.session.store_id == "store-a"
    assert result.warnings == ()
    assert gateway.calls == ["clock_in"]


def test_second_break_request_while_first_runs_is_conflict(ready, gateway, clock):
    ready.clock_in("u1", web_context())
    clock.advance(hours=3)

    entered = threading.Event()
    release = threading.Event()
    original = gateway.start_break

    def slow_start_break(session_id, *, at):
        entered.set()
        release.wait(5)
        return original(session_id, at=at)

    gateway.start_break = slow_start_break
    results = {}
    worker = threading.Thread(target=lambda: results.setdefault("first", ready.start_break("u1")))
    worker.start()
    assert entered.wait(5)

    with pytest.raises(ConflictError):
        ready.start_break("u1")

    release.set()
    worker.join(5)

    assert results["first"].open_break is not None
    assert gateway.calls.count("start_break") == 1
    assert ready.status("u1")["state"] == "onBreak"


def test_pending_clock_in_is_rejected_not_retried(ready, gateway):
    entered = threading.Event()
    release = threading.Event()
    attempts = []

    def failing_clock_in(request):
        attempts.append(request)
        entered.set()
        release.wait(5)
        raise TransportError("Backend unreachable")

    gateway.clock_in = failing_clock_in
    errors = {}

    def first():
        try:
            ready.clock_in("u1", web_context())
        except TransportError as e:
            errors["first"] = e

    worker = threading.Thread(target=first)
    worker.start()
    assert entered.wait(5)

    with pytest.raises(ConflictError):
        ready.clock_in("u1", web_context())

    release.set()
    worker.join(5)

    assert len(attempts) == 1
    assert "first" in errors
    status = ready.status("u1")
    assert status["state"] == "error"
    assert status["session"] is None


def test_clock_out_resets_method_and_releases_desk(ready, clock):
    ready.clock_in("u1", web_context())
    desk = ready.desk("u1")
    clock.advance(hours=8)

    ready.clock_out("u1")

    status = ready.status("u1")
    assert status["state"] == "idle"
    assert status["selectedMethod"] is None
    assert status["canClockIn"] is False
    assert ready.desk("u1") is not desk
    assert desk.registry.selected is None


def test_failed_method_switch_clears_selection(ready, bridge):
    with pytest.raises(PreparationError):
        ready.select_method("u1", "qr", web_context(capabilities=DeviceCapabilities(camera=False)))

    status = ready.status("u1")
    assert status["selectedMethod"] is None
    assert status["canClockIn"] is False
    assert status["error"]["kind"] == "preparation"
    assert ready.desk("u1").registry.selected is None
    assert bridge.open_handles == []


def test_auto_select_without_any_method_clears_selection(ready):
    nothing = DeviceCapabilities(keyboard=False, web=False)

    assert ready.auto_select_method("u1", web_context(capabilities=nothing)) is None

    status = ready.status("u1")
    assert status["selectedMethod"] is None
    assert status["canClockIn"] is False


def test_close_releases_open_devices(service, bridge):
    service.select_method("u1", "badge", StrategyContext(user_id="u1"))
    assert bridge.open_handles == ["badge_reader"]

    service.close()

    assert bridge.open_handles == []
