from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Optional, Set

from ..core.constants import TICK_INTERVAL_SECONDS
from ..core.enums import AttendanceAlert
from .timers import AttendanceTimers

logger = logging.getLogger(__name__)


class AttendanceTicker:
    """Recompute a machine's timers once per interval on a background thread.

    Each alert fires at most once per ticker. The machine starts a ticker on
    clock-in and stops it on clock-out or close.
    """

    def __init__(
        self,
        machine,
        *,
        interval_seconds: float = TICK_INTERVAL_SECONDS,
        on_tick: Optional[Callable[[AttendanceTimers], None]] = None,
        on_alert: Optional[Callable[[AttendanceAlert, AttendanceTimers], None]] = None,
    ):
        self._machine = machine
        self._interval = float(interval_seconds)
        self._on_tick = on_tick
        self._on_alert = on_alert

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._alerted: Set[AttendanceAlert] = set()
        self.last_timers: Optional[AttendanceTimers] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def alerts_sent(self) -> Set[AttendanceAlert]:
        return set(self._alerted)

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"attendance-ticker-{self._machine.user_id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout if timeout is not None else self._interval * 2)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self.tick()
            except Exception:
                # Listener failures are logged and the loop keeps running.
                logger.exception("Attendance tick failed for user %s", self._machine.user_id)

    def tick(self, now: Optional[datetime] = None) -> AttendanceTimers:
        timers = self._machine.timers(now)
        self.last_timers = timers

        for alert, raised in (
            (AttendanceAlert.BREAK_REQUIRED, timers.needs_break),
            (AttendanceAlert.OVERTIME, timers.is_overtime),
            (AttendanceAlert.MAX_SESSION, timers.exceeds_max_session),
        ):
            if raised and alert not in self._alerted:
                self._alerted.add(alert)
                logger.info("User %s: %s", self._machine.user_id, alert.value)
                if self._on_alert is not None:
                    self._on_alert(alert, timers)

        if self._on_tick is not None:
            self._on_tick(timers)
        return timers

    def __enter__(self) -> "AttendanceTicker":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
