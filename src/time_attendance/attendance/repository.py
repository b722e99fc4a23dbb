from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from .model import AttendanceSession, ClockInRequest


class AttendanceGateway(Protocol):
    """Backend contract for time tracking.

    Every write returns the session as persisted by the backend.
    """

    def clock_in(self, request: ClockInRequest) -> AttendanceSession:
        raise NotImplementedError

    def start_break(self, session_id: str, *, at: datetime) -> AttendanceSession:
        raise NotImplementedError

    def end_break(self, session_id: str, *, at: datetime) -> AttendanceSession:
        raise NotImplementedError

    def clock_out(self, session_id: str, *, at: datetime, close_open_break: bool = False) -> AttendanceSession:
        raise NotImplementedError

    def current_session(self, user_id: str) -> Optional[AttendanceSession]:
        raise NotImplementedError
