from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import split_seconds
from ..core.constants import BREAK_REQUIRED_AFTER_SECONDS, MAX_SESSION_SECONDS, OVERTIME_AFTER_SECONDS
from .model import AttendanceSession


@dataclass(frozen=True)
class AttendanceTimers:
    """Derived, presentational values. Never persisted."""

    elapsed_work_seconds: int = 0
    break_seconds: int = 0
    shift_seconds: int = 0
    needs_break: bool = False
    is_overtime: bool = False
    exceeds_max_session: bool = False

    def to_dict(self) -> dict:
        return {
            "elapsedWorkSeconds": self.elapsed_work_seconds,
            "breakSeconds": self.break_seconds,
            "shiftSeconds": self.shift_seconds,
            "elapsedTime": split_seconds(self.elapsed_work_seconds),
            "breakTime": split_seconds(self.break_seconds),
            "needsBreak": self.needs_break,
            "isOvertime": self.is_overtime,
            "exceedsMaxSession": self.exceeds_max_session,
        }


def compute_timers(session: Optional[AttendanceSession], now: datetime) -> AttendanceTimers:
    """Recompute timers for ``session`` as of ``now`` (or its clock-out).

    Work time excludes breaks. Overtime is measured on the shift span
    (clock-in to now), so breaks neither pause nor delay it.
    """
    if session is None:
        return AttendanceTimers()

    end = session.clock_out_at or now
    shift_seconds = max(0, int((end - session.clock_in_at).total_seconds()))
    break_seconds = sum(b.seconds_until(end) for b in session.breaks)
    work_seconds = max(0, shift_seconds - break_seconds)

    return AttendanceTimers(
        elapsed_work_seconds=work_seconds,
        break_seconds=break_seconds,
        shift_seconds=shift_seconds,
        needs_break=work_seconds >= BREAK_REQUIRED_AFTER_SECONDS and not session.has_taken_break,
        is_overtime=shift_seconds >= OVERTIME_AFTER_SECONDS,
        exceeds_max_session=shift_seconds >= MAX_SESSION_SECONDS,
    )
