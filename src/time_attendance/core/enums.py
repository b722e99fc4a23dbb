from __future__ import annotations

from enum import Enum


class TrackingMethod(str, Enum):
    """Identity-verification method used for a clock-in."""

    GPS = "gps"
    NFC = "nfc"
    QR = "qr"
    BADGE = "badge"
    WEB = "web"
    SMART = "smart"


class AttendanceStateName(str, Enum):
    """Public name of the state machine's current state."""

    IDLE = "idle"
    ACTIVE = "active"
    ON_BREAK = "onBreak"
    ERROR = "error"


class ClockOutPolicy(str, Enum):
    """What clock-out does with a break that is still open."""

    AUTO_CLOSE_BREAK = "auto_close_break"
    REJECT = "reject"


class AttendanceAlert(str, Enum):
    BREAK_REQUIRED = "break_required"
    OVERTIME = "overtime"
    MAX_SESSION = "max_session"
