from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from ..core.enums import TrackingMethod
from ..core.exceptions import PreparationError
from .base import DeviceCapabilities, StrategyContext, StrategyValidation, VerificationStrategy
from .devices import DeviceHandle

# Most specific first; the first match names the format.
BADGE_FORMATS: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("employee", re.compile(r"^(EMP|EID)[0-9]{4,8}$")),
    ("numeric", re.compile(r"^\d{4,16}$")),
    ("hex", re.compile(r"^[A-Fa-f0-9]{6,32}$")),
    ("alphanumeric", re.compile(r"^[A-Za-z0-9]{4,20}$")),
    ("generic", re.compile(r"^[A-Za-z0-9\-_]{4,32}$")),
)

WEAK_PATTERNS = ("1234", "0000", "ABCD", "TEST", "DEMO")
REPEATED_CHARS = re.compile(r"(.)\1{3,}")


@dataclass(frozen=True)
class BadgeAssessment:
    level: str
    warnings: Tuple[str, ...]
    flags: Tuple[str, ...]


def detect_badge_format(badge_id: str) -> Optional[str]:
    for name, pattern in BADGE_FORMATS:
        if pattern.match(badge_id):
            return name
    return None


def has_sequential_run(value: str) -> bool:
    """True for any ascending run of three characters (``123``, ``abc``)."""
    for a, b, c in zip(value, value[1:], value[2:]):
        if ord(b) == ord(a) + 1 and ord(c) == ord(b) + 1:
            return True
    return False


def assess_badge(badge_id: str) -> BadgeAssessment:
    warnings: List[str] = []
    flags: List[str] = []
    score = 0

    if REPEATED_CHARS.search(badge_id):
        warnings.append("Badge contains repeated characters")
        flags.append("repeated_chars")
    else:
        score += 1

    if has_sequential_run(badge_id):
        warnings.append("Badge contains sequential pattern")
        flags.append("sequential")
    else:
        score += 1

    if any(p in badge_id.upper() for p in WEAK_PATTERNS):
        warnings.append("Badge contains common weak pattern")
        flags.append("weak_pattern")
    else:
        score += 1

    if len(badge_id) >= 8:
        score += 1
    if re.search(r"[A-Za-z]", badge_id) and re.search(r"\d", badge_id):
        score += 1

    if score >= 4:
        level = "strong"
    elif score >= 2:
        level = "medium"
    else:
        level = "weak"
    return BadgeAssessment(level=level, warnings=tuple(warnings), flags=tuple(flags))


class BadgeStrategy(VerificationStrategy):
    """Badge id typed in or read by a keyboard-wedge scanner."""

    method = TrackingMethod.BADGE
    name = "Badge Reader"
    priority = 6

    def __init__(self, devices=None):
        super().__init__(devices)
        self._reader: Optional[DeviceHandle] = None

    def is_available(self, capabilities: DeviceCapabilities) -> bool:
        return capabilities.keyboard

    def _acquire(self, context: StrategyContext) -> Mapping[str, Any]:
        if self._devices is None:
            raise PreparationError("No badge reader attached")
        self._reader = self._devices.open_badge_reader()
        return {"supportedFormats": [name for name, _ in BADGE_FORMATS]}

    def _release(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None:
            reader.close()

    def validate(self, context: StrategyContext) -> StrategyValidation:
        badge_id = context.input("badgeId")
        if badge_id is None:
            return StrategyValidation.failed("No badge ID provided")

        badge_format = detect_badge_format(badge_id)
        if badge_format is None:
            return StrategyValidation.failed(f"Invalid badge format: {badge_id}")

        assessment = assess_badge(badge_id)
        return StrategyValidation.ok(
            {"format": badge_format, "validationLevel": assessment.level, "securityFlags": list(assessment.flags)},
            warnings=assessment.warnings,
        )

    def evidence(self, context: StrategyContext) -> Mapping[str, Any]:
        badge_id = context.input("badgeId")
        return {
            "badgeId": badge_id,
            "format": detect_badge_format(badge_id or ""),
            "validationLevel": assess_badge(badge_id or "").level,
        }
