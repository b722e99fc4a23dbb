from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

from ..common.datetime_utils import parse_iso_datetime, to_iso
from ..core.enums import TrackingMethod
from ..core.exceptions import StateError


@dataclass(frozen=True)
class GeoLocation:
    """Location snapshot taken at clock-in."""

    lat: float
    lng: float
    accuracy: float
    address: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"lat": self.lat, "lng": self.lng, "accuracy": self.accuracy}
        if self.address:
            data["address"] = self.address
        return data

    @classmethod
    def from_json(cls, data: Optional[Mapping[str, Any]]) -> Optional["GeoLocation"]:
        if not data:
            return None
        return cls(
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            accuracy=float(data.get("accuracy") or 0.0),
            address=data.get("address"),
        )


@dataclass(frozen=True)
class BreakInterval:
    start: datetime
    end: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def seconds_until(self, until: datetime) -> int:
        stop = self.end if self.end is not None and self.end < until else until
        return max(0, int((stop - self.start).total_seconds()))

    def to_dict(self) -> dict:
        return {"start": to_iso(self.start), "end": to_iso(self.end)}


@dataclass(frozen=True)
class AttendanceSession:
    """One open or closed work period of a user.

    Snapshots are immutable: every transition builds a new instance, so a
    reader holding a reference never observes a half-applied change.
    """

    session_id: Optional[str]
    user_id: str
    store_id: str
    tracking_method: TrackingMethod
    clock_in_at: datetime
    clock_out_at: Optional[datetime] = None
    breaks: Tuple[BreakInterval, ...] = ()
    geo_location: Optional[GeoLocation] = None
    tenant_id: Optional[str] = None
    was_override: bool = False
    override_reason: Optional[str] = None
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.clock_out_at is None

    @property
    def open_break(self) -> Optional[BreakInterval]:
        if self.breaks and self.breaks[-1].is_open:
            return self.breaks[-1]
        return None

    @property
    def has_taken_break(self) -> bool:
        return len(self.breaks) > 0

    def _require_open(self) -> None:
        if not self.is_open:
            raise StateError("Session is closed")

    def with_break_started(self, at: datetime) -> "AttendanceSession":
        self._require_open()
        if self.open_break is not None:
            raise StateError("Already on break")
        if at < self.clock_in_at:
            raise StateError("Break cannot start before clock-in")
        if self.breaks and at < self.breaks[-1].end:
            raise StateError("Break cannot overlap the previous one")
        return replace(self, breaks=self.breaks + (BreakInterval(start=at),))

    def with_break_ended(self, at: datetime) -> "AttendanceSession":
        self._require_open()
        current = self.open_break
        if current is None:
            raise StateError("No open break to end")
        if at <= current.start:
            raise StateError("Break must end after it started")
        return replace(self, breaks=self.breaks[:-1] + (replace(current, end=at),))

    def closed_at(self, at: datetime, *, close_open_break: bool) -> "AttendanceSession":
        self._require_open()
        if at <= self.clock_in_at:
            raise StateError("Clock-out must be after clock-in")

        session = self
        if self.open_break is not None:
            if not close_open_break:
                raise StateError("End the break before clocking out")
            session = self.with_break_ended(at)
        return replace(session, clock_out_at=at)

    def to_dict(self) -> dict:
        return {
            "id": self.session_id,
            "userId": self.user_id,
            "tenantId": self.tenant_id,
            "storeId": self.store_id,
            "trackingMethod": self.tracking_method.value,
            "clockIn": to_iso(self.clock_in_at),
            "clockOut": to_iso(self.clock_out_at),
            "breaks": [b.to_dict() for b in self.breaks],
            "geoLocation": self.geo_location.to_dict() if self.geo_location else None,
            "wasOverride": self.was_override,
            "overrideReason": self.override_reason,
            "notes": self.notes,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "AttendanceSession":
        breaks = tuple(
            BreakInterval(start=parse_iso_datetime(b["start"]), end=parse_iso_datetime(b.get("end")))
            for b in (data.get("breaks") or [])
        )
        return cls(
            session_id=str(data["id"]),
            user_id=str(data["userId"]),
            tenant_id=data.get("tenantId"),
            store_id=str(data["storeId"]),
            tracking_method=TrackingMethod(data["trackingMethod"]),
            clock_in_at=parse_iso_datetime(data["clockIn"]),
            clock_out_at=parse_iso_datetime(data.get("clockOut")),
            breaks=breaks,
            geo_location=GeoLocation.from_json(data.get("geoLocation")),
            was_override=bool(data.get("wasOverride", False)),
            override_reason=data.get("overrideReason"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class VerificationPayload:
    """Strategy-specific proof handed to clock-in."""

    method: TrackingMethod
    evidence: Mapping[str, Any]
    captured_at: datetime
    geo_location: Optional[GeoLocation] = None
    device_info: Mapping[str, Any] = field(default_factory=dict)

    def age_seconds(self, now: datetime) -> float:
        return (now - self.captured_at).total_seconds()


@dataclass(frozen=True)
class ClockInRequest:
    """Body of the backend clock-in call."""

    user_id: str
    store_id: str
    tracking_method: TrackingMethod
    clock_in_at: datetime
    evidence: Mapping[str, Any]
    device_info: Mapping[str, Any]
    geo_location: Optional[GeoLocation] = None
    tenant_id: Optional[str] = None
    was_override: bool = False
    override_reason: Optional[str] = None

    def to_json(self) -> dict:
        body = {
            "userId": self.user_id,
            "storeId": self.store_id,
            "trackingMethod": self.tracking_method.value,
            "clockIn": to_iso(self.clock_in_at),
            "deviceInfo": dict(self.device_info),
            "evidence": dict(self.evidence),
            "wasOverride": self.was_override,
        }
        if self.geo_location is not None:
            body["geoLocation"] = self.geo_location.to_dict()
        if self.override_reason:
            body["overrideReason"] = self.override_reason
        return body


@dataclass(frozen=True)
class ClockOutResult:
    session: AttendanceSession
    warnings: Tuple[str, ...] = ()
