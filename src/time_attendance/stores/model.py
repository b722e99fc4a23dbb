from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import to_iso
from ..common.geo import calculate_distance
from ..core.constants import GEOFENCE_RADIUS_METERS


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class Position:
    """A device position fix."""

    lat: float
    lng: float
    accuracy_meters: float = 0.0
    captured_at: Optional[datetime] = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


@dataclass(frozen=True)
class StoreCandidate:
    """A physical location eligible for clock-in.

    ``distance_meters`` is None until a device position is known.
    """

    id: str
    name: str
    address: Optional[str]
    coordinates: Coordinates
    distance_meters: Optional[float] = None
    radius_meters: float = GEOFENCE_RADIUS_METERS

    @property
    def in_geofence(self) -> bool:
        return self.distance_meters is not None and self.distance_meters <= self.radius_meters

    def with_distance_from(self, position: Optional[Position]) -> "StoreCandidate":
        if position is None:
            return replace(self, distance_meters=None)
        distance = calculate_distance(position.lat, position.lng, self.coordinates.lat, self.coordinates.lng)
        return replace(self, distance_meters=distance)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "latitude": self.coordinates.lat,
            "longitude": self.coordinates.lng,
            "distanceMeters": None if self.distance_meters is None else round(self.distance_meters, 2),
            "radiusMeters": self.radius_meters,
            "inGeofence": self.in_geofence,
        }


@dataclass(frozen=True)
class StoreOverride:
    """Manual store selection that supersedes auto-selection."""

    store: StoreCandidate
    reason: str
    created_at: datetime


@dataclass(frozen=True)
class StoreResolution:
    candidates: Sequence[StoreCandidate]
    auto_selected: Optional[StoreCandidate]
    position: Optional[Position] = None
    position_unavailable: bool = False
    position_error: Optional[str] = None
    from_cache: bool = False

    @property
    def requires_manual_selection(self) -> bool:
        return self.auto_selected is None

    def to_dict(self) -> dict:
        return {
            "candidates": [c.to_dict() for c in self.candidates],
            "autoSelected": self.auto_selected.to_dict() if self.auto_selected else None,
            "positionUnavailable": self.position_unavailable,
            "positionError": self.position_error,
            "requiresManualSelection": self.requires_manual_selection,
            "fromCache": self.from_cache,
            "position": None
            if self.position is None
            else {
                "lat": self.position.lat,
                "lng": self.position.lng,
                "accuracy": self.position.accuracy_meters,
                "capturedAt": to_iso(self.position.captured_at),
            },
        }
