from __future__ import annotations

from dataclasses import replace
from typing import Any, List, Mapping, Optional

from ..attendance.model import GeoLocation, VerificationPayload
from ..common.geo import format_distance
from ..core.constants import REQUIRED_GPS_ACCURACY_METERS
from ..core.enums import TrackingMethod
from ..core.exceptions import PositionUnavailable, PreparationError
from ..stores.model import Position
from ..stores.repository import PositionWatch
from .base import DeviceCapabilities, StrategyContext, StrategyValidation, VerificationStrategy


class GPSStrategy(VerificationStrategy):
    """Geofence validation with a minimum location accuracy."""

    method = TrackingMethod.GPS
    name = "GPS Location"
    priority = 1

    def __init__(self, devices=None, *, required_accuracy_meters: float = REQUIRED_GPS_ACCURACY_METERS):
        super().__init__(devices)
        self._required_accuracy = float(required_accuracy_meters)
        self._watch: Optional[PositionWatch] = None

    def required_permissions(self) -> List[str]:
        return ["geolocation"]

    def is_available(self, capabilities: DeviceCapabilities) -> bool:
        return capabilities.geolocation

    def _acquire(self, context: StrategyContext) -> Mapping[str, Any]:
        if context.position_source is None:
            raise PreparationError("Location permission denied")
        self._watch = context.position_source.watch()
        latest = self._watch.latest()
        return {"watching": True, "accuracy": latest.accuracy_meters if latest else None}

    def _release(self) -> None:
        watch, self._watch = self._watch, None
        if watch is not None:
            watch.stop()

    def _position(self, context: StrategyContext) -> Position:
        if context.position_source is not None:
            return context.position_source.current_position()
        latest = self._watch.latest() if self._watch is not None else None
        if latest is None:
            raise PositionUnavailable("Unable to determine current location")
        return latest

    def validate(self, context: StrategyContext) -> StrategyValidation:
        store = context.selected_store
        if store is None:
            return StrategyValidation.failed("No store selected for geofence validation")

        try:
            position = self._position(context)
        except PositionUnavailable as e:
            return StrategyValidation.failed(str(e) or "Unable to determine current location")

        if position.accuracy_meters > self._required_accuracy:
            return StrategyValidation.failed(
                f"GPS accuracy too low: {position.accuracy_meters:.0f}m (required: <{self._required_accuracy:.0f}m)"
            )

        located = store.with_distance_from(position)
        metadata = {
            "distanceMeters": round(located.distance_meters, 2),
            "accuracy": position.accuracy_meters,
            "withinGeofence": located.in_geofence,
            "storeId": store.id,
        }
        if not located.in_geofence:
            metadata["requiresOverride"] = True
            return StrategyValidation.ok(
                metadata,
                warnings=(f"Outside geofence: {format_distance(located.distance_meters)} from {store.name}",),
            )
        return StrategyValidation.ok(metadata)

    def evidence(self, context: StrategyContext) -> Mapping[str, Any]:
        position = self._position(context)
        evidence = {"lat": position.lat, "lng": position.lng, "accuracy": position.accuracy_meters}
        if context.selected_store is not None:
            located = context.selected_store.with_distance_from(position)
            evidence.update(
                storeId=located.id,
                distanceMeters=round(located.distance_meters, 2),
                withinGeofence=located.in_geofence,
            )
        return evidence

    def augment_payload(self, base: VerificationPayload, context: StrategyContext) -> VerificationPayload:
        payload = super().augment_payload(base, context)
        evidence = payload.evidence
        geo = GeoLocation(lat=evidence["lat"], lng=evidence["lng"], accuracy=evidence["accuracy"])
        return replace(payload, geo_location=geo)
