from __future__ import annotations

import logging
from typing import Optional

from ..common.validators import require_coordinate
from ..core.exceptions import PositionUnavailable
from .model import Position
from .repository import PositionSource, PositionWatch

logger = logging.getLogger(__name__)


class ReportedPositionWatch(PositionWatch):
    def __init__(self, source: "ReportedPositionSource"):
        self._source = source
        self.stopped = False

    def latest(self) -> Optional[Position]:
        if self.stopped:
            return None
        return self._source.position

    def stop(self) -> None:
        self.stopped = True


class ReportedPositionSource(PositionSource):
    """Position reported by the client device along with the request.

    ``error`` carries the device-side reason when no fix could be taken
    (e.g. "Location permission denied", "Location request timeout").
    """

    def __init__(self, position: Optional[Position] = None, *, error: Optional[str] = None):
        self.position = position
        self.error = error

    @classmethod
    def from_json(cls, data: Optional[dict], *, now=None) -> "ReportedPositionSource":
        data = data or {}
        if data.get("error"):
            return cls(error=str(data["error"]))
        if data.get("lat") is None or data.get("lng") is None:
            return cls(error="Location unavailable")
        return cls(
            Position(
                lat=require_coordinate(data["lat"], "Latitude", limit=90),
                lng=require_coordinate(data["lng"], "Longitude", limit=180),
                accuracy_meters=float(data.get("accuracy") or 0.0),
                captured_at=now,
            )
        )

    def current_position(self) -> Position:
        if self.position is None:
            raise PositionUnavailable(self.error or "Location unavailable")
        return self.position

    def watch(self) -> PositionWatch:
        logger.debug("Position watch started")
        return ReportedPositionWatch(self)
