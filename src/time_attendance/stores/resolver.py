from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from ..common.datetime_utils import now_utc
from ..common.validators import require_non_empty
from ..core.constants import GEOFENCE_RADIUS_METERS, STORE_CACHE_MAX_AGE_SECONDS
from ..core.exceptions import PositionUnavailable, TransportError, ValidationError
from .model import Position, StoreCandidate, StoreOverride, StoreResolution
from .repository import PositionSource, StoreDirectory

logger = logging.getLogger(__name__)


class StoreResolver:
    """Resolve the user's current store from a device position.

    Candidates are ranked by great-circle distance; the nearest one inside
    the geofence is auto-selected. A manual override (with a mandatory
    reason) supersedes auto-selection and is the recovery path when no
    position is available.
    """

    def __init__(
        self,
        directory: StoreDirectory,
        *,
        geofence_radius_meters: float = GEOFENCE_RADIUS_METERS,
        cache_max_age_seconds: int = STORE_CACHE_MAX_AGE_SECONDS,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._directory = directory
        self._radius = float(geofence_radius_meters)
        self._cache_max_age = int(cache_max_age_seconds)
        self._clock = clock

        self._cache: Optional[Tuple[datetime, List[StoreCandidate]]] = None
        self._last: Optional[StoreResolution] = None
        self._override: Optional[StoreOverride] = None

    @property
    def last_resolution(self) -> Optional[StoreResolution]:
        return self._last

    @property
    def current_override(self) -> Optional[StoreOverride]:
        return self._override

    @property
    def selected(self) -> Optional[StoreCandidate]:
        if self._override is not None:
            return self._override.store
        if self._last is not None:
            return self._last.auto_selected
        return None

    def _fetch_directory(self) -> Tuple[List[StoreCandidate], bool]:
        try:
            stores = list(self._directory.list_stores())
        except TransportError:
            if self._cache is not None:
                fetched_at, cached = self._cache
                age = (self._clock() - fetched_at).total_seconds()
                if age < self._cache_max_age:
                    logger.warning("Store directory unreachable, using cache from %ss ago", int(age))
                    return list(cached), True
            raise

        stores = [replace(s, radius_meters=self._radius) for s in stores]
        self._cache = (self._clock(), stores)
        return stores, False

    def _rank(self, stores: Sequence[StoreCandidate], position: Optional[Position]) -> Tuple[List[StoreCandidate], Optional[StoreCandidate]]:
        if position is None:
            return [s.with_distance_from(None) for s in stores], None

        candidates = sorted((s.with_distance_from(position) for s in stores), key=lambda s: s.distance_meters)
        auto = next((c for c in candidates if c.in_geofence), None)
        return candidates, auto

    def resolve(self, position: Optional[Position]) -> StoreResolution:
        stores, from_cache = self._fetch_directory()
        candidates, auto = self._rank(stores, position)

        resolution = StoreResolution(
            candidates=tuple(candidates),
            auto_selected=auto,
            position=position,
            position_unavailable=position is None,
            from_cache=from_cache,
        )
        self._last = resolution

        if auto is not None:
            logger.info("Auto-selected store %s at %.0fm", auto.id, auto.distance_meters)
        else:
            logger.info("No store inside %.0fm geofence (%d candidates)", self._radius, len(candidates))
        return resolution

    def resolve_from(self, source: PositionSource) -> StoreResolution:
        try:
            position = source.current_position()
        except PositionUnavailable as e:
            logger.info("Position unavailable, manual selection required: %s", e)
            resolution = replace(self.resolve(None), position_error=str(e))
            self._last = resolution
            return resolution
        return self.resolve(position)

    def _find_store(self, store_id: str) -> StoreCandidate:
        if self._last is not None:
            for candidate in self._last.candidates:
                if candidate.id == store_id:
                    return candidate

        stores, _ = self._fetch_directory()
        for store in stores:
            if store.id == store_id:
                return store
        raise ValidationError(f"Unknown store: {store_id}")

    def override(self, store_id: str, reason: str) -> StoreOverride:
        reason = require_non_empty(reason, "Override reason")
        store_id = require_non_empty(store_id, "Store")

        store = self._find_store(store_id)
        self._override = StoreOverride(store=store, reason=reason, created_at=self._clock())
        logger.info("Manual store override to %s: %s", store.id, reason)
        return self._override

    def cancel_override(self) -> None:
        self._override = None
