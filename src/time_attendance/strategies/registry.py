from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..attendance.model import VerificationPayload
from ..core.constants import REQUIRED_GPS_ACCURACY_METERS
from ..core.enums import TrackingMethod
from ..core.exceptions import PreparationError, ValidationError, VerificationError
from .badge_strategy import BadgeStrategy
from .base import DeviceCapabilities, StrategyContext, StrategyValidation, VerificationStrategy
from .devices import DeviceBridge
from .gps_strategy import GPSStrategy
from .nfc_strategy import NFCStrategy
from .qr_strategy import QRStrategy
from .qr_tokens import QRTokenIssuer
from .smart_strategy import SmartStrategy
from .web_strategy import WebStrategy

logger = logging.getLogger(__name__)


class StrategyRegistry:
    """Registry of verification strategies keyed by tracking method.

    At most one strategy is selected at a time. Switching tears the previous
    one down before the next is prepared; a failed prepare tears the new one
    down again. ``close`` (or leaving a ``with`` block) releases everything.
    """

    def __init__(self, strategies: Iterable[VerificationStrategy]):
        self._strategies: Dict[TrackingMethod, VerificationStrategy] = {s.method: s for s in strategies}
        self._selected: Optional[VerificationStrategy] = None

    @classmethod
    def default(
        cls,
        devices: DeviceBridge,
        qr_issuer: QRTokenIssuer,
        *,
        required_gps_accuracy_meters: float = REQUIRED_GPS_ACCURACY_METERS,
    ) -> "StrategyRegistry":
        gps = GPSStrategy(devices, required_accuracy_meters=required_gps_accuracy_meters)
        nfc = NFCStrategy(devices)
        web = WebStrategy(devices)
        return cls(
            [
                gps,
                QRStrategy(devices, issuer=qr_issuer),
                nfc,
                web,
                SmartStrategy([nfc, gps, web]),
                BadgeStrategy(devices),
            ]
        )

    def get(self, method: TrackingMethod | str) -> VerificationStrategy:
        try:
            return self._strategies[TrackingMethod(method)]
        except (KeyError, ValueError):
            raise ValidationError(f"Unknown tracking method: {method}") from None

    def methods(self) -> List[TrackingMethod]:
        return sorted(self._strategies, key=lambda m: self._strategies[m].priority)

    def available(self, capabilities: DeviceCapabilities) -> List[VerificationStrategy]:
        found = [s for s in self._strategies.values() if s.is_available(capabilities)]
        return sorted(found, key=lambda s: s.priority)

    @property
    def selected(self) -> Optional[VerificationStrategy]:
        return self._selected

    @property
    def selected_method(self) -> Optional[TrackingMethod]:
        return self._selected.method if self._selected else None

    def _require_selected(self) -> VerificationStrategy:
        if self._selected is None:
            raise ValidationError("Select a tracking method first")
        return self._selected

    def select(self, method: TrackingMethod | str) -> VerificationStrategy:
        strategy = self.get(method)
        if strategy is self._selected:
            return strategy

        previous, self._selected = self._selected, None
        if previous is not None:
            previous.teardown()
            logger.info("Switched tracking method %s -> %s", previous.method.value, strategy.method.value)
        self._selected = strategy
        return strategy

    def prepare(self, context: StrategyContext) -> Mapping[str, Any]:
        strategy = self._require_selected()
        try:
            return strategy.prepare(context)
        except Exception:
            strategy.teardown()
            raise

    def activate(self, method: TrackingMethod | str, context: StrategyContext) -> Mapping[str, Any]:
        """Select ``method`` and prepare it in one step."""
        self.select(method)
        return self.prepare(context)

    def validate(self, context: StrategyContext) -> StrategyValidation:
        strategy = self._require_selected()
        if not strategy.is_prepared:
            raise PreparationError(f"{strategy.name} is not prepared")
        return strategy.validate(context)

    def build_payload(self, context: StrategyContext, *, captured_at: datetime) -> Tuple[VerificationPayload, StrategyValidation]:
        """Validate the selected strategy and turn its evidence into a payload."""
        strategy = self._require_selected()
        validation = self.validate(context)
        if not validation.is_valid:
            raise VerificationError(validation.error or f"{strategy.name} verification failed")

        base = VerificationPayload(
            method=strategy.method,
            evidence={},
            captured_at=captured_at,
            device_info=dict(context.device_info),
        )
        return self.augment_payload(base, context), validation

    def augment_payload(self, base: VerificationPayload, context: StrategyContext) -> VerificationPayload:
        strategy = self._require_selected()
        payload = strategy.augment_payload(base, context)
        if payload.method != strategy.method:
            raise VerificationError(f"{strategy.name} produced a {payload.method.value} payload")
        return payload

    def auto_select(self, context: StrategyContext) -> Optional[TrackingMethod]:
        """Activate the highest-priority concrete method that prepares and validates."""
        for strategy in self.available(context.capabilities):
            if strategy.method is TrackingMethod.SMART:
                continue
            try:
                self.activate(strategy.method, context)
            except PreparationError as e:
                logger.debug("Auto-select skipped %s: %s", strategy.method.value, e)
                continue
            if strategy.validate(context).is_valid:
                return strategy.method
        self.clear()
        return None

    def clear(self) -> None:
        selected, self._selected = self._selected, None
        if selected is not None:
            selected.teardown()

    def close(self) -> None:
        self._selected = None
        for strategy in self._strategies.values():
            strategy.teardown()

    def __enter__(self) -> "StrategyRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
