from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..attendance.model import VerificationPayload
from ..core.enums import TrackingMethod
from ..core.exceptions import PreparationError
from .base import DeviceCapabilities, StrategyContext, StrategyValidation, VerificationStrategy

logger = logging.getLogger(__name__)

DETECTION_ORDER = (TrackingMethod.NFC, TrackingMethod.GPS, TrackingMethod.WEB)
METHOD_BONUS = {TrackingMethod.NFC: 30, TrackingMethod.GPS: 20, TrackingMethod.WEB: 10}
BASE_CONFIDENCE = 50
FALLBACK_CONFIDENCE = 25


def calculate_confidence(method: TrackingMethod, prepare_metadata: Mapping[str, Any], validation: StrategyValidation) -> int:
    confidence = BASE_CONFIDENCE + METHOD_BONUS.get(method, 0)
    if validation.warnings:
        confidence -= 5 * len(validation.warnings)
    else:
        confidence += 15
    if prepare_metadata:
        confidence += 5
    return max(0, min(100, confidence))


@dataclass(frozen=True)
class Detection:
    method: Optional[TrackingMethod]
    confidence: int
    available: Tuple[TrackingMethod, ...]
    reasons: Tuple[str, ...]


class SmartStrategy(VerificationStrategy):
    """Pick the best verification method this device supports (NFC > GPS > Web).

    Candidates are tried in order; the first one that prepares and validates
    becomes the delegate and the others are torn down.
    """

    method = TrackingMethod.SMART
    name = "Smart Auto-Detect"
    priority = 5

    def __init__(self, candidates: Sequence[VerificationStrategy]):
        super().__init__(None)
        by_method = {c.method: c for c in candidates}
        self._candidates = [by_method[m] for m in DETECTION_ORDER if m in by_method]
        self._delegate: Optional[VerificationStrategy] = None
        self._detection: Optional[Detection] = None

    @property
    def delegate(self) -> Optional[VerificationStrategy]:
        return self._delegate

    @property
    def detection(self) -> Optional[Detection]:
        return self._detection

    def is_available(self, capabilities: DeviceCapabilities) -> bool:
        return any(c.is_available(capabilities) for c in self._candidates)

    def required_permissions(self) -> List[str]:
        permissions: List[str] = []
        for candidate in self._candidates:
            for permission in candidate.required_permissions():
                if permission not in permissions:
                    permissions.append(permission)
        return permissions

    def _detect(self, context: StrategyContext, candidates: Sequence[VerificationStrategy]) -> Detection:
        available: List[TrackingMethod] = []
        reasons: List[str] = []

        for candidate in candidates:
            label = candidate.method.value.upper()
            if not candidate.is_available(context.capabilities):
                reasons.append(f"{label}: Not available")
                continue
            available.append(candidate.method)

            try:
                prepared = candidate.prepare(context)
            except PreparationError as e:
                reasons.append(f"{label}: Preparation failed - {e}")
                candidate.teardown()
                continue

            validation = candidate.validate(context)
            if not validation.is_valid:
                reasons.append(f"{label}: Validation failed - {validation.error}")
                candidate.teardown()
                continue

            confidence = calculate_confidence(candidate.method, prepared, validation)
            reasons.append(f"{label}: Ready ({confidence}% confidence)")
            self._delegate = candidate
            return Detection(candidate.method, confidence, tuple(available), tuple(reasons))

        return Detection(None, 0, tuple(available), tuple(reasons))

    def _acquire(self, context: StrategyContext) -> Mapping[str, Any]:
        if context.selected_store is None:
            raise PreparationError("Store must be selected before smart detection")

        detection = self._detect(context, self._candidates)
        self._detection = detection
        if detection.method is None:
            raise PreparationError("No suitable strategy detected automatically")

        logger.info("Smart detection selected %s (%d%%)", detection.method.value, detection.confidence)
        return {
            "autoDetected": True,
            "selectedStrategy": detection.method.value,
            "confidence": detection.confidence,
            "availableStrategies": [m.value for m in detection.available],
            "detectionReasons": list(detection.reasons),
        }

    def _release(self) -> None:
        delegate, self._delegate = self._delegate, None
        self._detection = None
        if delegate is not None:
            delegate.teardown()

    def _fallback(self, context: StrategyContext, failed: VerificationStrategy) -> Optional[StrategyValidation]:
        remaining = self._candidates[self._candidates.index(failed) + 1:]
        failed.teardown()
        self._delegate = None

        detection = self._detect(context, remaining)
        if detection.method is None:
            return None

        self._detection = replace(detection, confidence=FALLBACK_CONFIDENCE)
        logger.info("Smart detection fell back to %s", detection.method.value)
        return self._delegate.validate(context)

    def _with_detection(self, validation: StrategyValidation) -> StrategyValidation:
        metadata = dict(validation.metadata)
        metadata.update(
            smartDetection=True,
            selectedStrategy=self._detection.method.value,
            confidence=self._detection.confidence,
            detectionReasons=list(self._detection.reasons),
        )
        return replace(validation, metadata=metadata)

    def validate(self, context: StrategyContext) -> StrategyValidation:
        if self._delegate is None or self._detection is None:
            return StrategyValidation.failed("No strategy selected through smart detection")

        delegate = self._delegate
        validation = delegate.validate(context)
        if not validation.is_valid:
            fallback = self._fallback(context, delegate)
            if fallback is None:
                return validation
            validation = fallback
        return self._with_detection(validation)

    def _require_delegate(self) -> VerificationStrategy:
        if self._delegate is None or self._detection is None:
            raise PreparationError("No strategy selected for smart delegation")
        return self._delegate

    def _smart_evidence(self) -> dict:
        return {
            "delegatedMethod": self._delegate.method.value,
            "confidence": self._detection.confidence,
            "detectionReasons": list(self._detection.reasons),
        }

    def evidence(self, context: StrategyContext) -> Mapping[str, Any]:
        evidence = dict(self._require_delegate().evidence(context))
        evidence.update(self._smart_evidence())
        return evidence

    def augment_payload(self, base: VerificationPayload, context: StrategyContext) -> VerificationPayload:
        payload = self._require_delegate().augment_payload(base, context)
        evidence = dict(payload.evidence)
        evidence.update(self._smart_evidence())
        return replace(payload, method=TrackingMethod.SMART, evidence=evidence)
