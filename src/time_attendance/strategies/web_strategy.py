from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from ..core.enums import TrackingMethod
from .base import DeviceCapabilities, StrategyContext, StrategyValidation, VerificationStrategy

FINGERPRINT_FIELDS = (
    "userAgent",
    "platform",
    "language",
    "timezone",
    "screenResolution",
    "colorDepth",
    "cookieEnabled",
)
AUTOMATION_MARKERS = ("Headless", "PhantomJS", "Selenium")


@dataclass(frozen=True)
class DeviceFingerprint:
    """Browser facts reported by the client."""

    user_agent: str
    facts: Mapping[str, Any]

    @classmethod
    def from_json(cls, data: Optional[Mapping[str, Any]]) -> Optional["DeviceFingerprint"]:
        if not data or not str(data.get("userAgent") or "").strip():
            return None
        return cls(user_agent=str(data["userAgent"]), facts=dict(data))

    @property
    def browser_hash(self) -> str:
        parts = {k: self.facts.get(k) for k in FINGERPRINT_FIELDS}
        digest = hashlib.sha256(json.dumps(parts, sort_keys=True, default=str).encode("utf-8"))
        return digest.hexdigest()[:16]

    @property
    def cookie_enabled(self) -> bool:
        return bool(self.facts.get("cookieEnabled", True))

    @property
    def do_not_track(self) -> bool:
        return str(self.facts.get("doNotTrack", "")).lower() in ("1", "true", "yes")

    @property
    def secure(self) -> bool:
        return str(self.facts.get("protocol", "https")).rstrip(":").lower() == "https"

    @property
    def secure_context(self) -> bool:
        return bool(self.facts.get("secureContext", self.secure))

    def security_level(self) -> str:
        score = 0
        if self.cookie_enabled:
            score += 1
        if not self.do_not_track:
            score += 1
        if "Chrome" in self.user_agent or "Firefox" in self.user_agent:
            score += 2
        if self.secure_context:
            score += 2
        if self.facts.get("serviceWorker"):
            score += 1
        if self.secure:
            score += 2
        if self.facts.get("subtleCrypto"):
            score += 1

        if score >= 7:
            return "high"
        if score >= 4:
            return "medium"
        return "low"

    def risk_factors(self) -> List[str]:
        risks = []
        if not self.cookie_enabled:
            risks.append("Cookies disabled")
        if self.do_not_track:
            risks.append("Do Not Track enabled")
        if not self.secure:
            risks.append("Insecure connection (HTTP)")
        if any(marker in self.user_agent for marker in AUTOMATION_MARKERS):
            risks.append("Automated browser detected")
        if not self.secure_context:
            risks.append("Non-secure context")
        return risks


class WebStrategy(VerificationStrategy):
    """Browser session with a device fingerprint. Needs no hardware."""

    method = TrackingMethod.WEB
    name = "Web Browser"
    priority = 4

    def is_available(self, capabilities: DeviceCapabilities) -> bool:
        return capabilities.web

    def _fingerprint(self, context: StrategyContext) -> Optional[DeviceFingerprint]:
        return DeviceFingerprint.from_json(context.inputs.get("fingerprint") or context.device_info)

    def validate(self, context: StrategyContext) -> StrategyValidation:
        fingerprint = self._fingerprint(context)
        if fingerprint is None:
            return StrategyValidation.failed("No device fingerprint available")

        level = fingerprint.security_level()
        risks = fingerprint.risk_factors()
        metadata = {"browserHash": fingerprint.browser_hash, "securityLevel": level, "riskFactors": risks}
        if level == "low":
            return StrategyValidation.ok(metadata, warnings=("Low security level detected", *risks))
        return StrategyValidation.ok(metadata)

    def evidence(self, context: StrategyContext) -> Mapping[str, Any]:
        fingerprint = self._fingerprint(context)
        if fingerprint is None:
            return {}
        return {
            "browserHash": fingerprint.browser_hash,
            "securityLevel": fingerprint.security_level(),
            "riskFactors": fingerprint.risk_factors(),
            "userAgent": fingerprint.user_agent,
        }
