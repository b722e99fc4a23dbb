from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, List, Mapping, Optional, Tuple

from ..attendance.model import VerificationPayload
from ..core.enums import TrackingMethod
from ..core.exceptions import PreparationError
from ..stores.model import StoreCandidate
from ..stores.repository import PositionSource
from .devices import DeviceBridge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceCapabilities:
    """What the client device reports it can do."""

    geolocation: bool = False
    nfc: bool = False
    camera: bool = False
    keyboard: bool = True
    web: bool = True

    @classmethod
    def from_json(cls, data: Optional[Mapping[str, Any]]) -> "DeviceCapabilities":
        data = data or {}
        return cls(
            geolocation=bool(data.get("geolocation", False)),
            nfc=bool(data.get("nfc", False)),
            camera=bool(data.get("camera", False)),
            keyboard=bool(data.get("keyboard", True)),
            web=bool(data.get("web", True)),
        )


@dataclass(frozen=True)
class StrategyContext:
    """Inputs a strategy may look at while preparing and validating.

    ``inputs`` carries what the user scanned or typed (``nfcTagId``,
    ``qrToken``, ``badgeId``) and the browser facts used by the web
    fingerprint (``fingerprint``).
    """

    user_id: str
    selected_store: Optional[StoreCandidate] = None
    position_source: Optional[PositionSource] = None
    capabilities: DeviceCapabilities = field(default_factory=DeviceCapabilities)
    inputs: Mapping[str, Any] = field(default_factory=dict)
    device_info: Mapping[str, Any] = field(default_factory=dict)

    def input(self, name: str) -> Optional[str]:
        value = self.inputs.get(name)
        if value is None:
            return None
        value = str(value).strip()
        return value or None


@dataclass(frozen=True)
class StrategyValidation:
    is_valid: bool
    error: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, metadata: Optional[Mapping[str, Any]] = None, warnings: Tuple[str, ...] = ()) -> "StrategyValidation":
        return cls(is_valid=True, warnings=tuple(warnings), metadata=dict(metadata or {}))

    @classmethod
    def failed(cls, error: str) -> "StrategyValidation":
        return cls(is_valid=False, error=error)

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "error": self.error,
            "warnings": list(self.warnings),
            "metadata": dict(self.metadata),
        }


class VerificationStrategy(ABC):
    """Strategy Pattern: one identity-verification method.

    ``prepare`` acquires the device resources the method needs and is
    idempotent; ``teardown`` releases them and is safe to call at any time.
    """

    method: ClassVar[TrackingMethod]
    name: ClassVar[str]
    priority: ClassVar[int]

    def __init__(self, devices: Optional[DeviceBridge] = None):
        self._devices = devices
        self._prepared = False

    @property
    def is_prepared(self) -> bool:
        return self._prepared

    def required_permissions(self) -> List[str]:
        return []

    @abstractmethod
    def is_available(self, capabilities: DeviceCapabilities) -> bool:
        raise NotImplementedError

    def prepare(self, context: StrategyContext) -> Mapping[str, Any]:
        if self._prepared:
            return {}
        if not self.is_available(context.capabilities):
            raise PreparationError(f"{self.name} is not available on this device")

        try:
            metadata = self._acquire(context) or {}
        except Exception:
            self._release()
            raise
        self._prepared = True
        logger.debug("Prepared %s strategy", self.method.value)
        return metadata

    def teardown(self) -> None:
        if not self._prepared:
            return
        try:
            self._release()
        finally:
            self._prepared = False
            logger.debug("Tore down %s strategy", self.method.value)

    def _acquire(self, context: StrategyContext) -> Optional[Mapping[str, Any]]:
        """Open device resources. Raise PreparationError on failure."""
        return None

    def _release(self) -> None:
        return None

    @abstractmethod
    def validate(self, context: StrategyContext) -> StrategyValidation:
        raise NotImplementedError

    @abstractmethod
    def evidence(self, context: StrategyContext) -> Mapping[str, Any]:
        raise NotImplementedError

    def augment_payload(self, base: VerificationPayload, context: StrategyContext) -> VerificationPayload:
        evidence = dict(base.evidence)
        evidence.update(self.evidence(context))
        return replace(base, method=self.method, evidence=evidence)
