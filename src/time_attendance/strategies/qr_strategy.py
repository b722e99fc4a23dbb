from __future__ import annotations

from typing import Any, List, Mapping, Optional

from ..core.enums import TrackingMethod
from ..core.exceptions import PreparationError, VerificationError
from .base import DeviceCapabilities, StrategyContext, StrategyValidation, VerificationStrategy
from .devices import DeviceHandle
from .qr_tokens import QRTokenIssuer


class QRStrategy(VerificationStrategy):
    """Scan of the rotating, server-signed QR code shown at the store."""

    method = TrackingMethod.QR
    name = "QR Code"
    priority = 2

    def __init__(self, devices=None, *, issuer: QRTokenIssuer):
        super().__init__(devices)
        self._issuer = issuer
        self._camera: Optional[DeviceHandle] = None

    def required_permissions(self) -> List[str]:
        return ["camera"]

    def is_available(self, capabilities: DeviceCapabilities) -> bool:
        return capabilities.camera

    def _acquire(self, context: StrategyContext) -> Mapping[str, Any]:
        if context.selected_store is None:
            raise PreparationError("Store must be selected before scanning QR codes")
        if self._devices is None:
            raise PreparationError("No camera attached")
        self._camera = self._devices.open_camera()
        return {"cameraOpen": True}

    def _release(self) -> None:
        camera, self._camera = self._camera, None
        if camera is not None:
            camera.close()

    def validate(self, context: StrategyContext) -> StrategyValidation:
        if context.selected_store is None:
            return StrategyValidation.failed("No store selected for QR validation")

        token = context.input("qrToken")
        if token is None:
            return StrategyValidation.failed("No QR code scanned yet")
        try:
            verified = self._issuer.verify(token, store_id=context.selected_store.id)
        except VerificationError as e:
            return StrategyValidation.failed(str(e))
        return StrategyValidation.ok({"storeId": verified.store_id, "expiresAt": verified.expires_at.isoformat()})

    def evidence(self, context: StrategyContext) -> Mapping[str, Any]:
        verified = self._issuer.verify(context.input("qrToken") or "", store_id=context.selected_store.id)
        return {"token": verified.token, "storeId": verified.store_id, "expiresAt": verified.expires_at.isoformat()}
