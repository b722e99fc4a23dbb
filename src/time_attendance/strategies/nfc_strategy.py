from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional

from ..core.enums import TrackingMethod
from ..core.exceptions import PreparationError
from .base import DeviceCapabilities, StrategyContext, StrategyValidation, VerificationStrategy
from .devices import DeviceHandle

NFC_TAG_PATTERN = re.compile(r"^[A-Za-z0-9]{8,16}$")


class NFCStrategy(VerificationStrategy):
    """Badge tap on an NFC reader."""

    method = TrackingMethod.NFC
    name = "NFC Badge"
    priority = 3

    def __init__(self, devices=None):
        super().__init__(devices)
        self._reader: Optional[DeviceHandle] = None

    def required_permissions(self) -> List[str]:
        return ["nfc"]

    def is_available(self, capabilities: DeviceCapabilities) -> bool:
        return capabilities.nfc

    def _acquire(self, context: StrategyContext) -> Mapping[str, Any]:
        if self._devices is None:
            raise PreparationError("No NFC reader attached")
        self._reader = self._devices.open_nfc_reader()
        return {"readerInitialized": True}

    def _release(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None:
            reader.close()

    def validate(self, context: StrategyContext) -> StrategyValidation:
        if context.selected_store is None:
            return StrategyValidation.failed("No store selected for NFC validation")

        tag_id = context.input("nfcTagId")
        if tag_id is None:
            return StrategyValidation.failed("No NFC tag scanned")
        if not NFC_TAG_PATTERN.match(tag_id):
            return StrategyValidation.failed(f"Invalid NFC tag format: {tag_id}")
        return StrategyValidation.ok({"tagId": tag_id, "validFormat": True})

    def evidence(self, context: StrategyContext) -> Mapping[str, Any]:
        return {"tagId": context.input("nfcTagId")}
