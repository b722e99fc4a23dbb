from __future__ import annotations

import logging
import threading
from typing import List, Protocol

logger = logging.getLogger(__name__)


class DeviceHandle(Protocol):
    """An acquired device resource. ``close`` must be idempotent."""

    name: str

    def close(self) -> None:
        raise NotImplementedError


class DeviceBridge(Protocol):
    def open_camera(self) -> DeviceHandle:
        raise NotImplementedError

    def open_nfc_reader(self) -> DeviceHandle:
        raise NotImplementedError

    def open_badge_reader(self) -> DeviceHandle:
        raise NotImplementedError


class BridgeHandle(DeviceHandle):
    def __init__(self, bridge: "HeadlessDeviceBridge", name: str):
        self._bridge = bridge
        self.name = name
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._bridge._release(self)


class HeadlessDeviceBridge(DeviceBridge):
    """Device bridge for server-side use: the client device holds the hardware.

    Only keeps track of which handles are open, so leaks are observable.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._open: List[BridgeHandle] = []

    @property
    def open_handles(self) -> List[str]:
        with self._lock:
            return [h.name for h in self._open]

    def _acquire(self, name: str) -> BridgeHandle:
        handle = BridgeHandle(self, name)
        with self._lock:
            self._open.append(handle)
        logger.debug("Opened %s", name)
        return handle

    def _release(self, handle: BridgeHandle) -> None:
        with self._lock:
            if handle in self._open:
                self._open.remove(handle)
        logger.debug("Closed %s", handle.name)

    def open_camera(self) -> DeviceHandle:
        return self._acquire("camera")

    def open_nfc_reader(self) -> DeviceHandle:
        return self._acquire("nfc_reader")

    def open_badge_reader(self) -> DeviceHandle:
        return self._acquire("badge_reader")
