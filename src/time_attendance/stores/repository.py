from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Position, StoreCandidate


class StoreDirectory(Protocol):
    def list_stores(self) -> Sequence[StoreCandidate]:
        """Stores of the current tenant, without distances."""

        raise NotImplementedError


class PositionWatch(Protocol):
    """Handle of a running position watch. Must be stopped by its owner."""

    def latest(self) -> Optional[Position]:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError


class PositionSource(Protocol):
    def current_position(self) -> Position:
        """Return a fix or raise PositionUnavailable (denied permission, timeout)."""

        raise NotImplementedError

    def watch(self) -> PositionWatch:
        raise NotImplementedError
