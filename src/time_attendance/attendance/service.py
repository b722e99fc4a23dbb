from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from ..common.datetime_utils import now_utc
from ..common.validators import require_non_empty
from ..core.enums import ClockOutPolicy, TrackingMethod
from ..core.exceptions import ConflictError, DomainError, ValidationError
from ..stores.model import StoreCandidate, StoreOverride, StoreResolution
from ..stores.repository import PositionSource, StoreDirectory
from ..stores.resolver import StoreResolver
from ..strategies.base import StrategyContext
from ..strategies.registry import StrategyRegistry
from .machine import AttendanceStateMachine
from .model import AttendanceSession, ClockOutResult
from .repository import AttendanceGateway

logger = logging.getLogger(__name__)


@dataclass
class AttendanceDesk:
    """Everything one user's attendance flow needs, kept across requests."""

    machine: AttendanceStateMachine
    resolver: StoreResolver
    registry: StrategyRegistry
    lock: threading.RLock = field(default_factory=threading.RLock)

    def close(self) -> None:
        self.registry.close()
        self.machine.close()


@dataclass(frozen=True)
class ClockInResult:
    session: AttendanceSession
    warnings: Tuple[str, ...] = ()


class AttendanceService:
    """Verify -> confirm store -> transition, per user.

    Each user gets a desk (state machine, store resolver and strategy
    registry) on first use; it is released again on clock-out. Transitions
    for one user never queue: while one runs, another fails with
    ConflictError before reaching the backend.
    """

    def __init__(
        self,
        gateway: AttendanceGateway,
        directory: StoreDirectory,
        *,
        registry_factory: Callable[[], StrategyRegistry],
        tenant_id: Optional[str] = None,
        clock: Callable[[], datetime] = now_utc,
        clock_out_policy: ClockOutPolicy = ClockOutPolicy.AUTO_CLOSE_BREAK,
        geofence_radius_meters: Optional[float] = None,
        ticker_factory: Optional[Callable[[AttendanceStateMachine], Any]] = None,
    ):
        self._gateway = gateway
        self._directory = directory
        self._registry_factory = registry_factory
        self._tenant_id = tenant_id
        self._clock = clock
        self._clock_out_policy = ClockOutPolicy(clock_out_policy)
        self._geofence_radius = geofence_radius_meters
        self._ticker_factory = ticker_factory

        self._desks: Dict[str, AttendanceDesk] = {}
        self._lock = threading.Lock()

    def _new_desk(self, user_id: str) -> AttendanceDesk:
        resolver_kwargs = {"clock": self._clock}
        if self._geofence_radius is not None:
            resolver_kwargs["geofence_radius_meters"] = self._geofence_radius

        machine = AttendanceStateMachine(
            user_id,
            self._gateway,
            tenant_id=self._tenant_id,
            clock=self._clock,
            clock_out_policy=self._clock_out_policy,
            ticker_factory=self._ticker_factory,
        )
        return AttendanceDesk(
            machine=machine,
            resolver=StoreResolver(self._directory, **resolver_kwargs),
            registry=self._registry_factory(),
        )

    def desk(self, user_id: str) -> AttendanceDesk:
        user_id = require_non_empty(str(user_id), "User")
        with self._lock:
            desk = self._desks.get(user_id)
            if desk is None:
                desk = self._new_desk(user_id)
                self._desks[user_id] = desk
            return desk

    def status(self, user_id: str) -> dict:
        desk = self.desk(user_id)
        data = desk.machine.context()
        resolution = desk.resolver.last_resolution
        override = desk.resolver.current_override
        data["stores"] = resolution.to_dict() if resolution else None
        data["override"] = None if override is None else {"storeId": override.store.id, "reason": override.reason}
        data["availableMethods"] = [m.value for m in desk.registry.methods()]
        return data

    def restore_session(self, user_id: str) -> Optional[AttendanceSession]:
        desk = self.desk(user_id)
        with self._exclusive(desk, "restore") as machine:
            return machine.restore()

    # ---- store selection ------------------------------------------------------

    def resolve_stores(self, user_id: str, source: PositionSource) -> StoreResolution:
        desk = self.desk(user_id)
        with desk.lock:
            resolution = desk.resolver.resolve_from(source)
            selected = desk.resolver.selected
            if selected is not None:
                desk.machine.select_store(selected)
            return resolution

    def select_store(self, user_id: str, store_id: str) -> StoreCandidate:
        """Pick one of the resolved candidates that is inside its geofence."""
        desk = self.desk(user_id)
        store_id = require_non_empty(str(store_id or ""), "Store")
        with desk.lock:
            resolution = desk.resolver.last_resolution
            candidates = resolution.candidates if resolution else ()
            store = next((c for c in candidates if c.id == store_id), None)
            if store is None:
                raise ValidationError(f"Unknown store: {store_id}")
            if not store.in_geofence:
                raise ValidationError("Store is outside the geofence, override it with a reason")

            desk.resolver.cancel_override()
            desk.machine.select_store(store)
            return store

    def override_store(self, user_id: str, store_id: str, reason: str) -> StoreOverride:
        desk = self.desk(user_id)
        with desk.lock:
            override = desk.resolver.override(store_id, reason)
            desk.machine.select_store(override.store)
            return override

    # ---- verification method -------------------------------------------------

    def select_method(self, user_id: str, method: TrackingMethod | str, context: StrategyContext) -> Mapping[str, Any]:
        desk = self.desk(user_id)
        with desk.lock:
            context = self._with_store(desk, context)
            try:
                metadata = desk.registry.activate(method, context)
            except DomainError as e:
                desk.registry.clear()
                desk.machine.select_method(None)
                desk.machine.fail(e)
                raise
            desk.machine.select_method(desk.registry.selected_method)
            return metadata

    def auto_select_method(self, user_id: str, context: StrategyContext) -> Optional[TrackingMethod]:
        desk = self.desk(user_id)
        with desk.lock:
            method = desk.registry.auto_select(self._with_store(desk, context))
            desk.machine.select_method(method)
            return method

    @staticmethod
    def _with_store(desk: AttendanceDesk, context: StrategyContext) -> StrategyContext:
        store = desk.machine.selected_store
        if store is None or context.selected_store is not None:
            return context
        return replace(context, selected_store=store)

    # ---- transitions ---------------------------------------------------------

    @contextmanager
    def _exclusive(self, desk: AttendanceDesk, action: str) -> Iterator[AttendanceStateMachine]:
        """Hold the desk for one transition; a second one while it runs is a conflict."""
        if not desk.lock.acquire(blocking=False):
            err = ConflictError(f"Another attendance action is in progress ({action})")
            desk.machine.fail(err)
            raise err
        try:
            yield desk.machine
        finally:
            desk.lock.release()

    def clock_in(self, user_id: str, context: StrategyContext) -> ClockInResult:
        desk = self.desk(user_id)
        with self._exclusive(desk, "clock_in") as machine:
            machine.ensure_can_clock_in()

            context = self._with_store(desk, context)
            try:
                payload, validation = desk.registry.build_payload(context, captured_at=self._clock())
            except DomainError as e:
                machine.fail(e)
                raise

            override = desk.resolver.current_override
            reason = None
            if override is not None and machine.selected_store is not None and override.store.id == machine.selected_store.id:
                reason = override.reason

            session = machine.clock_in(payload, override_reason=reason)
            return ClockInResult(session=session, warnings=validation.warnings)

    def start_break(self, user_id: str) -> AttendanceSession:
        desk = self.desk(user_id)
        with self._exclusive(desk, "start_break") as machine:
            return machine.start_break()

    def end_break(self, user_id: str) -> AttendanceSession:
        desk = self.desk(user_id)
        with self._exclusive(desk, "end_break") as machine:
            return machine.end_break()

    def clock_out(self, user_id: str) -> ClockOutResult:
        """Close the session and drop the user's desk; the next action starts a fresh one."""
        desk = self.desk(user_id)
        with self._exclusive(desk, "clock_out") as machine:
            result = machine.clock_out()
            desk.registry.clear()
            machine.select_method(None)
            desk.resolver.cancel_override()
            self._evict(machine.user_id, desk)
        return result

    def clear_error(self, user_id: str) -> None:
        self.desk(user_id).machine.clear_error()

    # ---- lifecycle -----------------------------------------------------------

    def _evict(self, user_id: str, desk: AttendanceDesk) -> None:
        with self._lock:
            if self._desks.get(user_id) is desk:
                del self._desks[user_id]
        desk.close()
        logger.debug("Released attendance desk for user %s", user_id)

    def close(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                desks = list(self._desks.values())
                self._desks.clear()
            else:
                desk = self._desks.pop(str(user_id), None)
                desks = [desk] if desk else []
        for desk in desks:
            desk.close()
