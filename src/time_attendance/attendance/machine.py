from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, List, Optional

from ..common.datetime_utils import now_utc
from ..core.constants import PAYLOAD_MAX_AGE_SECONDS, PAYLOAD_MAX_SKEW_SECONDS
from ..core.enums import AttendanceStateName, ClockOutPolicy, TrackingMethod
from ..core.exceptions import ConflictError, DomainError, StateError, ValidationError, VerificationError
from ..stores.model import StoreCandidate
from .model import AttendanceSession, ClockInRequest, ClockOutResult, VerificationPayload
from .repository import AttendanceGateway
from .state import Active, AttendanceState, Errored, Idle, LiveState, OnBreak, state_for, underlying
from .timers import AttendanceTimers, compute_timers

logger = logging.getLogger(__name__)


class AttendanceStateMachine:
    """Clock-in / break / clock-out lifecycle of one user.

    Transitions check local invariants first and only then call the backend
    gateway; the session returned by the gateway becomes the new snapshot.
    A failed transition leaves the session untouched, records the error as
    an overlay on the current state and raises it.

    Only one transition runs at a time. A second attempt while one is in
    flight fails with ConflictError and never reaches the backend.
    """

    def __init__(
        self,
        user_id: str,
        gateway: AttendanceGateway,
        *,
        tenant_id: Optional[str] = None,
        clock: Callable[[], datetime] = now_utc,
        clock_out_policy: ClockOutPolicy = ClockOutPolicy.AUTO_CLOSE_BREAK,
        payload_max_age_seconds: int = PAYLOAD_MAX_AGE_SECONDS,
        ticker_factory: Optional[Callable[["AttendanceStateMachine"], Any]] = None,
    ):
        self.user_id = str(user_id)
        self.tenant_id = tenant_id
        self._gateway = gateway
        self._clock = clock
        self.clock_out_policy = ClockOutPolicy(clock_out_policy)
        self._payload_max_age = int(payload_max_age_seconds)
        self._ticker_factory = ticker_factory

        self._state: AttendanceState = Idle()
        self._selected_method: Optional[TrackingMethod] = None
        self._selected_store: Optional[StoreCandidate] = None
        self._ticker = None

        self._transition_lock = threading.Lock()
        self._state_lock = threading.Lock()

    # ---- outbound -----------------------------------------------------------

    @property
    def state(self) -> AttendanceState:
        return self._state

    @property
    def state_name(self) -> AttendanceStateName:
        return self._state.name

    @property
    def session(self) -> Optional[AttendanceSession]:
        return self._state.session

    @property
    def error(self) -> Optional[DomainError]:
        state = self._state
        return state.error if isinstance(state, Errored) else None

    @property
    def selected_method(self) -> Optional[TrackingMethod]:
        return self._selected_method

    @property
    def selected_store(self) -> Optional[StoreCandidate]:
        return self._selected_store

    @property
    def can_clock_in(self) -> bool:
        return (
            isinstance(underlying(self._state), Idle)
            and self._selected_method is not None
            and self._selected_store is not None
        )

    @property
    def can_clock_out(self) -> bool:
        base = underlying(self._state)
        if isinstance(base, Active):
            return True
        return isinstance(base, OnBreak) and self.clock_out_policy is ClockOutPolicy.AUTO_CLOSE_BREAK

    @property
    def can_start_break(self) -> bool:
        return isinstance(underlying(self._state), Active)

    @property
    def can_end_break(self) -> bool:
        return isinstance(underlying(self._state), OnBreak)

    def timers(self, now: Optional[datetime] = None) -> AttendanceTimers:
        # One read of the snapshot; a concurrent transition swaps it whole.
        session = self._state.session
        return compute_timers(session, now or self._clock())

    def context(self, now: Optional[datetime] = None) -> dict:
        state = self._state
        session = state.session
        error = state.error if isinstance(state, Errored) else None
        return {
            "state": state.name.value,
            "sessionId": session.session_id if session else None,
            "session": session.to_dict() if session else None,
            "selectedMethod": self._selected_method.value if self._selected_method else None,
            "selectedStore": self._selected_store.to_dict() if self._selected_store else None,
            "canClockIn": self.can_clock_in,
            "canClockOut": self.can_clock_out,
            "canStartBreak": self.can_start_break,
            "canEndBreak": self.can_end_break,
            "timers": compute_timers(session, now or self._clock()).to_dict(),
            "error": None
            if error is None
            else {"message": str(error), "kind": error.kind, "retryable": error.retryable},
        }

    # ---- internals ----------------------------------------------------------

    def _commit(self, state: LiveState) -> None:
        with self._state_lock:
            self._state = state

    def fail(self, error: DomainError) -> None:
        """Record ``error`` as the current error overlay without touching the session."""
        with self._state_lock:
            self._state = Errored(previous=underlying(self._state), error=error)
        logger.warning("Attendance transition failed for user %s: [%s] %s", self.user_id, error.kind, error)

    @contextmanager
    def _transition(self, name: str) -> Iterator[None]:
        if not self._transition_lock.acquire(blocking=False):
            err = ConflictError(f"Another attendance action is in progress ({name})")
            self.fail(err)
            raise err
        try:
            yield
        except DomainError as e:
            self.fail(e)
            raise
        finally:
            self._transition_lock.release()

    def _start_ticker(self) -> None:
        if self._ticker_factory is None or self._ticker is not None:
            return
        self._ticker = self._ticker_factory(self)
        self._ticker.start()

    def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.stop()

    def _check_selections(self) -> None:
        base = underlying(self._state)
        if not isinstance(base, Idle):
            raise ConflictError("A session is already open")
        if self._selected_store is None:
            raise ValidationError("Select a store before clocking in")
        if self._selected_method is None:
            raise ValidationError("Select a tracking method before clocking in")

    def _check_payload(self, payload: Optional[VerificationPayload], now: datetime) -> None:
        if payload is None:
            raise VerificationError("Verification is required before clocking in")
        if payload.method != self._selected_method:
            raise VerificationError(
                f"Verification was made with {payload.method.value}, expected {self._selected_method.value}"
            )
        age = payload.age_seconds(now)
        if age > self._payload_max_age:
            raise VerificationError(f"Verification is stale ({int(age)}s old), verify again")
        if age < -PAYLOAD_MAX_SKEW_SECONDS:
            raise VerificationError("Verification timestamp is in the future")

    # ---- inbound ------------------------------------------------------------

    def select_method(self, method: Optional[TrackingMethod | str]) -> None:
        """Select the verification method; ``None`` clears it."""
        if method is None:
            self._selected_method = None
            return
        try:
            self._selected_method = TrackingMethod(method)
        except ValueError:
            raise ValidationError(f"Unknown tracking method: {method}") from None

    def select_store(self, store: Optional[StoreCandidate]) -> None:
        self._selected_store = store

    def ensure_can_clock_in(self) -> None:
        """Raise (and record) the error clock-in would fail with before any verification runs."""
        try:
            self._check_selections()
        except DomainError as e:
            self.fail(e)
            raise

    def clock_in(self, payload: Optional[VerificationPayload], *, override_reason: Optional[str] = None) -> AttendanceSession:
        with self._transition("clock_in"):
            now = self._clock()
            self._check_selections()
            self._check_payload(payload, now)

            request = ClockInRequest(
                user_id=self.user_id,
                tenant_id=self.tenant_id,
                store_id=self._selected_store.id,
                tracking_method=self._selected_method,
                clock_in_at=now,
                evidence=payload.evidence,
                device_info=payload.device_info,
                geo_location=payload.geo_location,
                was_override=bool(override_reason),
                override_reason=override_reason,
            )
            session = self._gateway.clock_in(request)
            self._commit(Active(session=session))

        logger.info("User %s clocked in via %s", self.user_id, session.tracking_method.value)
        self._start_ticker()
        return session

    def start_break(self) -> AttendanceSession:
        with self._transition("start_break"):
            base = underlying(self._state)
            if isinstance(base, OnBreak):
                raise StateError("Already on break")
            if not isinstance(base, Active):
                raise StateError("Not clocked in")

            now = self._clock()
            # Local invariant check only; the gateway returns the stored session.
            base.session.with_break_started(now)
            session = self._gateway.start_break(base.session.session_id, at=now)
            self._commit(OnBreak(session=session))
        return session

    def end_break(self) -> AttendanceSession:
        with self._transition("end_break"):
            base = underlying(self._state)
            if not isinstance(base, OnBreak):
                raise StateError("No open break to end")

            now = self._clock()
            # Local invariant check only; the gateway returns the stored session.
            base.session.with_break_ended(now)
            session = self._gateway.end_break(base.session.session_id, at=now)
            self._commit(Active(session=session))
        return session

    def clock_out(self) -> ClockOutResult:
        warnings: List[str] = []
        with self._transition("clock_out"):
            base = underlying(self._state)
            if isinstance(base, Idle):
                raise StateError("Not clocked in")

            now = self._clock()
            session = base.session
            had_open_break = session.open_break is not None
            auto_close = self.clock_out_policy is ClockOutPolicy.AUTO_CLOSE_BREAK
            # Local invariant check only; raises StateError on an open break under REJECT.
            session.closed_at(now, close_open_break=auto_close)
            if had_open_break:
                warnings.append("Open break was closed automatically at clock-out")

            closed = self._gateway.clock_out(session.session_id, at=now, close_open_break=had_open_break)
            self._commit(Idle(last_session=closed))

        self._stop_ticker()
        for warning in warnings:
            logger.warning("User %s: %s", self.user_id, warning)
        logger.info("User %s clocked out", self.user_id)
        return ClockOutResult(session=closed, warnings=tuple(warnings))

    def clear_error(self) -> None:
        with self._state_lock:
            self._state = underlying(self._state)

    def restore(self) -> Optional[AttendanceSession]:
        """Adopt the open session the backend holds for this user, if any."""
        with self._transition("restore"):
            if not isinstance(underlying(self._state), Idle):
                return self._state.session
            session = self._gateway.current_session(self.user_id)
            if session is None:
                return None
            self._commit(state_for(session))
            self._selected_method = session.tracking_method

        logger.info("Restored open session %s for user %s", session.session_id, self.user_id)
        self._start_ticker()
        return session

    def close(self) -> None:
        self._stop_ticker()
