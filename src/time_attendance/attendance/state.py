from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from ..core.enums import AttendanceStateName
from ..core.exceptions import DomainError
from .model import AttendanceSession


@dataclass(frozen=True)
class Idle:
    """No open session. ``last_session`` is the one closed most recently, if any."""

    name: ClassVar[AttendanceStateName] = AttendanceStateName.IDLE
    last_session: Optional[AttendanceSession] = None

    @property
    def session(self) -> None:
        return None


@dataclass(frozen=True)
class Active:
    name: ClassVar[AttendanceStateName] = AttendanceStateName.ACTIVE
    session: AttendanceSession


@dataclass(frozen=True)
class OnBreak:
    name: ClassVar[AttendanceStateName] = AttendanceStateName.ON_BREAK
    session: AttendanceSession


LiveState = Union[Idle, Active, OnBreak]


@dataclass(frozen=True)
class Errored:
    """Transient overlay over the state in which a transition failed."""

    name: ClassVar[AttendanceStateName] = AttendanceStateName.ERROR
    previous: LiveState
    error: DomainError

    @property
    def session(self) -> Optional[AttendanceSession]:
        return self.previous.session


AttendanceState = Union[Idle, Active, OnBreak, Errored]


def underlying(state: AttendanceState) -> LiveState:
    if isinstance(state, Errored):
        return state.previous
    return state


def state_for(session: Optional[AttendanceSession]) -> LiveState:
    """Live state matching a session snapshot."""
    if session is None or not session.is_open:
        return Idle(last_session=session)
    if session.open_break is not None:
        return OnBreak(session=session)
    return Active(session=session)
