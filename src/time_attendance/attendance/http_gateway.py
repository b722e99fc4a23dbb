from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from ..common.datetime_utils import to_iso
from ..common.http_base import ApiClient
from ..core.exceptions import TransportError
from .model import AttendanceSession, ClockInRequest
from .repository import AttendanceGateway

logger = logging.getLogger(__name__)

BASE_PATH = "/api/hr/time-tracking"


def _session_from(body: Any) -> AttendanceSession:
    if isinstance(body, dict) and isinstance(body.get("session"), dict):
        body = body["session"]
    if not isinstance(body, dict) or not body.get("id"):
        raise TransportError("Backend returned no session")
    return AttendanceSession.from_json(body)


class HttpAttendanceGateway(AttendanceGateway):
    def __init__(self, client: ApiClient):
        self._client = client

    def clock_in(self, request: ClockInRequest) -> AttendanceSession:
        body = self._client.post(f"{BASE_PATH}/clock-in", json=request.to_json())
        session = _session_from(body)
        logger.info("Clocked in user %s at store %s (session %s)", request.user_id, request.store_id, session.session_id)
        return session

    def start_break(self, session_id: str, *, at: datetime) -> AttendanceSession:
        body = self._client.post(f"{BASE_PATH}/{session_id}/break/start", json={"at": to_iso(at)})
        return _session_from(body)

    def end_break(self, session_id: str, *, at: datetime) -> AttendanceSession:
        body = self._client.post(f"{BASE_PATH}/{session_id}/break/end", json={"at": to_iso(at)})
        return _session_from(body)

    def clock_out(self, session_id: str, *, at: datetime, close_open_break: bool = False) -> AttendanceSession:
        payload = {"clockOut": to_iso(at), "closeOpenBreak": close_open_break}
        body = self._client.post(f"{BASE_PATH}/{session_id}/clock-out", json=payload)
        session = _session_from(body)
        logger.info("Clocked out session %s", session_id)
        return session

    def current_session(self, user_id: str) -> Optional[AttendanceSession]:
        body = self._client.get(f"{BASE_PATH}/current", params={"userId": user_id})
        if not body:
            return None
        if isinstance(body, dict) and "session" in body and body["session"] is None:
            return None
        session = _session_from(body)
        return session if session.is_open else None
