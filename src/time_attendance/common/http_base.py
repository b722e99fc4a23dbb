from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

import requests

from ..core.constants import DEFAULT_API_TIMEOUT_SECONDS
from ..core.exceptions import ConflictError, DomainError, TransportError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    tenant_id: str
    timeout_seconds: float = DEFAULT_API_TIMEOUT_SECONDS


@contextmanager
def api_errors(method: str, path: str) -> Iterator[None]:
    """Translate transport-level failures from ``requests`` into TransportError."""
    try:
        yield
    except requests.Timeout as e:
        logger.warning("Backend timeout on %s %s", method, path)
        raise TransportError(f"Backend timed out ({method} {path})") from e
    except requests.ConnectionError as e:
        logger.warning("Backend unreachable on %s %s: %s", method, path, e)
        raise TransportError(f"Backend unreachable ({method} {path})") from e


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


def decode_response(response: requests.Response) -> Any:
    """Return the decoded JSON body or raise the matching DomainError."""
    status = response.status_code
    if 200 <= status < 300:
        if status == 204 or not response.content:
            return None
        return response.json()

    message = _error_message(response)
    if status == 409:
        raise ConflictError(message)
    if status in (400, 404, 422):
        raise ValidationError(message)
    if status >= 500:
        raise TransportError(message)
    raise DomainError(message)


class ApiClient:
    """Thin JSON client for the back-office REST API.

    Note: One ``requests.Session`` per client so connections are pooled.
    """

    def __init__(self, config: ApiConfig, session: Optional[requests.Session] = None):
        self._config = config
        self._session = session or requests.Session()

    @property
    def tenant_id(self) -> str:
        return self._config.tenant_id

    def _url(self, path: str) -> str:
        return f"{self._config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _headers(self) -> dict:
        return {
            "Accept": "application/json",
            "X-Tenant-ID": self._config.tenant_id,
        }

    def request(self, method: str, path: str, *, json: Any = None, params: Optional[dict] = None) -> Any:
        with api_errors(method, path):
            response = self._session.request(
                method,
                self._url(path),
                json=json,
                params=params,
                headers=self._headers(),
                timeout=self._config.timeout_seconds,
            )
        return decode_response(response)

    def get(self, path: str, *, params: Optional[dict] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, *, json: Any = None) -> Any:
        return self.request("POST", path, json=json)

    def close(self) -> None:
        self._session.close()
