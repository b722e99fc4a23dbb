from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..common.datetime_utils import now_utc, to_iso
from ..common.validators import require_non_empty
from ..core.constants import QR_TOKEN_LIFETIME_SECONDS
from ..core.exceptions import VerificationError


@dataclass(frozen=True)
class QRToken:
    token: str
    store_id: str
    issued_at: datetime
    expires_at: datetime

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "storeId": self.store_id,
            "issuedAt": to_iso(self.issued_at),
            "expiresAt": to_iso(self.expires_at),
        }


class QRTokenIssuer:
    """Issue and verify short-lived, store-bound QR tokens.

    Token format: ``<store_id>.<issued_epoch>.<signature>`` where the
    signature is an HMAC-SHA256 over the first two parts.
    """

    def __init__(
        self,
        secret: str,
        *,
        lifetime_seconds: int = QR_TOKEN_LIFETIME_SECONDS,
        clock: Callable[[], datetime] = now_utc,
    ):
        self._secret = require_non_empty(secret, "QR secret").encode("utf-8")
        self._lifetime = timedelta(seconds=int(lifetime_seconds))
        self._clock = clock

    def _sign(self, message: str) -> str:
        return hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).hexdigest()[:32]

    def issue(self, store_id: str) -> QRToken:
        store_id = require_non_empty(store_id, "Store")
        issued_at = self._clock().replace(microsecond=0)
        message = f"{store_id}.{int(issued_at.timestamp())}"
        return QRToken(
            token=f"{message}.{self._sign(message)}",
            store_id=store_id,
            issued_at=issued_at,
            expires_at=issued_at + self._lifetime,
        )

    def verify(self, token: str, *, store_id: str) -> QRToken:
        parts = (token or "").strip().rsplit(".", 2)
        if len(parts) != 3 or not parts[1].isdigit():
            raise VerificationError("Invalid QR code format")

        token_store, issued, signature = parts
        if not hmac.compare_digest(signature, self._sign(f"{token_store}.{issued}")):
            raise VerificationError("QR code signature is invalid")
        if token_store != store_id:
            raise VerificationError("QR code belongs to another store")

        issued_at = datetime.fromtimestamp(int(issued), tz=timezone.utc)
        expires_at = issued_at + self._lifetime
        if self._clock() >= expires_at:
            raise VerificationError("QR code expired, scan a new one")
        return QRToken(token=token.strip(), store_id=token_store, issued_at=issued_at, expires_at=expires_at)
