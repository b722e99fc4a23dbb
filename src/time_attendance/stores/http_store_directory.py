from __future__ import annotations

import logging
from typing import Any, Sequence

from ..common.http_base import ApiClient
from ..core.exceptions import TransportError
from .model import Coordinates, StoreCandidate
from .repository import StoreDirectory

logger = logging.getLogger(__name__)


def store_from_json(row: dict) -> StoreCandidate:
    return StoreCandidate(
        id=str(row["id"]),
        name=str(row.get("name") or row["id"]),
        address=row.get("address"),
        coordinates=Coordinates(lat=float(row["latitude"]), lng=float(row["longitude"])),
    )


class HttpStoreDirectory(StoreDirectory):
    def __init__(self, client: ApiClient):
        self._client = client

    def list_stores(self) -> Sequence[StoreCandidate]:
        body: Any = self._client.get("/api/stores")
        rows = body.get("stores", []) if isinstance(body, dict) else body
        if rows is None:
            raise TransportError("Store directory returned no data")

        stores = []
        for row in rows:
            # Stores without coordinates cannot take part in geofencing.
            if row.get("latitude") is None or row.get("longitude") is None:
                logger.debug("Skipping store %s without coordinates", row.get("id"))
                continue
            stores.append(store_from_json(row))
        return stores
