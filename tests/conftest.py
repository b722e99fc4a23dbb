from __future__ import annotations

from datetime import datetime, timezone

import pytest

from time_attendance.stores.model import StoreCandidate

from fakes import FakeClock, InMemoryGateway, InMemoryStoreDirectory, north_of, south_of


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 3, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def store_a():
    return StoreCandidate(id="store-a", name="Store A", address="Via Roma 1", coordinates=north_of(150))


@pytest.fixture
def store_b():
    return StoreCandidate(id="store-b", name="Store B", address="Via Milano 2", coordinates=south_of(500))


@pytest.fixture
def directory(store_a, store_b):
    return InMemoryStoreDirectory([store_b, store_a])
