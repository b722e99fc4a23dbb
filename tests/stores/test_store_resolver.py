import pytest

from time_attendance.core.exceptions import TransportError, ValidationError
from time_attendance.stores.model import Position, StoreCandidate
from time_attendance.stores.position import ReportedPositionSource
from time_attendance.stores.resolver import StoreResolver

from fakes import BASE_LAT, BASE_LNG, InMemoryStoreDirectory, north_of, south_of


@pytest.fixture
def here():
    return Position(lat=BASE_LAT, lng=BASE_LNG, accuracy_meters=10)


@pytest.fixture
def resolver(directory, clock):
    return StoreResolver(directory, clock=clock)


def test_nearest_store_inside_geofence_is_auto_selected(resolver, here):
    resolution = resolver.resolve(here)

    assert [c.id for c in resolution.candidates] == ["store-a", "store-b"]
    assert resolution.auto_selected.id == "store-a"
    assert resolution.candidates[0].distance_meters == pytest.approx(150, abs=1)
    assert resolution.candidates[1].distance_meters == pytest.approx(500, abs=1)
    assert resolution.candidates[0].in_geofence
    assert not resolution.candidates[1].in_geofence
    assert resolver.selected.id == "store-a"


def test_no_store_within_geofence_requires_manual_selection(clock, here):
    far_a = StoreCandidate(id="far-a", name="Far A", address=None, coordinates=north_of(250))
    far_b = StoreCandidate(id="far-b", name="Far B", address=None, coordinates=south_of(900))
    resolver = StoreResolver(InMemoryStoreDirectory([far_b, far_a]), clock=clock)

    resolution = resolver.resolve(here)

    assert resolution.auto_selected is None
    assert resolution.requires_manual_selection
    assert [c.id for c in resolution.candidates] == ["far-a", "far-b"]


def test_position_unavailable_is_flagged_not_raised(resolver):
    source = ReportedPositionSource(error="Location permission denied")

    resolution = resolver.resolve_from(source)

    assert resolution.position_unavailable
    assert resolution.position_error == "Location permission denied"
    assert resolution.auto_selected is None
    assert all(c.distance_meters is None for c in resolution.candidates)


def test_override_requires_reason(resolver, here):
    resolver.resolve(here)

    with pytest.raises(ValidationError):
        resolver.override("store-b", "   ")

    assert resolver.current_override is None
    assert resolver.selected.id == "store-a"


def test_override_supersedes_auto_selection(resolver, here, clock):
    resolver.resolve(here)

    override = resolver.override("store-b", "Covering the afternoon shift")

    assert override.store.id == "store-b"
    assert override.created_at == clock()
    assert resolver.selected.id == "store-b"

    resolver.cancel_override()
    assert resolver.selected.id == "store-a"


def test_override_of_unknown_store_is_rejected(resolver, here):
    resolver.resolve(here)

    with pytest.raises(ValidationError):
        resolver.override("store-z", "Typo")


def test_cached_directory_used_when_backend_unreachable(resolver, directory, here, clock):
    resolver.resolve(here)
    directory.unreachable = True
    clock.advance(minutes=10)

    resolution = resolver.resolve(here)

    assert resolution.from_cache
    assert resolution.auto_selected.id == "store-a"


def test_stale_cache_is_not_used(resolver, directory, here, clock):
    resolver.resolve(here)
    directory.unreachable = True
    clock.advance(minutes=31)

    with pytest.raises(TransportError):
        resolver.resolve(here)


def test_geofence_radius_is_configurable(directory, clock, here):
    resolver = StoreResolver(directory, geofence_radius_meters=100, clock=clock)

    assert resolver.resolve(here).auto_selected is None
