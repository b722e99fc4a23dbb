import pytest

from time_attendance.attendance.model import VerificationPayload
from time_attendance.core.enums import TrackingMethod
from time_attendance.core.exceptions import PreparationError, VerificationError
from time_attendance.stores.model import Position
from time_attendance.stores.position import ReportedPositionSource
from time_attendance.strategies.badge_strategy import BadgeStrategy, assess_badge, detect_badge_format
from time_attendance.strategies.base import DeviceCapabilities, StrategyContext
from time_attendance.strategies.devices import HeadlessDeviceBridge
from time_attendance.strategies.gps_strategy import GPSStrategy
from time_attendance.strategies.nfc_strategy import NFCStrategy
from time_attendance.strategies.qr_strategy import QRStrategy
from time_attendance.strategies.qr_tokens import QRTokenIssuer
from time_attendance.strategies.smart_strategy import SmartStrategy, calculate_confidence
from time_attendance.strategies.web_strategy import WebStrategy

from fakes import BASE_LAT, BASE_LNG

SECURE_BROWSER = {
    "userAgent": "Mozilla/5.0 (X11; Linux x86_64) Chrome/126.0",
    "platform": "Linux x86_64",
    "language": "it-IT",
    "timezone": "Europe/Rome",
    "screenResolution": "1920x1080",
    "colorDepth": 24,
    "cookieEnabled": True,
    "protocol": "https",
}


class WatchedSource(ReportedPositionSource):
    def __init__(self, position=None, **kwargs):
        super().__init__(position, **kwargs)
        self.watches = []

    def watch(self):
        handle = super().watch()
        self.watches.append(handle)
        return handle


@pytest.fixture
def bridge():
    return HeadlessDeviceBridge()


def here(accuracy: float = 10.0) -> Position:
    return Position(lat=BASE_LAT, lng=BASE_LNG, accuracy_meters=accuracy)


def make_context(store, **kwargs) -> StrategyContext:
    kwargs.setdefault("capabilities", DeviceCapabilities(geolocation=True, nfc=True, camera=True))
    return StrategyContext(user_id="u1", selected_store=store, **kwargs)


def base_payload(clock, method=TrackingMethod.GPS) -> VerificationPayload:
    return VerificationPayload(method=method, evidence={}, captured_at=clock())


# ---- gps ---------------------------------------------------------------------


def test_gps_inside_geofence_is_valid(store_a, clock):
    strategy = GPSStrategy()
    context = make_context(store_a, position_source=WatchedSource(here()))
    strategy.prepare(context)

    result = strategy.validate(context)
    payload = strategy.augment_payload(base_payload(clock), context)

    assert result.is_valid
    assert result.warnings == ()
    assert result.metadata["withinGeofence"] is True
    assert payload.geo_location.lat == BASE_LAT
    assert payload.evidence["storeId"] == "store-a"


def test_gps_outside_geofence_is_valid_with_warning(store_b):
    strategy = GPSStrategy()
    context = make_context(store_b, position_source=WatchedSource(here()))
    strategy.prepare(context)

    result = strategy.validate(context)

    assert result.is_valid
    assert result.warnings == ("Outside geofence: 500m from Store B",)
    assert result.metadata["requiresOverride"] is True


def test_gps_rejects_low_accuracy(store_a):
    strategy = GPSStrategy()
    context = make_context(store_a, position_source=WatchedSource(here(accuracy=80)))
    strategy.prepare(context)

    result = strategy.validate(context)

    assert not result.is_valid
    assert "accuracy too low" in result.error


def test_gps_without_position_source_cannot_prepare(store_a):
    with pytest.raises(PreparationError):
        GPSStrategy().prepare(make_context(store_a))


def test_gps_teardown_stops_position_watch(store_a):
    source = WatchedSource(here())
    strategy = GPSStrategy()
    strategy.prepare(make_context(store_a, position_source=source))

    strategy.teardown()

    assert [w.stopped for w in source.watches] == [True]
    assert not strategy.is_prepared


# ---- nfc ---------------------------------------------------------------------


@pytest.mark.parametrize(
    "tag_id, valid",
    [("04A1B2C3", True), ("04A1B2C3D4E5F6A7", True), ("04A1B2", False), ("04-A1-B2-C3", False)],
)
def test_nfc_tag_format(store_a, bridge, tag_id, valid):
    strategy = NFCStrategy(bridge)
    context = make_context(store_a, inputs={"nfcTagId": tag_id})
    strategy.prepare(context)

    assert strategy.validate(context).is_valid is valid


def test_nfc_requires_scanned_tag(store_a, bridge):
    strategy = NFCStrategy(bridge)
    context = make_context(store_a)
    strategy.prepare(context)

    assert strategy.validate(context).error == "No NFC tag scanned"
    strategy.teardown()
    assert bridge.open_handles == []


# ---- qr ----------------------------------------------------------------------


def test_qr_token_roundtrip_and_expiry(store_a, bridge, clock):
    issuer = QRTokenIssuer("secret", clock=clock)
    strategy = QRStrategy(bridge, issuer=issuer)
    token = issuer.issue("store-a").token
    context = make_context(store_a, inputs={"qrToken": token})
    strategy.prepare(context)

    assert strategy.validate(context).is_valid
    assert strategy.augment_payload(base_payload(clock, TrackingMethod.QR), context).evidence["token"] == token

    clock.advance(seconds=30)
    result = strategy.validate(context)
    assert not result.is_valid
    assert "expired" in result.error


def test_qr_token_is_bound_to_store(store_b, bridge, clock):
    issuer = QRTokenIssuer("secret", clock=clock)
    strategy = QRStrategy(bridge, issuer=issuer)
    context = make_context(store_b, inputs={"qrToken": issuer.issue("store-a").token})
    strategy.prepare(context)

    assert strategy.validate(context).error == "QR code belongs to another store"


def test_qr_token_signature_is_checked(clock):
    issuer = QRTokenIssuer("secret", clock=clock)
    forged = QRTokenIssuer("other-secret", clock=clock).issue("store-a").token

    with pytest.raises(VerificationError):
        issuer.verify(forged, store_id="store-a")
    with pytest.raises(VerificationError):
        issuer.verify("not-a-token", store_id="store-a")


def test_qr_needs_store_before_opening_camera(bridge, clock):
    strategy = QRStrategy(bridge, issuer=QRTokenIssuer("secret", clock=clock))

    with pytest.raises(PreparationError):
        strategy.prepare(make_context(None))

    assert bridge.open_handles == []


# ---- badge -------------------------------------------------------------------


@pytest.mark.parametrize(
    "badge_id, expected",
    [
        ("EMP12345", "employee"),
        ("84726153", "numeric"),
        ("DEADBEEF", "hex"),
        ("XK7Q92PM", "alphanumeric"),
        ("STORE-042_B", "generic"),
        ("x!", None),
    ],
)
def test_badge_format_detection(badge_id, expected):
    assert detect_badge_format(badge_id) == expected


def test_badge_assessment_levels():
    assert assess_badge("X7K9P2QM").level == "strong"
    assert assess_badge("AAAA1234").level == "medium"
    weak = assess_badge("1111")
    assert weak.level == "medium"
    assert weak.flags == ("repeated_chars",)
    assert assess_badge("0000").flags == ("repeated_chars", "weak_pattern")


def test_badge_with_weak_pattern_is_valid_with_warnings(store_a, bridge):
    strategy = BadgeStrategy(bridge)
    context = make_context(store_a, inputs={"badgeId": "TEST1234"})
    strategy.prepare(context)

    result = strategy.validate(context)

    assert result.is_valid
    assert "Badge contains common weak pattern" in result.warnings
    assert "Badge contains sequential pattern" in result.warnings


# ---- web ---------------------------------------------------------------------


def test_web_fingerprint_from_secure_browser(store_a):
    strategy = WebStrategy()
    context = make_context(store_a, inputs={"fingerprint": SECURE_BROWSER})
    strategy.prepare(context)

    result = strategy.validate(context)

    assert result.is_valid
    assert result.warnings == ()
    assert result.metadata["securityLevel"] == "high"
    assert len(result.metadata["browserHash"]) == 16


def test_web_fingerprint_hash_is_stable():
    strategy = WebStrategy()
    first = strategy.evidence(make_context(None, inputs={"fingerprint": SECURE_BROWSER}))
    second = strategy.evidence(make_context(None, inputs={"fingerprint": dict(SECURE_BROWSER, protocol="http")}))

    assert first["browserHash"] == second["browserHash"]


def test_web_low_security_lists_risk_factors(store_a):
    strategy = WebStrategy()
    risky = {"userAgent": "PhantomJS/2.1", "cookieEnabled": False, "doNotTrack": "1", "protocol": "http"}
    context = make_context(store_a, inputs={"fingerprint": risky})

    result = strategy.validate(context)

    assert result.is_valid
    assert result.warnings[0] == "Low security level detected"
    assert "Automated browser detected" in result.warnings
    assert "Insecure connection (HTTP)" in result.warnings


def test_web_without_fingerprint_fails(store_a):
    assert not WebStrategy().validate(make_context(store_a)).is_valid


# ---- smart -------------------------------------------------------------------


def smart_with(bridge):
    nfc = NFCStrategy(bridge)
    gps = GPSStrategy(bridge)
    web = WebStrategy(bridge)
    return SmartStrategy([web, gps, nfc]), nfc, gps, web


def test_smart_prefers_nfc(store_a, bridge, clock):
    smart, nfc, gps, web = smart_with(bridge)
    context = make_context(store_a, inputs={"nfcTagId": "04A1B2C3"}, position_source=WatchedSource(here()))

    metadata = smart.prepare(context)
    payload = smart.augment_payload(base_payload(clock, TrackingMethod.SMART), context)

    assert smart.delegate is nfc
    assert metadata["confidence"] == 100
    assert payload.method == TrackingMethod.SMART
    assert payload.evidence["delegatedMethod"] == "nfc"
    assert payload.evidence["tagId"] == "04A1B2C3"
    assert not gps.is_prepared


def test_smart_falls_through_to_gps_and_releases_nfc(store_a, bridge, clock):
    smart, nfc, gps, web = smart_with(bridge)
    context = make_context(store_a, position_source=WatchedSource(here()))

    metadata = smart.prepare(context)
    result = smart.validate(context)
    payload = smart.augment_payload(base_payload(clock, TrackingMethod.SMART), context)

    assert smart.delegate is gps
    assert metadata["confidence"] == 90
    assert not nfc.is_prepared
    assert bridge.open_handles == []
    assert result.metadata["selectedStrategy"] == "gps"
    assert "NFC: Validation failed - No NFC tag scanned" in metadata["detectionReasons"]
    assert payload.geo_location is not None


def test_smart_falls_back_when_delegate_stops_validating(store_a, bridge):
    smart, nfc, gps, web = smart_with(bridge)
    source = WatchedSource(here())
    smart.prepare(make_context(store_a, inputs={"nfcTagId": "04A1B2C3"}, position_source=source))

    result = smart.validate(make_context(store_a, position_source=source))

    assert result.is_valid
    assert smart.delegate is gps
    assert result.metadata["confidence"] == 25
    assert not nfc.is_prepared


def test_smart_without_any_working_method_fails(store_a, bridge):
    smart, nfc, gps, web = smart_with(bridge)
    context = make_context(store_a, capabilities=DeviceCapabilities(nfc=True, web=False))

    with pytest.raises(PreparationError):
        smart.prepare(context)

    assert bridge.open_handles == []
    assert not smart.is_prepared


def test_smart_teardown_releases_delegate(store_a, bridge):
    smart, nfc, gps, web = smart_with(bridge)
    smart.prepare(make_context(store_a, inputs={"nfcTagId": "04A1B2C3"}))
    assert bridge.open_handles == ["nfc_reader"]

    smart.teardown()

    assert bridge.open_handles == []
    assert smart.delegate is None


def test_confidence_penalises_warnings():
    from time_attendance.strategies.base import StrategyValidation

    clean = StrategyValidation.ok({})
    noisy = StrategyValidation.ok({}, warnings=("a", "b"))

    assert calculate_confidence(TrackingMethod.WEB, {}, clean) == 75
    assert calculate_confidence(TrackingMethod.WEB, {}, noisy) == 50
    assert calculate_confidence(TrackingMethod.NFC, {"x": 1}, clean) == 100


def test_required_permissions_are_aggregated(bridge):
    smart, *_ = smart_with(bridge)

    assert smart.required_permissions() == ["nfc", "geolocation"]
