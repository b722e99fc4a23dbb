"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

GEOFENCE_RADIUS_METERS = 200
REQUIRED_GPS_ACCURACY_METERS = 50

BREAK_REQUIRED_AFTER_SECONDS = 6 * 3600
OVERTIME_AFTER_SECONDS = 8 * 3600
MAX_SESSION_SECONDS = 12 * 3600

PAYLOAD_MAX_AGE_SECONDS = 120
PAYLOAD_MAX_SKEW_SECONDS = 5

TICK_INTERVAL_SECONDS = 1.0

QR_TOKEN_LIFETIME_SECONDS = 30
STORE_CACHE_MAX_AGE_SECONDS = 30 * 60

DEFAULT_API_TIMEOUT_SECONDS = 10
