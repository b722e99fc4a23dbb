SECRET_KEY = "test-secret-key"
DEBUG = False
TESTING = True
LOG_LEVEL = "WARNING"

API_CONFIG = {
    "base_url": "http://backend.test",
    "tenant_id": "test-tenant",
    "timeout_seconds": 1.0,
}

QR_SECRET = "test-qr-secret"
GEOFENCE_RADIUS_METERS = 200.0
CLOCK_OUT_POLICY = "auto_close_break"
