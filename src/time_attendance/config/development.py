import os

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
DEBUG = bool(int(os.getenv("DEBUG", "1")))
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

API_CONFIG = {
    "base_url": os.getenv("API_BASE_URL", "http://localhost:3000"),
    "tenant_id": os.getenv("TENANT_ID", "demo-tenant"),
    "timeout_seconds": float(os.getenv("API_TIMEOUT_SECONDS", "10")),
}

QR_SECRET = os.getenv("QR_SECRET", "dev-qr-secret")
GEOFENCE_RADIUS_METERS = float(os.getenv("GEOFENCE_RADIUS_METERS", "200"))
CLOCK_OUT_POLICY = os.getenv("CLOCK_OUT_POLICY", "auto_close_break")
