import os

SECRET_KEY = os.environ["SECRET_KEY"]
DEBUG = False
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

API_CONFIG = {
    "base_url": os.environ["API_BASE_URL"],
    "tenant_id": os.environ["TENANT_ID"],
    "timeout_seconds": float(os.getenv("API_TIMEOUT_SECONDS", "10")),
}

QR_SECRET = os.environ["QR_SECRET"]
GEOFENCE_RADIUS_METERS = float(os.getenv("GEOFENCE_RADIUS_METERS", "200"))
CLOCK_OUT_POLICY = os.getenv("CLOCK_OUT_POLICY", "auto_close_break")
