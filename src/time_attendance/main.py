from __future__ import annotations

import importlib
import logging
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from .attendance.controller import register as register_attendance
from .common.http_base import ApiClient
from .config import get_settings_module
from .container import build_container

logger = logging.getLogger(__name__)


def create_app(*, api_client: Optional[ApiClient] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = get_settings_module()
    settings = importlib.import_module(settings_module)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    api_config = getattr(settings, "API_CONFIG")

    logging.basicConfig(
        level=getattr(settings, "LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info(
        "settings=%s backend=%s tenant=%s",
        settings_module,
        api_config.get("base_url"),
        api_config.get("tenant_id"),
    )

    container = build_container(
        api_config=api_config,
        qr_secret=getattr(settings, "QR_SECRET"),
        geofence_radius_meters=float(getattr(settings, "GEOFENCE_RADIUS_METERS", 200)),
        clock_out_policy=getattr(settings, "CLOCK_OUT_POLICY", "auto_close_break"),
        api_client=api_client,
    )
    app.extensions["time_attendance"] = container

    register_attendance(app, container)

    return app
