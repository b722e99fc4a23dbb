from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.http_gateway import HttpAttendanceGateway
from .attendance.service import AttendanceService
from .attendance.ticker import AttendanceTicker
from .common.http_base import ApiClient, ApiConfig
from .core.constants import GEOFENCE_RADIUS_METERS
from .core.enums import ClockOutPolicy
from .stores.http_store_directory import HttpStoreDirectory
from .strategies.devices import HeadlessDeviceBridge
from .strategies.qr_tokens import QRTokenIssuer
from .strategies.registry import StrategyRegistry


@dataclass(frozen=True)
class Container:
    api_client: ApiClient

    attendance_gateway: HttpAttendanceGateway
    store_directory: HttpStoreDirectory
    devices: HeadlessDeviceBridge
    qr_issuer: QRTokenIssuer

    attendance_service: AttendanceService


def build_container(
    *,
    api_config: dict,
    qr_secret: str,
    geofence_radius_meters: float = GEOFENCE_RADIUS_METERS,
    clock_out_policy: str = ClockOutPolicy.AUTO_CLOSE_BREAK.value,
    api_client: Optional[ApiClient] = None,
) -> Container:
    config = ApiConfig(
        base_url=str(api_config["base_url"]),
        tenant_id=str(api_config["tenant_id"]),
        timeout_seconds=float(api_config.get("timeout_seconds", 10)),
    )
    api_client = api_client or ApiClient(config)

    attendance_gateway = HttpAttendanceGateway(api_client)
    store_directory = HttpStoreDirectory(api_client)
    devices = HeadlessDeviceBridge()
    qr_issuer = QRTokenIssuer(qr_secret)

    attendance_service = AttendanceService(
        attendance_gateway,
        store_directory,
        registry_factory=lambda: StrategyRegistry.default(devices, qr_issuer),
        tenant_id=config.tenant_id,
        clock_out_policy=ClockOutPolicy(clock_out_policy),
        geofence_radius_meters=geofence_radius_meters,
        ticker_factory=AttendanceTicker,
    )

    return Container(
        api_client=api_client,
        attendance_gateway=attendance_gateway,
        store_directory=store_directory,
        devices=devices,
        qr_issuer=qr_issuer,
        attendance_service=attendance_service,
    )
