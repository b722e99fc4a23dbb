from __future__ import annotations

import io
import logging
from functools import wraps

import qrcode
from flask import Flask, jsonify, request, send_file, session

from ..common.datetime_utils import now_utc
from ..core.exceptions import DomainError
from ..container import Container
from ..stores.position import ReportedPositionSource
from ..strategies.base import DeviceCapabilities, StrategyContext

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "validation": 400,
    "verification": 422,
    "conflict": 409,
    "state": 409,
    "preparation": 422,
    "transport": 503,
}


def error_response(error: DomainError):
    body = {
        "success": False,
        "message": str(error),
        "kind": error.kind,
        "retryable": error.retryable,
    }
    return jsonify(body), ERROR_STATUS.get(error.kind, 400)


def strategy_context(user_id: str, data: dict) -> StrategyContext:
    """Build the verification context from a request body.

    Body keys: ``capabilities``, ``inputs``, ``position`` and ``deviceInfo``.
    """
    device_info = dict(data.get("deviceInfo") or {})
    device_info.setdefault("userAgent", request.headers.get("User-Agent", ""))
    position = data.get("position")
    return StrategyContext(
        user_id=user_id,
        position_source=ReportedPositionSource.from_json(position, now=now_utc()) if position is not None else None,
        capabilities=DeviceCapabilities.from_json(data.get("capabilities")),
        inputs=dict(data.get("inputs") or {}),
        device_info=device_info,
    )


def register(app: Flask, container: Container) -> None:
    service = container.attendance_service

    def login_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if "user_id" not in session:
                return jsonify({"success": False, "message": "Please sign in to continue"}), 401
            return view(*args, **kwargs)

        return wrapper

    def current_user() -> str:
        return str(session["user_id"])

    def body() -> dict:
        return request.get_json(silent=True) or {}

    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        logger.info("%s %s failed: [%s] %s", request.method, request.path, e.kind, e)
        return error_response(e)

    @app.route("/api/attendance/status", methods=["GET"], endpoint="attendance_status")
    @login_required
    def attendance_status():
        if request.args.get("restore") == "1":
            service.restore_session(current_user())
        return jsonify({"success": True, "data": service.status(current_user())})

    @app.route("/api/attendance/method", methods=["POST"], endpoint="attendance_method")
    @login_required
    def attendance_method():
        data = body()
        user_id = current_user()
        context = strategy_context(user_id, data)
        method = data.get("method")
        if not method or method == "auto":
            selected = service.auto_select_method(user_id, context)
            return jsonify({"success": True, "method": selected.value if selected else None, "metadata": {}})

        metadata = service.select_method(user_id, method, context)
        return jsonify({"success": True, "method": str(method), "metadata": dict(metadata)})

    @app.route("/api/attendance/store", methods=["POST"], endpoint="attendance_store")
    @login_required
    def attendance_store():
        store = service.select_store(current_user(), str(body().get("storeId") or ""))
        return jsonify({"success": True, "store": store.to_dict()})

    @app.route("/api/attendance/clock-in", methods=["POST"], endpoint="attendance_clock_in")
    @login_required
    def attendance_clock_in():
        user_id = current_user()
        result = service.clock_in(user_id, strategy_context(user_id, body()))
        return jsonify(
            {
                "success": True,
                "message": "Clocked in",
                "session": result.session.to_dict(),
                "warnings": list(result.warnings),
            }
        ), 201

    @app.route("/api/attendance/clock-out", methods=["POST"], endpoint="attendance_clock_out")
    @login_required
    def attendance_clock_out():
        result = service.clock_out(current_user())
        return jsonify(
            {
                "success": True,
                "message": "Clocked out",
                "session": result.session.to_dict(),
                "warnings": list(result.warnings),
            }
        )

    @app.route("/api/attendance/break/start", methods=["POST"], endpoint="attendance_break_start")
    @login_required
    def attendance_break_start():
        attendance = service.start_break(current_user())
        return jsonify({"success": True, "message": "Break started", "session": attendance.to_dict()})

    @app.route("/api/attendance/break/end", methods=["POST"], endpoint="attendance_break_end")
    @login_required
    def attendance_break_end():
        attendance = service.end_break(current_user())
        return jsonify({"success": True, "message": "Break ended", "session": attendance.to_dict()})

    @app.route("/api/attendance/error/clear", methods=["POST"], endpoint="attendance_error_clear")
    @login_required
    def attendance_error_clear():
        service.clear_error(current_user())
        return jsonify({"success": True, "data": service.status(current_user())})

    @app.route("/api/stores/resolve", methods=["POST"], endpoint="stores_resolve")
    @login_required
    def stores_resolve():
        source = ReportedPositionSource.from_json(body().get("position"), now=now_utc())
        resolution = service.resolve_stores(current_user(), source)
        return jsonify({"success": True, "data": resolution.to_dict()})

    @app.route("/api/stores/override", methods=["POST"], endpoint="stores_override")
    @login_required
    def stores_override():
        data = body()
        override = service.override_store(
            current_user(),
            str(data.get("storeId") or ""),
            str(data.get("reason") or ""),
        )
        return jsonify(
            {
                "success": True,
                "store": override.store.to_dict(),
                "reason": override.reason,
                "createdAt": override.created_at.isoformat(),
            }
        )

    @app.route("/api/attendance/qr/<store_id>", methods=["GET"], endpoint="attendance_qr_token")
    @login_required
    def attendance_qr_token(store_id: str):
        token = container.qr_issuer.issue(store_id)
        return jsonify({"success": True, "data": token.to_dict()})

    @app.route("/api/attendance/qr/<store_id>/image.png", methods=["GET"], endpoint="attendance_qr_image")
    @login_required
    def attendance_qr_image(store_id: str):
        token = container.qr_issuer.issue(store_id)
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=2,
        )
        qr.add_data(token.token)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        buf.seek(0)
        return send_file(buf, mimetype="image/png")
