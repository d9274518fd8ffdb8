from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .errors import Exhausted, Inconsistent, NotFound, ReservationError
from .records import ReservationRecord
from .scheduling import MIN_PRIORITY, SchedulingService
from .yaml_store import ReservationYamlRepository


def create_app(
    data_dir: str | Path = "data",
    now_provider: Callable[[], datetime] | None = None,
) -> Flask:
    app = Flask(__name__)
    repository = ReservationYamlRepository(data_dir)
    service = SchedulingService(repository, now_provider=now_provider)
    app.config["SCHEDULING_SERVICE"] = service

    def _serialize(record: ReservationRecord) -> dict[str, Any]:
        return record.to_dict()

    def _error(error: Exception) -> Any:
        if isinstance(error, NotFound):
            return jsonify({"ok": False, "message": str(error)}), 404
        if isinstance(error, (Exhausted, Inconsistent)):
            return jsonify({"ok": False, "message": str(error)}), 409
        return jsonify({"ok": False, "message": str(error)}), 400

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.post("/api/reservations")
    def create_reservation() -> Any:
        payload = request.get_json(silent=True) or {}
        resource = str(payload.get("resource", "")).strip()
        username = str(payload.get("username", "")).strip()
        if not resource or not username:
            return jsonify({"ok": False, "message": "resource and username are required."}), 400

        try:
            start = datetime.fromisoformat(str(payload.get("start", "")))
            end = datetime.fromisoformat(str(payload.get("end", "")))
            priority = int(payload.get("priority", MIN_PRIORITY))
            defer = _parse_flag(payload.get("defer", True))
        except (TypeError, ValueError):
            return jsonify({"ok": False, "message": "start, end, priority and defer are malformed."}), 400

        try:
            created = service.create_reservation(
                resource,
                username,
                start,
                end,
                purpose=str(payload.get("purpose", "")),
                priority=priority,
                defer=defer,
            )
        except ReservationError as error:
            return _error(error)

        deferred = created.start != start
        return jsonify({"ok": True, "deferred": deferred, "reservation": _serialize(created)}), 201

    @app.delete("/api/reservations/<reservation_id>")
    def cancel_reservation(reservation_id: str) -> Any:
        try:
            cancelled = service.cancel_reservation(reservation_id)
        except ReservationError as error:
            return _error(error)
        return jsonify({"ok": True, "cancelled": cancelled})

    @app.get("/api/reservations")
    def list_reservations() -> Any:
        start_text = request.args.get("start")
        end_text = request.args.get("end")
        if start_text is None and end_text is None:
            records = service.list_reservations()
        else:
            try:
                start = datetime.fromisoformat(str(start_text))
                end = datetime.fromisoformat(str(end_text))
                records = service.list_in_range(start, end)
            except ValueError as error:
                return _error(error)
        return jsonify({"ok": True, "reservations": [_serialize(record) for record in records]})

    @app.get("/api/availability")
    def availability() -> Any:
        resource = str(request.args.get("resource", "")).strip()
        if not resource:
            return jsonify({"ok": False, "message": "resource is required."}), 400
        try:
            start = datetime.fromisoformat(str(request.args.get("start", "")))
            end = datetime.fromisoformat(str(request.args.get("end", "")))
            available = service.is_resource_available(resource, start, end)
        except ValueError as error:
            return _error(error)
        return jsonify({"ok": True, "resource": resource, "available": available})

    @app.get("/api/resources/<name>/reservations")
    def resource_reservations(name: str) -> Any:
        try:
            records = service.reservations_for_resource(name)
        except ReservationError as error:
            return _error(error)
        return jsonify({"ok": True, "reservations": [_serialize(record) for record in records]})

    @app.get("/api/users/<username>/reservations")
    def user_reservations(username: str) -> Any:
        active_only = str(request.args.get("active", "")).lower() in {"1", "true", "yes"}
        try:
            records = service.reservations_for_subject(username, active_only=active_only)
        except ReservationError as error:
            return _error(error)
        return jsonify({"ok": True, "reservations": [_serialize(record) for record in records]})

    @app.post("/api/housekeeping")
    def housekeeping() -> Any:
        report = service.run_housekeeping()
        return jsonify({"ok": True, "expired": report.expired, "purged": report.purged})

    return app


def _parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
    raise ValueError(f"Expected a boolean flag, got {value!r}")
