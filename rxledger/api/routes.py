"""
Flask route handlers for the REST API.
"""

import dataclasses
import sys
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from flask import jsonify, request
from sqlalchemy import text

from rxledger.api.auth import cleanup_expired_sessions, open_session, sessions, token_required
from rxledger.config import MAX_RESULTS_RETURN, UPCOMING_LIMIT
from rxledger.database import as_date
from rxledger.errors import PharmacyError, ValidationError
from rxledger.models import FillRequest, MedicationIdentity, PrescriptionRecord
from rxledger.rbac import load_session
from rxledger.reports import dispensing_rows

ERROR_STATUS = {
    "ValidationError": 400,
    "Unauthorized": 403,
    "NotFound": 404,
    "DuplicateIdentifier": 409,
    "InsufficientStock": 409,
    "Conflict": 409,
    "StorageError": 500,
}


# ── Serialisation helpers ────────────────────────────────────────────

def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def to_json(obj) -> Dict[str, Any]:
    data = {k: _plain(v) for k, v in dataclasses.asdict(obj).items()}
    if isinstance(obj, PrescriptionRecord):
        data["next_refill_date"] = obj.next_refill_date.isoformat()
    return data


def _json_body() -> Dict[str, Any]:
    if not request.is_json:
        raise ValidationError("Content-Type must be application/json")
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


def _require(data: Dict[str, Any], *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise ValidationError(f"missing required fields: {', '.join(missing)}")


def _parse_date(value, name: str) -> date:
    try:
        return as_date(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)") from None


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer") from None


def register_routes(app, engine, service):
    """Register all API routes on the Flask *app*."""

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "rxledger pharmacy API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "auth": "/api/auth/login",
                "medications": "/api/medications",
                "prescriptions": "/api/prescriptions",
                "dashboard": "/api/dashboard/stats",
                "patients": "/api/patients",
                "audit": "/api/audit-logs",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        database_ok = False
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            database_ok = True
        except Exception as e:
            print(f"[WARN] Health check failed: {e}", file=sys.stderr)

        return jsonify({
            "status": "healthy" if database_ok else "unhealthy",
            "checks": {"database": database_ok},
            "active_sessions": len(sessions),
        }), 200 if database_ok else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        data = _json_body()
        api_key = str(data.get("api_key", "")).strip()
        if not api_key:
            return jsonify({"error": "api_key is required"}), 400

        try:
            session = load_session(engine, api_key)
        except ValueError as e:
            return jsonify({"error": f"Authentication failed: {str(e)}"}), 401

        cleanup_expired_sessions()
        token = open_session(session)
        return jsonify({
            "success": True,
            "token": token,
            "user": {"username": session.username, "role": session.role.value},
        }), 200

    @app.route("/api/auth/logout", methods=["POST"])
    @token_required
    def logout():
        sessions.pop(request.token, None)
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    # ── Medications ──────────────────────────────────────────────────

    @app.route("/api/medications", methods=["GET"])
    @token_required
    def list_medications():
        meds = service.list_medications(request.args.get("filter"))
        return jsonify({
            "success": True,
            "count": len(meds),
            "medications": [to_json(m) for m in meds[:MAX_RESULTS_RETURN]],
        }), 200

    @app.route("/api/medications", methods=["POST"])
    @token_required
    def register_medication():
        data = _json_body()
        _require(data, "din", "name", "stock", "price", "expiration")
        medication_id = service.register_medication(
            request.rx_session,
            MedicationIdentity(din=str(data["din"]), name=str(data["name"]), ndc=data.get("ndc")),
            data["stock"],
            data["price"],
            _parse_date(data["expiration"], "expiration"),
            description=data.get("description"),
        )
        return jsonify({"success": True, "id": medication_id}), 201

    @app.route("/api/medications/<int:medication_id>", methods=["PATCH"])
    @token_required
    def update_medication(medication_id):
        service.update_medication(request.rx_session, medication_id, _json_body())
        return jsonify({"success": True}), 200

    # ── Fulfillment ──────────────────────────────────────────────────

    @app.route("/api/prescriptions", methods=["POST"])
    @token_required
    def fill_prescription():
        data = _json_body()
        _require(data, "patient_id", "medication_id", "prescriber", "sig",
                 "quantity", "days_supply", "refills_remaining")
        fill = FillRequest(
            patient_id=data["patient_id"],
            medication_id=data["medication_id"],
            prescriber=str(data["prescriber"]),
            sig=str(data["sig"]),
            quantity=data["quantity"],
            days_supply=data["days_supply"],
            refills_remaining=data["refills_remaining"],
            date_filled=_parse_date(data.get("date_filled") or date.today(), "date_filled"),
        )
        record_id = service.fill_prescription(request.rx_session, fill)
        return jsonify({"success": True, "id": record_id}), 201

    # ── Refill schedule ──────────────────────────────────────────────

    @app.route("/api/dashboard/stats", methods=["GET"])
    @token_required
    def dashboard_stats():
        return jsonify({"success": True, "stats": service.dashboard_stats()}), 200

    @app.route("/api/refills/upcoming", methods=["GET"])
    @token_required
    def upcoming_refills():
        records = service.upcoming_refills(_int_arg("limit", UPCOMING_LIMIT))
        return jsonify({"success": True, "refills": [to_json(r) for r in records]}), 200

    @app.route("/api/refills/due", methods=["GET"])
    @token_required
    def due_prescriptions():
        records = service.due_prescriptions(request.args.get("filter", "today"))
        return jsonify({"success": True, "prescriptions": [to_json(r) for r in records]}), 200

    @app.route("/api/refills/<int:record_id>/queue", methods=["POST"])
    @token_required
    def queue_refill(record_id):
        handoff = service.queue_refill(request.rx_session, record_id)
        return jsonify({"success": True, "handoff": to_json(handoff)}), 200

    @app.route("/api/refills/handoff", methods=["POST"])
    @token_required
    def take_refill():
        handoff = service.take_refill(request.rx_session)
        return jsonify({
            "success": True,
            "handoff": to_json(handoff) if handoff else None,
        }), 200

    # ── Patients ─────────────────────────────────────────────────────

    @app.route("/api/patients", methods=["GET"])
    @token_required
    def search_patients():
        found = service.search_patients(request.args.get("search", ""))
        return jsonify({
            "success": True,
            "count": len(found),
            "patients": [to_json(p) for p in found[:MAX_RESULTS_RETURN]],
        }), 200

    @app.route("/api/patients", methods=["POST"])
    @token_required
    def add_patient():
        patient_id = service.add_patient(request.rx_session, _json_body())
        return jsonify({"success": True, "id": patient_id}), 201

    @app.route("/api/patients/<int:patient_id>/history", methods=["GET"])
    @token_required
    def patient_history(patient_id):
        records = service.patient_history(patient_id)
        return jsonify({"success": True, "history": [to_json(r) for r in records]}), 200

    # ── Audit / reports ──────────────────────────────────────────────

    @app.route("/api/audit-logs", methods=["GET"])
    @token_required
    def audit_logs():
        entries = service.audit_logs(request.rx_session)
        return jsonify({"success": True, "logs": [to_json(e) for e in entries]}), 200

    @app.route("/api/reports/inventory", methods=["GET"])
    @token_required
    def inventory_report():
        return jsonify({
            "success": True,
            "inventory": service.inventory_report(),
            "dispensing": dispensing_rows(service.dispensing_summary()),
        }), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(PharmacyError)
    def pharmacy_error(e):
        status = ERROR_STATUS.get(e.kind, 500)
        if status == 500:
            print(f"[ERROR] {e.kind}: {e}", file=sys.stderr)
        return jsonify({"success": False, "error": e.kind, "details": str(e)}), status

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
