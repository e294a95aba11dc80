# Overview: Flask API routes for shift (day-close) status, checkout and history.

from flask import Blueprint, request, jsonify, g, current_app

from ..money import format_amount
from ..services import lifecycle_service
from ..services.invoice_service import InvoiceError, PersistenceError
from ..services.lifecycle_service import LifecycleError
from ..decorators import require_franchise
from billing.time_utils import to_utc_z


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _status_payload(status: dict) -> dict:
    return {
        **status,
        "last_close_at": to_utc_z(status["last_close_at"]),
        "history_start": to_utc_z(status["history_start"]),
    }


@shifts_bp.get("/status")
@require_franchise
def shift_status_route():
    status = lifecycle_service.get_shift_status(g.franchise_id)
    return jsonify(_status_payload(status)), 200


@shifts_bp.post("/close")
@require_franchise
def close_shift_route():
    """
    Close today's shift (checkout).

    Error responses:
        409: ShiftLocked (previous close is less than the lock duration ago)
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    try:
        boundary = lifecycle_service.close_shift(g.franchise_id, closed_by=data.get("closed_by"))
        status = lifecycle_service.get_shift_status(g.franchise_id)
        return jsonify({"boundary": boundary.to_dict(), "status": _status_payload(status)}), 201

    except LifecycleError as e:
        return jsonify({"error": str(e), "code": e.code}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except InvoiceError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/history")
@require_franchise
def shift_history_route():
    """Invoices since the last day-close, with order count and sales total."""
    history = lifecycle_service.current_shift_history(g.franchise_id)
    return jsonify({
        "franchise_id": history["franchise_id"],
        "history_start": to_utc_z(history["history_start"]),
        "order_count": history["order_count"],
        "total_sales": format_amount(history["total_sales"]),
        "invoices": [inv.to_dict(include_lines=False) for inv in history["invoices"]],
    }), 200
