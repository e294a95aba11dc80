# Overview: Flask API routes for invoices; parses input and returns JSON responses.

# backend/billing/routes/invoices.py
"""Invoice API routes, scoped to the caller's franchise"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import invoice_service, lifecycle_service, pagination_service
from ..services.invoice_service import (
    InvoiceError,
    InvoiceNotFoundError,
    InsufficientStockError,
    StockConflictError,
    PersistenceError,
)
from ..services.lifecycle_service import LifecycleError
from ..validation import ValidationError
from ..decorators import require_franchise
from billing.time_utils import parse_iso_datetime


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

TEMPLATES = {
    "invoice": "INVOICE_PAGE_SIZE",
    "receipt": "RECEIPT_PAGE_SIZE",
}


def invoice_error_response(e: InvoiceError):
    if isinstance(e, InvoiceNotFoundError):
        status = 404
    elif isinstance(e, (InsufficientStockError, StockConflictError)):
        status = 409
    elif isinstance(e, PersistenceError):
        status = 503
    else:
        status = 400
    return jsonify({"error": str(e), "code": type(e).__name__, "details": e.details}), status


def lifecycle_error_response(e: LifecycleError):
    return jsonify({"error": str(e), "code": e.code}), 409


@invoices_bp.post("/")
@require_franchise
def create_invoice_route():
    """
    Create an invoice from selected stock items and deduct stock.

    Body:
        {
            "lines": [{"stock_item_id": 1, "quantity": 2, "version_id": 3?}, ...],
            "customer": {"name", "phone", "email", "address", "branch_location"},
            "company": {"name", "address", "gstin", "terms"},
            "created_by": "user-id"
        }
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400

    try:
        invoice = invoice_service.create_invoice(
            franchise_id=g.franchise_id,
            lines=data.get("lines"),
            customer=data.get("customer"),
            company=data.get("company"),
            created_by=data.get("created_by"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InvoiceError as e:
        return invoice_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/")
@require_franchise
def list_invoices_route():
    try:
        created_after = parse_iso_datetime(request.args.get("created_after"))
        created_before = parse_iso_datetime(request.args.get("created_before"))
    except ValueError:
        return jsonify({"error": "created_after/created_before must be ISO-8601 datetimes"}), 400

    try:
        invoices = invoice_service.list_invoices(
            g.franchise_id,
            created_after=created_after,
            created_before=created_before,
            status=request.args.get("status"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"invoices": [inv.to_dict(include_lines=False) for inv in invoices]}), 200


@invoices_bp.get("/<int:invoice_id>")
@require_franchise
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id, franchise_id=g.franchise_id)
    except InvoiceError as e:
        return invoice_error_response(e)
    return jsonify({
        "invoice": invoice.to_dict(),
        "cancellation": lifecycle_service.get_cancellation_status(invoice),
    }), 200


@invoices_bp.get("/<int:invoice_id>/print")
@require_franchise
def print_invoice_route(invoice_id: int):
    """
    Paginated print payload.

    Query: template=invoice (default, A4) | receipt
    """
    template = request.args.get("template", "invoice")
    if template not in TEMPLATES:
        return jsonify({"error": f"template must be one of: {', '.join(TEMPLATES)}"}), 400

    try:
        invoice = invoice_service.get_invoice(invoice_id, franchise_id=g.franchise_id)
        page_size = current_app.config[TEMPLATES[template]]
        payload = pagination_service.render_invoice(invoice, page_size)
        return jsonify(payload), 200

    except InvoiceError as e:
        return invoice_error_response(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to render invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/status")
@require_franchise
def update_status_route(invoice_id: int):
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    new_status = data.get("status")
    if not new_status:
        return jsonify({"error": "status required"}), 400

    try:
        invoice = invoice_service.update_invoice_status(
            invoice_id, new_status, franchise_id=g.franchise_id
        )
        return jsonify({"invoice": invoice.to_dict(include_lines=False)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InvoiceError as e:
        return invoice_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice status")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>/cancellation")
@require_franchise
def cancellation_status_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id, franchise_id=g.franchise_id)
    except InvoiceError as e:
        return invoice_error_response(e)
    return jsonify(lifecycle_service.get_cancellation_status(invoice)), 200


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_franchise
def cancel_invoice_route(invoice_id: int):
    """
    Hard-delete an invoice inside its cancellation window.

    Error responses:
        404: Invoice not found (or already cancelled)
        409: WindowExpired
    """
    try:
        summary = lifecycle_service.cancel_invoice(invoice_id, franchise_id=g.franchise_id)
        return jsonify({
            "invoice_id": summary["invoice_id"],
            "invoice_number": summary["invoice_number"],
            "state": summary["state"],
            "restored": {str(k): v for k, v in summary["restored"].items()},
        }), 200

    except LifecycleError as e:
        return lifecycle_error_response(e)
    except InvoiceError as e:
        return invoice_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel invoice")
        return jsonify({"error": "Internal server error"}), 500
