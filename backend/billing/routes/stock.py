# Overview: Flask API routes for stock lookups; read-only.

from flask import Blueprint, request, jsonify

from ..services import inventory_service
from ..services.inventory_service import StockItemNotFoundError
from ..decorators import require_franchise


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/")
@require_franchise
def list_stock_route():
    category = request.args.get("category")
    items = inventory_service.list_stock_items(category=category)
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@stock_bp.get("/low")
@require_franchise
def low_stock_route():
    """Items at or below their threshold (dashboard alert list)."""
    items = inventory_service.list_low_stock_items()
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@stock_bp.get("/<int:stock_item_id>")
@require_franchise
def get_stock_route(stock_item_id: int):
    try:
        item = inventory_service.get_stock_item(stock_item_id)
    except StockItemNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"item": item.to_dict()}), 200
