# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/retailpos/routes/inventory.py
"""
Inventory management routes.

SECURITY: All routes require authentication.
- View operations require VIEW_INVENTORY permission
- Adjust, receive, thresholds and reconcile require ADJUST_INVENTORY permission

Every stock change appends a row to the inventory ledger; the quantity on
an inventory row is never edited directly.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import PosError, error_response, server_error_response
from ..extensions import db
from ..models import Inventory
from ..services import inventory_service
from ..validation import (
    validate_adjustment,
    validate_bulk_adjustments,
    validate_receive,
    validate_thresholds,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def inventory_overview_route():
    """
    Stock levels of active products, most urgent first.

    Query params:
    - status: in_stock | low_stock | out_of_stock (optional)
    - search: str (optional) - name or SKU substring
    - page / per_page: pagination (default 20, max 100)
    """
    try:
        result = inventory_service.get_inventory_overview(
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get inventory overview")
        return server_error_response()


@inventory_bp.get("/alerts")
@require_auth
@require_permission("VIEW_INVENTORY")
def stock_alerts_route():
    try:
        return jsonify(inventory_service.get_stock_alerts()), 200

    except Exception:
        current_app.logger.exception("Failed to get stock alerts")
        return server_error_response()


@inventory_bp.get("/stats")
@require_auth
@require_permission("VIEW_INVENTORY")
def inventory_stats_route():
    try:
        return jsonify(inventory_service.get_inventory_stats()), 200

    except Exception:
        current_app.logger.exception("Failed to get inventory stats")
        return server_error_response()


@inventory_bp.get("/transactions")
@require_auth
@require_permission("VIEW_INVENTORY")
def inventory_transactions_route():
    """
    Inventory ledger, newest first.

    Query params:
    - product_id: int (optional)
    - type: sale | return | purchase | adjustment (optional)
    - page / per_page: pagination
    """
    try:
        result = inventory_service.list_transactions(
            product_id=request.args.get("product_id", type=int),
            transaction_type=request.args.get("type") or None,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list inventory transactions")
        return server_error_response()


@inventory_bp.get("/reconcile")
@require_auth
@require_permission("ADJUST_INVENTORY")
def reconcile_inventory_route():
    """Compare every cached quantity with the sum of its ledger rows."""
    try:
        return jsonify(inventory_service.reconcile_inventory()), 200

    except Exception:
        current_app.logger.exception("Failed to reconcile inventory")
        return server_error_response()


@inventory_bp.put("/<int:product_id>/adjust")
@require_auth
@require_permission("ADJUST_INVENTORY")
def adjust_inventory_route(product_id: int):
    """
    Manual stock adjustment.

    Body: {"quantity": int >= 0, "reason": str, "type": "add" | "remove" | "set"}
    """
    try:
        adjustment = validate_adjustment(request.get_json(silent=True))
        result = inventory_service.adjust_inventory(product_id, adjustment, user_id=g.current_user.id)
        return jsonify({"message": "Inventory adjusted successfully", **result}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return server_error_response()


@inventory_bp.put("/bulk-adjust")
@require_auth
@require_permission("ADJUST_INVENTORY")
def bulk_adjust_inventory_route():
    """
    Body: {"adjustments": [{"product_id", "quantity", "reason", "type"}, ...]}

    Per-item failures are reported; the successful subset is committed.
    """
    try:
        adjustments = validate_bulk_adjustments(request.get_json(silent=True))
        result = inventory_service.bulk_adjust_inventory(adjustments, user_id=g.current_user.id)
        return jsonify({"message": "Bulk adjustment completed", **result}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to bulk adjust inventory")
        return server_error_response()


@inventory_bp.post("/<int:product_id>/receive")
@require_auth
@require_permission("ADJUST_INVENTORY")
def receive_stock_route(product_id: int):
    """
    Receive purchased stock.

    Body: {"quantity": int >= 1, "reference_id": int?, "reason": str?}
    """
    try:
        receipt = validate_receive(request.get_json(silent=True))
        tx = inventory_service.receive_stock(product_id, receipt, user_id=g.current_user.id)
        inventory = db.session.query(Inventory).filter_by(product_id=product_id).one()
        return jsonify({
            "message": "Stock received successfully",
            "transaction": tx.to_dict(),
            "inventory": inventory.to_dict(),
        }), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return server_error_response()


@inventory_bp.put("/<int:product_id>/thresholds")
@require_auth
@require_permission("ADJUST_INVENTORY")
def update_thresholds_route(product_id: int):
    try:
        patch = validate_thresholds(request.get_json(silent=True))
        inventory = inventory_service.update_thresholds(product_id, patch)
        return jsonify({"message": "Thresholds updated successfully", "inventory": inventory}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update thresholds")
        return server_error_response()
