# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/retailpos/routes/sales.py
"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import PosError, ValidationError, error_response, server_error_response
from ..models.sales import SALE_STATUSES
from ..services import reporting_service, sales_service
from ..services.query_filters import SaleFilter
from ..time_utils import parse_iso_date
from ..validation import validate_cancel_reason, validate_refund_request, validate_sale_request


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_arg(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be a date in YYYY-MM-DD format")


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Ring up a sale: price lines, reconcile payment, decrement stock.

    Requires: CREATE_SALE permission
    Available to: admin, manager, cashier
    """
    try:
        sale_request = validate_sale_request(request.get_json(silent=True))
        result = sales_service.create_sale(sale_request, cashier_id=g.current_user.id)
        return jsonify({"message": "Sale created successfully", **result}), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return server_error_response()


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """
    Query params:
    - start_date / end_date: YYYY-MM-DD, inclusive (optional)
    - cashier_id: int (optional)
    - status: pending | completed | cancelled | refunded (optional)
    - page / per_page: pagination
    """
    try:
        status = request.args.get("status") or None
        if status and status not in SALE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(SALE_STATUSES)}")

        sale_filter = SaleFilter(
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            cashier_id=request.args.get("cashier_id", type=int),
            status=status,
        )
        result = sales_service.list_sales(
            sale_filter,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return server_error_response()


@sales_bp.get("/stats")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def sales_stats_route():
    """?period=today|week|month|year&cashier_id=<id>"""
    try:
        result = reporting_service.sales_stats(
            request.args.get("period", "today"),
            cashier_id=request.args.get("cashier_id", type=int),
        )
        return jsonify(result), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get sales stats")
        return server_error_response()


@sales_bp.get("/daily-summary")
@require_auth
@require_permission("VIEW_SALES_REPORTS")
def daily_summary_route():
    """?date=YYYY-MM-DD (defaults to today, UTC)"""
    try:
        return jsonify(reporting_service.daily_summary(_date_arg("date"))), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get daily summary")
        return server_error_response()


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    try:
        return jsonify(sales_service.get_sale_detail(sale_id)), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return server_error_response()


@sales_bp.get("/<int:sale_id>/receipt")
@require_auth
@require_permission("VIEW_SALES")
def get_receipt_route(sale_id: int):
    try:
        return jsonify({"receipt": sales_service.get_receipt(sale_id)}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build receipt")
        return server_error_response()


@sales_bp.post("/<int:sale_id>/refund")
@require_auth
@require_permission("REFUND_SALE")
def refund_sale_route(sale_id: int):
    """
    Refund items of a completed sale.

    Requires: REFUND_SALE permission
    Available to: admin, manager
    """
    try:
        refund_request = validate_refund_request(request.get_json(silent=True))
        result = sales_service.refund_sale(sale_id, refund_request, user_id=g.current_user.id)
        return jsonify({"message": "Refund processed successfully", **result}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return server_error_response()


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_permission("CANCEL_SALE")
def cancel_sale_route(sale_id: int):
    """
    Cancel a pending sale and restore its stock.

    Requires: CANCEL_SALE permission
    Available to: admin, manager
    """
    try:
        reason = validate_cancel_reason(request.get_json(silent=True))
        result = sales_service.cancel_sale(sale_id, reason=reason, user_id=g.current_user.id)
        return jsonify({"message": "Sale cancelled successfully", **result}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return server_error_response()


@sales_bp.post("/<int:sale_id>/complete")
@require_auth
@require_permission("COMPLETE_SALE")
def complete_sale_route(sale_id: int):
    try:
        result = sales_service.complete_sale(sale_id, user_id=g.current_user.id)
        return jsonify({"message": "Sale completed successfully", **result}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return server_error_response()
