# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/retailpos/routes/products.py
"""
Product management routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_CATALOG permission
- Write operations and CSV import/export require MANAGE_CATALOG permission
- Delete requires DELETE_CATALOG permission

Prices are exchanged as decimal amounts (e.g. 99.50) and stored as cents.
"""
from flask import Blueprint, Response, request, jsonify, current_app, g

from ..decorators import require_auth, require_permission
from ..errors import PosError, ValidationError, error_response, server_error_response
from ..services import catalog_io_service, products_service
from ..services.query_filters import ProductFilter
from ..time_utils import utcnow


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_CATALOG")
def list_products_route():
    """
    List active products with stock.

    Query params:
    - search: str (optional) - name, SKU or barcode substring
    - category_id: int (optional)
    - stock_status: in_stock | low_stock | out_of_stock (optional)
    - page: int (optional) - page number (1-indexed)
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        product_filter = ProductFilter(
            search=request.args.get("search") or None,
            category_id=request.args.get("category_id", type=int),
            stock_status=request.args.get("stock_status") or None,
        )
        result = products_service.list_products(
            product_filter,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return server_error_response()


@products_bp.get("/search")
@require_auth
@require_permission("VIEW_CATALOG")
def search_products_route():
    """POS product lookup: ?q=<barcode, SKU or name>."""
    try:
        return jsonify(products_service.search_products(request.args.get("q"))), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to search products")
        return server_error_response()


@products_bp.get("/barcode/<string:barcode>")
@require_auth
@require_permission("VIEW_CATALOG")
def product_by_barcode_route(barcode: str):
    try:
        return jsonify(products_service.get_product_by_barcode(barcode)), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to look up barcode")
        return server_error_response()


@products_bp.get("/category/<int:category_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def products_by_category_route(category_id: int):
    try:
        result = products_service.list_products_by_category(
            category_id,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products by category")
        return server_error_response()


@products_bp.get("/export")
@require_auth
@require_permission("MANAGE_CATALOG")
def export_products_route():
    """Download active products as CSV."""
    try:
        body = catalog_io_service.export_products_csv()
        filename = f"products_export_{utcnow().strftime('%Y%m%d')}.csv"
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    except Exception:
        current_app.logger.exception("Failed to export products")
        return server_error_response()


@products_bp.post("/bulk-import")
@require_auth
@require_permission("MANAGE_CATALOG")
def bulk_import_route():
    """
    Import products from a multipart upload (field "file", .csv or .xlsx).

    Each row is created independently; rejected rows are reported with
    their row number.
    """
    try:
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            raise ValidationError("No file uploaded", code="NO_FILE")

        rows = catalog_io_service.read_upload_rows(upload.filename, upload.stream)
        result = catalog_io_service.import_products(rows, user_id=g.current_user.id)
        return jsonify({"message": "Bulk import completed", **result}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to import products")
        return server_error_response()


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id)), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get product")
        return server_error_response()


@products_bp.post("")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_product_route():
    """
    Create a new product together with its inventory row.

    Optional inventory fields: minimum_threshold, maximum_capacity,
    initial_stock (recorded as a purchase).
    """
    try:
        patch, inventory_settings = products_service.parse_product_payload(
            request.get_json(silent=True) or {}, partial=False
        )
        product = products_service.create_product(patch, inventory_settings, user_id=g.current_user.id)
        return jsonify({"message": "Product created successfully", "product": product}), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return server_error_response()


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_product_route(product_id: int):
    try:
        patch, inventory_settings = products_service.parse_product_payload(
            request.get_json(silent=True) or {}, partial=True
        )
        if inventory_settings:
            raise ValidationError("Stock settings are changed through /api/inventory")

        product = products_service.update_product(product_id, patch)
        return jsonify({"message": "Product updated successfully", "product": product}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return server_error_response()


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("DELETE_CATALOG")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        return jsonify({"message": "Product deleted successfully"}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return server_error_response()
