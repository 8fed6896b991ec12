# Overview: Flask API routes for category operations; parses input and returns JSON responses.

"""
Category routes.

- Read operations require VIEW_CATALOG permission
- Create/update require MANAGE_CATALOG permission
- Delete requires DELETE_CATALOG permission (admin)
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..errors import PosError, error_response, server_error_response
from ..models import Category
from ..services import categories_service
from ..validation import CATEGORY_POLICY, validate_payload


categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() in ("1", "true", "yes")


@categories_bp.get("")
@require_auth
@require_permission("VIEW_CATALOG")
def list_categories_route():
    """
    Query params:
    - include_inactive: bool (default false)
    - with_stats: bool (default false) - product counts per category
    """
    try:
        result = categories_service.list_categories(
            include_inactive=_flag("include_inactive"),
            with_stats=_flag("with_stats"),
        )
        return jsonify(result), 200

    except Exception:
        current_app.logger.exception("Failed to list categories")
        return server_error_response()


@categories_bp.get("/hierarchy")
@require_auth
@require_permission("VIEW_CATALOG")
def category_hierarchy_route():
    try:
        return jsonify(categories_service.category_hierarchy()), 200

    except Exception:
        current_app.logger.exception("Failed to build category hierarchy")
        return server_error_response()


@categories_bp.get("/<int:category_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_category_route(category_id: int):
    try:
        return jsonify(categories_service.get_category(category_id)), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get category")
        return server_error_response()


@categories_bp.post("")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_category_route():
    try:
        patch = validate_payload(
            model=Category,
            payload=request.get_json(silent=True) or {},
            policy=CATEGORY_POLICY,
            partial=False,
        )
        category = categories_service.create_category(patch)
        return jsonify({"message": "Category created successfully", "category": category}), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return server_error_response()


@categories_bp.put("/<int:category_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_category_route(category_id: int):
    try:
        patch = validate_payload(
            model=Category,
            payload=request.get_json(silent=True) or {},
            policy=CATEGORY_POLICY,
            partial=True,
        )
        category = categories_service.update_category(category_id, patch)
        return jsonify({"message": "Category updated successfully", "category": category}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category")
        return server_error_response()


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_permission("DELETE_CATALOG")
def delete_category_route(category_id: int):
    try:
        categories_service.delete_category(category_id)
        return jsonify({"message": "Category deleted successfully"}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete category")
        return server_error_response()
