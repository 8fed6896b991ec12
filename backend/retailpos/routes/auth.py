# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/retailpos/routes/auth.py
"""
Authentication and user administration routes.

Login hands out an opaque bearer token; the token must be included in the
Authorization header for protected routes. Self-registration is not
possible: users are registered by an admin (or the CLI).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import bearer_token, require_auth, require_permission
from ..errors import PosError, ValidationError, error_response, server_error_response
from ..services import auth_service
from ..services import session_service
from ..validation import validate_user_registration


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Accepts username or email in the "username" field.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = auth_service.login(
            data.get("username") or data.get("email"),
            data.get("password"),
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        current_app.logger.info("User %s logged in", result["user"]["username"])
        return jsonify(result), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to log in")
        return server_error_response()


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    try:
        session_service.revoke_session(bearer_token(), reason="User logout")
        return jsonify({"message": "Logged out successfully"}), 200

    except Exception:
        current_app.logger.exception("Failed to log out")
        return server_error_response()


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.put("/change-password")
@require_auth
def change_password_route():
    """
    Change the caller's password.

    Every other session of the user is revoked; the current one stays valid.
    """
    try:
        data = request.get_json(silent=True) or {}
        revoked = auth_service.change_password(
            g.current_user,
            data.get("current_password"),
            data.get("new_password"),
            keep_token=bearer_token(),
        )
        return jsonify({"message": "Password changed successfully", "sessions_revoked": revoked}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change password")
        return server_error_response()


@auth_bp.post("/register")
@require_auth
@require_permission("MANAGE_USERS")
def register_route():
    """
    Register a new user.

    Requires: MANAGE_USERS permission
    Available to: admin
    """
    try:
        fields = validate_user_registration(request.get_json(silent=True))
        user = auth_service.create_user(**fields)
        current_app.logger.info("User %s registered with role %s", user.username, user.role)
        return jsonify({"message": "User registered successfully", "user": user.to_dict()}), 201

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return server_error_response()


@auth_bp.get("/users")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    try:
        return jsonify({"users": auth_service.list_users()}), 200

    except Exception:
        current_app.logger.exception("Failed to list users")
        return server_error_response()


@auth_bp.put("/users/<int:user_id>/status")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_status_route(user_id: int):
    """
    Activate or deactivate a user. Deactivation revokes all of their sessions.

    Requires: MANAGE_USERS permission
    Available to: admin
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or "is_active" not in data:
            raise ValidationError("is_active is required")

        user = auth_service.set_user_active(user_id, data["is_active"], acting_user_id=g.current_user.id)
        state = "activated" if user["is_active"] else "deactivated"
        return jsonify({"message": f"User {state} successfully", "user": user}), 200

    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user status")
        return server_error_response()
