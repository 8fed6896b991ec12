# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, g

from .errors import AuthError, PermissionDeniedError, error_response
from .permissions import role_has_permission
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'session_context')


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    Returns 401 if:
    - No Authorization header (AUTH_REQUIRED)
    - Invalid, expired or revoked token, or deactivated user (INVALID_TOKEN)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return error_response(AuthError("Authentication required", code="AUTH_REQUIRED"))

        context = session_service.validate_session(token)
        if not context:
            return error_response(AuthError("Invalid or expired token", code="INVALID_TOKEN"))

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission. Must be stacked under @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return error_response(AuthError("Authentication required", code="AUTH_REQUIRED"))

            if not role_has_permission(g.current_user.role, permission_code):
                return error_response(PermissionDeniedError(
                    "Insufficient permissions",
                    details={"required_permission": permission_code, "role": g.current_user.role},
                ))

            return f(*args, **kwargs)

        decorated_function.required_permission = permission_code
        return decorated_function
    return decorator
