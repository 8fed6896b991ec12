"""
Permission codes and the role -> permission map.

Roles are fixed (admin / manager / cashier) and stored on User.role.
Routes declare the permission they need with @require_permission(code);
roles are never checked directly.

  cashier: view catalog and stock, ring up sales, view sales and receipts
  manager: cashier + manage catalog, adjust/receive stock, refund,
           cancel, complete held sales, view reports
  admin:   manager + delete catalog entries, manage users
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    CATALOG = "CATALOG"
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    USERS = "USERS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    ("VIEW_CATALOG", "View Catalog", "View products and categories", PermissionCategory.CATALOG),
    ("MANAGE_CATALOG", "Manage Catalog", "Create and edit products and categories, import/export", PermissionCategory.CATALOG),
    ("DELETE_CATALOG", "Delete Catalog Entries", "Soft delete products and categories", PermissionCategory.CATALOG),

    ("VIEW_INVENTORY", "View Inventory", "View stock levels, alerts and the inventory ledger", PermissionCategory.INVENTORY),
    ("ADJUST_INVENTORY", "Adjust Inventory", "Adjust, receive and reconcile stock; edit thresholds", PermissionCategory.INVENTORY),

    ("CREATE_SALE", "Create Sale", "Ring up sales at the POS", PermissionCategory.SALES),
    ("VIEW_SALES", "View Sales", "View sales, sale details and receipts", PermissionCategory.SALES),
    ("COMPLETE_SALE", "Complete Sale", "Complete held (pending) sales", PermissionCategory.SALES),
    ("REFUND_SALE", "Refund Sale", "Refund items of completed sales", PermissionCategory.SALES),
    ("CANCEL_SALE", "Cancel Sale", "Cancel pending sales", PermissionCategory.SALES),
    ("VIEW_SALES_REPORTS", "View Sales Reports", "View sales statistics and daily summaries", PermissionCategory.SALES),

    ("MANAGE_USERS", "Manage Users", "Register, list, activate and deactivate users", PermissionCategory.USERS),
]


# =============================================================================
# DEFAULT ROLE MAPPINGS
# =============================================================================

_CASHIER = [
    "VIEW_CATALOG",
    "VIEW_INVENTORY",
    "CREATE_SALE",
    "VIEW_SALES",
]

_MANAGER = _CASHIER + [
    "MANAGE_CATALOG",
    "ADJUST_INVENTORY",
    "COMPLETE_SALE",
    "REFUND_SALE",
    "CANCEL_SALE",
    "VIEW_SALES_REPORTS",
]

_ADMIN = _MANAGER + [
    "DELETE_CATALOG",
    "MANAGE_USERS",
]

DEFAULT_ROLE_PERMISSIONS = {
    "admin": _ADMIN,
    "manager": _MANAGER,
    "cashier": _CASHIER,
}


# =============================================================================
# PERMISSION HELPERS
# =============================================================================

def get_role_permissions(role):
    """Permission codes granted to a role (empty for unknown roles)."""
    return set(DEFAULT_ROLE_PERMISSIONS.get(role, ()))


def role_has_permission(role, code):
    return code in get_role_permissions(role)
