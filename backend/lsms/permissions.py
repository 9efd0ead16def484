"""
Permission constants and role mappings.

WHY: Centralized permission definitions ensure consistency across the application.
Routes check permission codes, never role names, so the role map below is the
single place that decides what an OWNER or SELLER may do.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- SELLER gets the least privilege needed to run the counter
- OWNER has all permissions
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    SALES = "SALES"
    INVENTORY = "INVENTORY"
    EXPENSES = "EXPENSES"
    REPORTS = "REPORTS"
    USERS = "USERS"
    SYSTEM = "SYSTEM"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    # SALES
    ("CREATE_SALE", "Create Sale", "Ring up sales at the counter", PermissionCategory.SALES),
    ("VOID_SALES", "Void Sales", "Void completed sales and restock their items", PermissionCategory.SALES),
    ("PERFORM_CLOSING", "Perform Closing", "Submit the end-of-day cash count", PermissionCategory.SALES),

    # INVENTORY
    ("VIEW_PRODUCTS", "View Products", "View the product list and stock movements", PermissionCategory.INVENTORY),
    ("MANAGE_PRODUCTS", "Manage Products", "Create, edit and archive products and categories", PermissionCategory.INVENTORY),
    ("ADJUST_STOCK", "Adjust Stock", "Record purchases, returns and stock corrections", PermissionCategory.INVENTORY),

    # EXPENSES
    ("CREATE_EXPENSE", "Create Expense", "Submit expenses for approval", PermissionCategory.EXPENSES),
    ("APPROVE_EXPENSES", "Approve Expenses", "Approve or reject pending expenses", PermissionCategory.EXPENSES),

    # REPORTS
    ("VIEW_REPORTS", "View Reports", "View sales and expense reports", PermissionCategory.REPORTS),
    ("VIEW_PROFIT", "View Profit", "See cost prices, gross profit and margins", PermissionCategory.REPORTS),

    # USERS
    ("MANAGE_USERS", "Manage Users", "Create, activate and deactivate users", PermissionCategory.USERS),

    # SYSTEM
    ("MANAGE_SETTINGS", "Manage Settings", "Change store-wide settings", PermissionCategory.SYSTEM),
    ("VIEW_AUDIT_LOG", "View Audit Log", "View the audit trail", PermissionCategory.SYSTEM),
]


# =============================================================================
# DEFAULT ROLE MAPPINGS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    "OWNER": [code for code, _, _, _ in PERMISSION_DEFINITIONS],
    "SELLER": [
        "CREATE_SALE",
        "VIEW_PRODUCTS",
        "CREATE_EXPENSE",
        "PERFORM_CLOSING",
    ],
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_role_permissions(role: str | None) -> list[str]:
    """Permission codes granted to a role. Unknown roles get nothing."""
    return list(DEFAULT_ROLE_PERMISSIONS.get(role or "", []))


def has_permission(role: str | None, code: str) -> bool:
    return code in DEFAULT_ROLE_PERMISSIONS.get(role or "", [])
