"""
Permission codes and the static role map.

WHY: There are exactly two roles. A fixed table keeps every route's check in
one place without per-user grants stored in the database.

ADMIN holds every permission. STAFF runs the till: it can look at the catalog
and stock, ring up sales, sell phones, take credit installments and read
reports, but cannot change master data, users or stock levels directly.
"""

# =============================================================================
# PERMISSION CODES
# =============================================================================

VIEW_CATALOG = "VIEW_CATALOG"
MANAGE_CATALOG = "MANAGE_CATALOG"

VIEW_STOCK = "VIEW_STOCK"
RECEIVE_STOCK = "RECEIVE_STOCK"
ISSUE_STOCK = "ISSUE_STOCK"
ADJUST_STOCK = "ADJUST_STOCK"

CREATE_SALE = "CREATE_SALE"
VIEW_SALES = "VIEW_SALES"

VIEW_PHONES = "VIEW_PHONES"
MANAGE_PHONES = "MANAGE_PHONES"
SELL_PHONE = "SELL_PHONE"

VIEW_CREDITS = "VIEW_CREDITS"
RECORD_CREDIT_PAYMENT = "RECORD_CREDIT_PAYMENT"

VIEW_REPORTS = "VIEW_REPORTS"

MANAGE_USERS = "MANAGE_USERS"


ALL_PERMISSIONS = frozenset({
    VIEW_CATALOG, MANAGE_CATALOG,
    VIEW_STOCK, RECEIVE_STOCK, ISSUE_STOCK, ADJUST_STOCK,
    CREATE_SALE, VIEW_SALES,
    VIEW_PHONES, MANAGE_PHONES, SELL_PHONE,
    VIEW_CREDITS, RECORD_CREDIT_PAYMENT,
    VIEW_REPORTS,
    MANAGE_USERS,
})


# =============================================================================
# ROLE MAPPINGS
# =============================================================================

ROLE_PERMISSIONS = {
    "ADMIN": ALL_PERMISSIONS,
    "STAFF": frozenset({
        VIEW_CATALOG,
        VIEW_STOCK,
        CREATE_SALE,
        VIEW_SALES,
        VIEW_PHONES,
        SELL_PHONE,
        VIEW_CREDITS,
        RECORD_CREDIT_PAYMENT,
        VIEW_REPORTS,
    }),
}


def get_role_permissions(role: str) -> frozenset:
    return ROLE_PERMISSIONS.get(role, frozenset())


def role_has_permission(role: str, permission_code: str) -> bool:
    return permission_code in get_role_permissions(role)
