# Overview: The three staff roles and the permission set each one carries.

ROLE_SUPER_ADMIN = "Super Admin"
ROLE_STOCK_MANAGER = "Stock Manager"
ROLE_CASHIER = "Cashier"

ALL_ROLES = (ROLE_SUPER_ADMIN, ROLE_STOCK_MANAGER, ROLE_CASHIER)

# Role given to every self-registered account
DEFAULT_ROLE = ROLE_CASHIER


_EVERY_ROLE = {
    "VIEW_PRODUCTS",
    "VIEW_INVENTORY",
    "CREATE_SALE",
    "VIEW_OWN_SALES",
    "CREATE_CUSTOMER",
    "VIEW_DASHBOARD",
    "VIEW_SETTINGS",
}

_STOCK_MANAGEMENT = {
    "MANAGE_PRODUCTS",
    "MANAGE_SUPPLIERS",
    "MANAGE_BATCHES",
    "ADJUST_INVENTORY",
    "MANAGE_PURCHASE_ORDERS",
    "VIEW_ALL_SALES",
    "VIEW_CUSTOMERS",
    "VIEW_REPORTS",
    "VIEW_EXPENSES",
    "VIEW_PROFILES",
}

_ADMINISTRATION = {
    "MANAGE_USERS",
    "MANAGE_EXPENSES",
    "MANAGE_SETTINGS",
    "OVERRIDE_PRICE",
    "VIEW_AUDIT_LOG",
}


ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_CASHIER: frozenset(_EVERY_ROLE),
    ROLE_STOCK_MANAGER: frozenset(_EVERY_ROLE | _STOCK_MANAGEMENT),
    ROLE_SUPER_ADMIN: frozenset(_EVERY_ROLE | _STOCK_MANAGEMENT | _ADMINISTRATION),
}


def is_valid_role(role) -> bool:
    return role in ROLE_PERMISSIONS
