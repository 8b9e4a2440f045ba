# Overview: Permission system package.
# Re-exports the public API so callers import from pharmapos.permissions.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    CATALOG_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    PURCHASING_PERMISSIONS,
    SALES_PERMISSIONS,
    USER_PERMISSIONS,
    FINANCE_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import (
    ROLE_SUPER_ADMIN,
    ROLE_STOCK_MANAGER,
    ROLE_CASHIER,
    ALL_ROLES,
    DEFAULT_ROLE,
    ROLE_PERMISSIONS,
    is_valid_role,
)
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    validate_permission_code,
    permissions_for_role,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "CATALOG_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "PURCHASING_PERMISSIONS",
    "SALES_PERMISSIONS",
    "USER_PERMISSIONS",
    "FINANCE_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "ROLE_SUPER_ADMIN",
    "ROLE_STOCK_MANAGER",
    "ROLE_CASHIER",
    "ALL_ROLES",
    "DEFAULT_ROLE",
    "ROLE_PERMISSIONS",
    "is_valid_role",
    "get_all_permission_codes",
    "get_permission_definition",
    "validate_permission_code",
    "permissions_for_role",
]
