# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- CATALOG --

CATALOG_PERMISSIONS = [
    (
        "VIEW_PRODUCTS",
        "View Products",
        "View products, categories and suppliers",
        PermissionCategory.CATALOG,
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit and deactivate products and categories",
        PermissionCategory.CATALOG,
    ),
    (
        "MANAGE_SUPPLIERS",
        "Manage Suppliers",
        "Create, edit and deactivate suppliers",
        PermissionCategory.CATALOG,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View batches, stock levels and movement history",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_BATCHES",
        "Manage Batches",
        "Edit batch details (expiry, selling price) and deactivate batches",
        PermissionCategory.INVENTORY,
    ),
    (
        "ADJUST_INVENTORY",
        "Adjust Inventory",
        "Record adjustment, damage and return movements",
        PermissionCategory.INVENTORY,
    ),
]


# -- PURCHASING --

PURCHASING_PERMISSIONS = [
    (
        "MANAGE_PURCHASE_ORDERS",
        "Manage Purchase Orders",
        "Create, send, cancel and receive purchase orders",
        PermissionCategory.PURCHASING,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "CREATE_SALE",
        "Create Sale",
        "Settle sales at the point of sale",
        PermissionCategory.SALES,
    ),
    (
        "OVERRIDE_PRICE",
        "Override Price",
        "Sell a line at a price other than the batch selling price",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_OWN_SALES",
        "View Own Sales",
        "View sales settled by the current user",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_ALL_SALES",
        "View All Sales",
        "View every sale regardless of cashier",
        PermissionCategory.SALES,
    ),
    (
        "CREATE_CUSTOMER",
        "Create Customer",
        "Register customers at the point of sale",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_CUSTOMERS",
        "View Customers",
        "List and view customers",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_DASHBOARD",
        "View Dashboard",
        "View the dashboard summary",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_REPORTS",
        "View Reports",
        "View sales reports over date ranges",
        PermissionCategory.SALES,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "VIEW_PROFILES",
        "View Profiles",
        "View other staff profiles",
        PermissionCategory.USERS,
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Change roles, deactivate and reactivate staff accounts",
        PermissionCategory.USERS,
    ),
]


# -- FINANCE --

FINANCE_PERMISSIONS = [
    (
        "VIEW_EXPENSES",
        "View Expenses",
        "View recorded expenses",
        PermissionCategory.FINANCE,
    ),
    (
        "MANAGE_EXPENSES",
        "Manage Expenses",
        "Record, edit and delete expenses",
        PermissionCategory.FINANCE,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "VIEW_SETTINGS",
        "View Settings",
        "Read store settings (company name, tax rate, currency)",
        PermissionCategory.SYSTEM,
    ),
    (
        "MANAGE_SETTINGS",
        "Manage Settings",
        "Update store settings",
        PermissionCategory.SYSTEM,
    ),
    (
        "VIEW_AUDIT_LOG",
        "View Audit Log",
        "View security events",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    CATALOG_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + PURCHASING_PERMISSIONS
    + SALES_PERMISSIONS
    + USER_PERMISSIONS
    + FINANCE_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
