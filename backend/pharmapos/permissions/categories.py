# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for grouping and display."""
    CATALOG = "CATALOG"
    INVENTORY = "INVENTORY"
    PURCHASING = "PURCHASING"
    SALES = "SALES"
    USERS = "USERS"
    FINANCE = "FINANCE"
    SYSTEM = "SYSTEM"
