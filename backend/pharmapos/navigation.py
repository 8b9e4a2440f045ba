# Overview: UI route capability map (which roles may open which screen).

from __future__ import annotations

from .permissions.roles import ROLE_SUPER_ADMIN, ROLE_STOCK_MANAGER, ROLE_CASHIER, ALL_ROLES


ROUTE_ROLES: dict[str, frozenset[str]] = {
    "/": frozenset(ALL_ROLES),
    "/pos": frozenset({ROLE_SUPER_ADMIN, ROLE_CASHIER}),
    "/sales": frozenset(ALL_ROLES),
    "/inventory": frozenset(ALL_ROLES),
    "/products": frozenset({ROLE_SUPER_ADMIN, ROLE_STOCK_MANAGER}),
    "/categories": frozenset({ROLE_SUPER_ADMIN, ROLE_STOCK_MANAGER}),
    "/suppliers": frozenset({ROLE_SUPER_ADMIN, ROLE_STOCK_MANAGER}),
    "/purchase-orders": frozenset({ROLE_SUPER_ADMIN, ROLE_STOCK_MANAGER}),
    "/users": frozenset({ROLE_SUPER_ADMIN}),
    "/settings": frozenset({ROLE_SUPER_ADMIN}),
}


def permitted_routes(role: str | None) -> list[str]:
    """Routes a role may open, in menu order. Unknown roles get nothing."""
    if not role:
        return []
    return [path for path, roles in ROUTE_ROLES.items() if role in roles]


def can_open(role: str | None, path: str) -> bool:
    roles = ROUTE_ROLES.get(path)
    return bool(role and roles and role in roles)
