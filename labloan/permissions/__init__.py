# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    REQUEST_PERMISSIONS,
    STOCK_PERMISSIONS,
    DEBT_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS, STOCK_GATED_PERMISSIONS, ROLE_IDS, ROLES
from .helpers import (
    get_all_permission_codes,
    get_permission_definition,
    validate_permission_code,
    get_role_permissions,
    has_permission,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "REQUEST_PERMISSIONS",
    "STOCK_PERMISSIONS",
    "DEBT_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "STOCK_GATED_PERMISSIONS",
    "ROLE_IDS",
    "ROLES",
    "get_all_permission_codes",
    "get_permission_definition",
    "validate_permission_code",
    "get_role_permissions",
    "has_permission",
]
