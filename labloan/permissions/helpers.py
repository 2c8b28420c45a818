# Overview: Utility functions for permission lookups and validation.

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS, STOCK_GATED_PERMISSIONS


def get_all_permission_codes():
    """Get list of all permission codes."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_permission_definition(code):
    """Get full definition for a permission code."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == code:
            return {
                "code": perm[0],
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
            }
    return None


def validate_permission_code(code):
    """Check if a permission code is valid."""
    return code in get_all_permission_codes()


def get_role_permissions(role, *, stock_access=False):
    """Effective permission codes for a role."""
    codes = set(DEFAULT_ROLE_PERMISSIONS.get(role, []))
    if role == "storekeeper" and not stock_access:
        codes -= STOCK_GATED_PERMISSIONS
    return codes


def has_permission(identity, code):
    return code in get_role_permissions(identity.role, stock_access=identity.stock_access)
