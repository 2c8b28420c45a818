# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- REQUESTS --

REQUEST_PERMISSIONS = [
    (
        "CREATE_REQUEST",
        "Create Request",
        "Submit a material loan request",
        PermissionCategory.REQUESTS,
    ),
    (
        "VIEW_ALL_REQUESTS",
        "View All Requests",
        "See requests from every requester (otherwise only your own)",
        PermissionCategory.REQUESTS,
    ),
    (
        "APPROVE_REQUEST",
        "Approve Request",
        "Approve or reject pending requests (reserves stock)",
        PermissionCategory.REQUESTS,
    ),
    (
        "DELIVER_REQUEST",
        "Deliver Request",
        "Hand out approved requests, fully or partially",
        PermissionCategory.REQUESTS,
    ),
    (
        "CANCEL_ANY_REQUEST",
        "Cancel Any Request",
        "Cancel requests owned by someone else (kept for audit)",
        PermissionCategory.REQUESTS,
    ),
    (
        "RECEIVE_RETURN",
        "Receive Return",
        "Register returned material against open debts",
        PermissionCategory.REQUESTS,
    ),
]


# -- STOCK --

STOCK_PERMISSIONS = [
    (
        "VIEW_STOCK",
        "View Stock",
        "View material quantities and movement history",
        PermissionCategory.STOCK,
    ),
    (
        "ADJUST_STOCK",
        "Adjust Stock",
        "Set absolute stock or apply bulk relative adjustments",
        PermissionCategory.STOCK,
    ),
]


# -- DEBTS --

DEBT_PERMISSIONS = [
    (
        "VIEW_ALL_DEBTS",
        "View All Debts",
        "List open debts of every requester (otherwise only your own)",
        PermissionCategory.DEBTS,
    ),
    (
        "NOTIFY_OVERDUE",
        "Notify Overdue",
        "Send overdue-return notices to requesters",
        PermissionCategory.DEBTS,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "RUN_MAINTENANCE",
        "Run Maintenance",
        "Trigger expiry and cleanup sweeps manually",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    REQUEST_PERMISSIONS
    + STOCK_PERMISSIONS
    + DEBT_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
