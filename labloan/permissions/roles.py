# Overview: Default permission sets per role.

# Role ids as issued by the identity provider
ROLE_IDS = {
    1: "student",
    2: "instructor",
    3: "storekeeper",
    4: "admin",
}

ROLES = tuple(ROLE_IDS.values())

# Storekeepers only hold these when their identity carries stock_access
STOCK_GATED_PERMISSIONS = {"DELIVER_REQUEST", "RECEIVE_RETURN", "ADJUST_STOCK"}

DEFAULT_ROLE_PERMISSIONS = {
    "student": [
        "CREATE_REQUEST",
        "VIEW_STOCK",
    ],
    "instructor": [
        "CREATE_REQUEST",
        "APPROVE_REQUEST",
        "VIEW_STOCK",
    ],
    "storekeeper": [
        "VIEW_ALL_REQUESTS",
        "DELIVER_REQUEST",
        "CANCEL_ANY_REQUEST",
        "RECEIVE_RETURN",
        "VIEW_STOCK",
        "ADJUST_STOCK",
        "VIEW_ALL_DEBTS",
        "NOTIFY_OVERDUE",
    ],
    "admin": [
        "VIEW_ALL_REQUESTS",
        "APPROVE_REQUEST",
        "DELIVER_REQUEST",
        "CANCEL_ANY_REQUEST",
        "RECEIVE_RETURN",
        "VIEW_STOCK",
        "ADJUST_STOCK",
        "VIEW_ALL_DEBTS",
        "NOTIFY_OVERDUE",
        "RUN_MAINTENANCE",
    ],
}
