# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for grouping and display."""
    REQUESTS = "REQUESTS"
    STOCK = "STOCK"
    DEBTS = "DEBTS"
    SYSTEM = "SYSTEM"
