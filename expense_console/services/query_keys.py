"""Hierarchical cache keys: (feature, operation, *params).

Prefix matching on these tuples is what makes scoped invalidation work, e.g.
``expense_lists()`` covers every filtered list of expenses.
"""

from typing import Any, Hashable


def _freeze(value: Any) -> Hashable:
    if isinstance(value, dict):
        return tuple(sorted((str(key), _freeze(item)) for key, item in value.items() if item is not None))
    if isinstance(value, (list, tuple, set)):
        return tuple(_freeze(item) for item in value)
    return value


def profile() -> tuple:
    return ("auth", "profile")


def expenses_all() -> tuple:
    return ("expenses",)


def expense_lists() -> tuple:
    return ("expenses", "list")


def expense_list(params: Any = None) -> tuple:
    return ("expenses", "list", _freeze(params or {}))


def expense_detail(expense_id: str) -> tuple:
    return ("expenses", "detail", expense_id)


def expense_status_history(expense_id: str) -> tuple:
    return ("expenses", "detail", expense_id, "statusHistory")


def category_lists() -> tuple:
    return ("categories", "list")


def category_list(params: Any = None) -> tuple:
    return ("categories", "list", _freeze(params or {}))


def category_detail(category_id: str) -> tuple:
    return ("categories", "detail", category_id)


def category_usage(category_id: str) -> tuple:
    return ("categories", "detail", category_id, "usage")


def category_statistics() -> tuple:
    return ("categories", "statistics")


def vendor_lists() -> tuple:
    return ("vendors", "list")


def vendor_list(params: Any = None) -> tuple:
    return ("vendors", "list", _freeze(params or {}))


def active_vendors() -> tuple:
    return ("vendors", "list", "active")


def vendor_detail(vendor_id: str) -> tuple:
    return ("vendors", "detail", vendor_id)


def file_detail(file_id: str) -> tuple:
    return ("files", "detail", file_id)


def notifications_all() -> tuple:
    return ("notifications",)


def notification_lists() -> tuple:
    return ("notifications", "list")


def notification_list(params: Any = None) -> tuple:
    return ("notifications", "list", _freeze(params or {}))


def unread_count() -> tuple:
    return ("notifications", "unreadCount")


def dashboard_stats() -> tuple:
    return ("dashboard", "stats")


def import_history() -> tuple:
    return ("import", "history")


def import_status(import_id: str) -> tuple:
    return ("import", "status", import_id)
