# Overview: Fire-and-forget notification dispatch.

"""
Notification delivery is an external concern. Core operations call
safe_notify() after their transaction has committed; a failing notifier is
logged and never surfaces to the caller.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from ..models import Notification

logger = logging.getLogger(__name__)


# Notification kinds
REQUEST_CREATED = "request_created"
REQUEST_PENDING_APPROVAL = "request_pending_approval"
REQUEST_APPROVED = "request_approved"
REQUEST_REJECTED = "request_rejected"
REQUEST_CANCELLED = "request_cancelled"
REQUEST_DELIVERED = "request_delivered"
REQUEST_CLOSED = "request_closed"
REQUEST_EXPIRED = "request_expired"
RETURN_REMINDER = "return_reminder"
RETURN_OVERDUE = "return_overdue"


class Notifier(Protocol):
    def notify(self, user_id: int, kind: str, message: str) -> None:
        ...


class DatabaseNotifier:
    """
    Stores notifications as inbox rows.

    Uses its own commit on the session returned by session_getter, so it must
    only be called once the triggering transaction is finished.
    """

    def __init__(self, session_getter: Callable[[], object]):
        self._session_getter = session_getter

    def notify(self, user_id: int, kind: str, message: str) -> None:
        session = self._session_getter()
        try:
            session.add(Notification(user_id=user_id, kind=kind, message=message))
            session.commit()
        except Exception:
            session.rollback()
            raise


def safe_notify(notifier: Optional[Notifier], user_id: Optional[int], kind: str, message: str) -> bool:
    """Dispatch one notification; returns False instead of raising on failure."""
    if notifier is None or user_id is None:
        return False
    try:
        notifier.notify(user_id, kind, message)
    except Exception:
        logger.exception("Failed to send %s notification to user %s", kind, user_id)
        return False
    return True
