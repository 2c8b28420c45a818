# Overview: Time-driven sweeps over loan requests (expiry, purge, cleanup, reminders).

"""
Expiry and Cleanup Sweeps

Each sweep is a separate function with a separate effect:

1. purge_unclaimed_reservations
       approved + student-owned + pickup date passed
       -> reservation restored, lines and request deleted
2. expire_missed_pickups
       pending|approved + pickup date passed
       -> status expired_no_pickup; an approved reservation is restored
3. purge_stale_requests
       created before the retention window, or expired_no_pickup past the
       grace window -> deleted. Approved requests and delivered requests with
       open debts are never touched here.
4. send_return_reminders
       open debts due tomorrow -> one reminder per requester and request

Sweeps 1 and 2 never both restore the same reservation: whichever runs first
moves the request out of 'approved'. run_expiry_cycle runs 1 then 2.

Every item is processed in its own transaction. A failing item is logged and
skipped; the sweep carries on with the next one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import exists, or_

from ..errors import NotFoundError
from ..models import DebtEntry, LoanRequest
from . import notification_service as notices
from . import stock_ledger
from .concurrency import atomic
from .request_service import load_request, reserved_lines

logger = logging.getLogger(__name__)


DEFAULT_RETENTION_DAYS = 7
DEFAULT_EXPIRED_GRACE_DAYS = 1


@dataclass
class SweepReport:
    name: str
    processed: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.processed)

    def merge(self, other: "SweepReport") -> "SweepReport":
        return SweepReport(
            name=f"{self.name}+{other.name}",
            processed=self.processed + other.processed,
            failed=self.failed + other.failed,
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "processed": self.processed,
            "failed": self.failed,
            "count": self.count,
        }


def _run_per_item(session, report: SweepReport, ids: list[int], handler) -> list:
    """
    Run handler(request_id) in its own transaction for every id.

    handler returns None to skip an item, anything else counts as processed
    and is collected once its transaction has committed.
    """
    done = []
    for request_id in ids:
        try:
            with atomic(session):
                handled = handler(request_id)
        except NotFoundError:
            # Removed by live traffic since the candidate query
            continue
        except Exception:
            logger.exception("%s sweep failed for request %s", report.name, request_id)
            report.failed.append(request_id)
            continue
        if handled is not None:
            report.processed.append(request_id)
            done.append(handled)
    if report.processed or report.failed:
        logger.info(
            "%s sweep: %d processed, %d failed",
            report.name, len(report.processed), len(report.failed),
        )
    return done


def purge_unclaimed_reservations(session, *, now: datetime, notifier=None) -> SweepReport:
    """Restore and delete approved student requests that were never picked up."""
    today = now.date()
    ids = [
        row.id
        for row in session.query(LoanRequest.id).filter(
            LoanRequest.status == "approved",
            LoanRequest.requester_name.isnot(None),
            LoanRequest.pickup_date < today,
        ).order_by(LoanRequest.id)
    ]

    def handle(request_id: int):
        req = load_request(session, request_id, lock=True)
        # Re-check under the lock: a live transition may have won the race
        if req.status != "approved" or req.requester_name is None or req.pickup_date >= today:
            return None
        stock_ledger.restore(
            session,
            reserved_lines(req.lines),
            request_id=req.id,
            note=f"request {req.folio} not picked up",
        )
        notice = (req.requester_id, req.folio)
        session.delete(req)
        return notice

    report = SweepReport("purge-unclaimed")
    for requester_id, folio in _run_per_item(session, report, ids, handle):
        notices.safe_notify(
            notifier, requester_id, notices.REQUEST_EXPIRED,
            f"Request {folio} was not picked up in time and has been removed.",
        )
    return report


def expire_missed_pickups(session, *, now: datetime, notifier=None) -> SweepReport:
    """Mark pending/approved requests whose pickup date passed as expired_no_pickup."""
    today = now.date()
    ids = [
        row.id
        for row in session.query(LoanRequest.id).filter(
            LoanRequest.status.in_(("pending", "approved")),
            LoanRequest.pickup_date < today,
        ).order_by(LoanRequest.id)
    ]

    def handle(request_id: int):
        req = load_request(session, request_id, lock=True)
        if req.status not in ("pending", "approved") or req.pickup_date >= today:
            return None
        if req.status == "approved":
            stock_ledger.restore(
                session,
                reserved_lines(req.lines),
                request_id=req.id,
                note=f"request {req.folio} expired",
            )
        req.status = "expired_no_pickup"
        return (req.requester_id, req.folio)

    report = SweepReport("expire-missed-pickups")
    for requester_id, folio in _run_per_item(session, report, ids, handle):
        notices.safe_notify(
            notifier, requester_id, notices.REQUEST_EXPIRED,
            f"Request {folio} expired because it was not picked up.",
        )
    return report


def purge_stale_requests(
    session,
    *,
    now: datetime,
    retention_days: int = DEFAULT_RETENTION_DAYS,
    expired_grace_days: int = DEFAULT_EXPIRED_GRACE_DAYS,
) -> SweepReport:
    """
    Delete requests nobody will act on any more.

    Approved requests still hold a reservation and delivered requests with
    open debts are still being tracked; both are left alone.
    """
    created_cutoff = now - timedelta(days=retention_days)
    pickup_cutoff = now.date() - timedelta(days=expired_grace_days)

    open_debt = exists().where(
        DebtEntry.request_id == LoanRequest.id,
        DebtEntry.pending_quantity > 0,
    )

    ids = [
        row.id
        for row in session.query(LoanRequest.id).filter(
            LoanRequest.status != "approved",
            or_(
                LoanRequest.created_at < created_cutoff,
                (LoanRequest.status == "expired_no_pickup") & (LoanRequest.pickup_date <= pickup_cutoff),
            ),
            ~open_debt,
        ).order_by(LoanRequest.id)
    ]

    def handle(request_id: int):
        req = load_request(session, request_id, lock=True)
        if req.status == "approved" or any(d.pending_quantity > 0 for d in req.debts):
            return None
        session.delete(req)
        return request_id

    report = SweepReport("purge-stale")
    _run_per_item(session, report, ids, handle)
    return report


def send_return_reminders(session, *, now: datetime, notifier=None) -> SweepReport:
    """Remind requesters of debts due tomorrow; one message per request."""
    tomorrow = now.date() + timedelta(days=1)
    rows = (
        session.query(DebtEntry.request_id, DebtEntry.requester_id, LoanRequest.folio)
        .join(LoanRequest, LoanRequest.id == DebtEntry.request_id)
        .filter(DebtEntry.pending_quantity > 0, DebtEntry.due_date == tomorrow)
        .distinct()
        .order_by(DebtEntry.request_id)
        .all()
    )
    report = SweepReport("return-reminders")
    for request_id, requester_id, folio in rows:
        sent = notices.safe_notify(
            notifier, requester_id, notices.RETURN_REMINDER,
            f"Material from request {folio} is due back tomorrow ({tomorrow.isoformat()}).",
        )
        (report.processed if sent else report.failed).append(request_id)
    return report


def run_expiry_cycle(session, *, now: datetime, notifier=None) -> SweepReport:
    """Purge unclaimed student reservations first, then expire whatever is left."""
    purged = purge_unclaimed_reservations(session, now=now, notifier=notifier)
    expired = expire_missed_pickups(session, now=now, notifier=notifier)
    return purged.merge(expired)
