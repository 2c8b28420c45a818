# Overview: Service-layer operations for debts (delivered material not yet returned).

"""
Debt Tracker

- One DebtEntry per delivered line, opened by request_service.deliver_request.
- Returns only ever decrease pending_quantity; an entry that reaches 0 is
  deleted. Over-returns are rejected for the whole call.
- When a request has no open debt left, the request, its lines and its debts
  are deleted in the same transaction (the request is closed).
- Returns do not touch stock: reservations were consumed at delivery.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..categories import MaterialRef
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import DebtEntry, LoanRequest
from ..time_utils import Clock, SystemClock
from . import notification_service as notices
from . import stock_ledger
from .concurrency import atomic, lock_for_update
from .request_service import load_request


@dataclass(frozen=True)
class ReturnOutcome:
    request_id: int
    folio: str
    closed: bool
    open_debts: list[dict]

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "folio": self.folio,
            "closed": self.closed,
            "open_debts": self.open_debts,
        }


def resolve_partial(
    session,
    request_id: int,
    returns: Iterable[tuple[int, int]],
    *,
    actor_id: int | None = None,
    notifier=None,
) -> ReturnOutcome:
    """
    Apply (request_line_id, returned_quantity) pairs to the request's debts.

    Raises NotFoundError when the request is gone (including after it was
    closed by an earlier call) or a line has no open debt, and ValidationError
    on non-positive or over-returned quantities; in both cases nothing is applied.
    """
    returns = list(returns)
    if not returns:
        raise ValidationError("At least one returned line is required")

    with atomic(session):
        req = load_request(session, request_id, lock=True)
        debts = lock_for_update(
            session.query(DebtEntry).filter(DebtEntry.request_id == req.id)
        ).all()
        by_line = {debt.request_line_id: debt for debt in debts}

        for line_id, quantity in returns:
            debt = by_line.get(line_id)
            if debt is None:
                raise NotFoundError(f"No open debt for line {line_id} on request {req.id}")
            if quantity <= 0:
                raise ValidationError(f"Returned quantity for line {line_id} must be positive")
            if quantity > debt.pending_quantity:
                raise ValidationError(
                    f"Cannot return {quantity} for line {line_id}: only {debt.pending_quantity} pending"
                )
            debt.pending_quantity -= quantity

        for debt in debts:
            if debt.pending_quantity == 0:
                session.delete(debt)
        session.flush()
        # Drop the deleted debts from what the request and its lines have loaded
        session.expire(req, ["debts"])
        for line in req.lines:
            session.expire(line, ["debt"])

        open_debts = [debt.to_dict() for debt in req.debts]
        closed = not open_debts
        outcome = ReturnOutcome(req.id, req.folio, closed, open_debts)
        requester_id = req.requester_id
        if closed:
            session.delete(req)

    if closed:
        notices.safe_notify(
            notifier, requester_id, notices.REQUEST_CLOSED,
            f"All material for request {outcome.folio} was returned. The request is closed.",
        )
    return outcome


def list_open_debts(session, requester_id: int | None = None) -> list[dict]:
    """Open debts (optionally for one requester) with material name, unit and folio."""
    query = session.query(DebtEntry, LoanRequest.folio).join(
        LoanRequest, LoanRequest.id == DebtEntry.request_id
    ).filter(DebtEntry.pending_quantity > 0)
    if requester_id is not None:
        query = query.filter(DebtEntry.requester_id == requester_id)
    rows = query.order_by(DebtEntry.due_date, DebtEntry.id).all()

    labels = stock_ledger.material_labels(
        session, [MaterialRef(debt.category, debt.material_id) for debt, _ in rows]
    )
    result = []
    for debt, folio in rows:
        label = labels.get(MaterialRef(debt.category, debt.material_id), {})
        item = debt.to_dict()
        item["folio"] = folio
        item["material_name"] = label.get("name")
        item["unit"] = label.get("unit")
        result.append(item)
    return result


def overdue_debts(session, *, today) -> list[DebtEntry]:
    return (
        session.query(DebtEntry)
        .filter(DebtEntry.pending_quantity > 0, DebtEntry.due_date < today)
        .order_by(DebtEntry.due_date, DebtEntry.id)
        .all()
    )


def notify_overdue(session, request_id: int, *, clock: Clock | None = None, notifier=None) -> int:
    """Tell the requester which of the request's debts are past due. Returns how many."""
    clock = clock or SystemClock()
    req = load_request(session, request_id)
    if req.status != "delivered":
        raise ConflictError(f"Request {req.folio} has not been delivered")

    today = clock.today()
    late = [debt for debt in req.debts if debt.due_date < today and debt.pending_quantity > 0]
    if not late:
        raise ConflictError(f"Request {req.folio} has no overdue debts")

    labels = stock_ledger.material_labels(
        session, [MaterialRef(debt.category, debt.material_id) for debt in late]
    )
    items = ", ".join(
        f"{labels.get(MaterialRef(d.category, d.material_id), {}).get('name', d.category)} x{d.pending_quantity}"
        for d in late
    )
    notices.safe_notify(
        notifier, req.requester_id, notices.RETURN_OVERDUE,
        f"Request {req.folio} is overdue since {late[0].due_date.isoformat()}: {items}.",
    )
    return len(late)
