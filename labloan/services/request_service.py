# Overview: Service-layer operations for loan requests; owns the request state machine.

"""
Request Lifecycle

STATE MACHINE:
    pending -> approved -> delivered -> (deleted when every debt is resolved)

    pending  -> rejected            request + lines deleted
    pending  -> cancelled           by the requester: request + lines deleted
    pending|approved -> cancelled   by staff: soft mark, kept for audit
    pending|approved -> expired_no_pickup   expiry sweeps only

RULES:
1. Stock is reserved exactly once: at approval, or at creation for
   auto-approved roles (instructors).
2. Reserved stock goes back to the shelf exactly once: on delivery for what
   was not handed out, on staff cancellation, or through the expiry sweeps.
3. Every transition runs inside one transaction (concurrency.atomic) with the
   request row locked; notifications are sent only after the commit.
4. A transition from the wrong status raises ConflictError and changes nothing.
"""

from __future__ import annotations

import secrets
from datetime import date, timedelta
from typing import Iterable, Optional

from ..categories import MaterialRef
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models import REQUEST_STATUSES, DebtEntry, LoanRequest, RequestLine
from ..permissions import has_permission
from ..time_utils import Clock, SystemClock
from . import notification_service as notices
from . import stock_ledger
from .concurrency import atomic, lock_for_update
from .identity_service import Identity
from .stock_ledger import StockLine


# Roles allowed to open requests, and the ones whose requests skip approval
REQUESTING_ROLES = {"student", "instructor"}
AUTO_APPROVED_ROLES = {"instructor"}


def generate_folio() -> str:
    """Short human-facing code printed on the request slip (not unique)."""
    return secrets.token_hex(2).upper()


def line_ref(line) -> MaterialRef:
    return MaterialRef(line.category, line.material_id)


def reserved_lines(lines: Iterable[RequestLine]) -> list[StockLine]:
    return [StockLine(line_ref(line), line.requested_quantity) for line in lines]


def load_request(session, request_id: int, *, lock: bool = False) -> LoanRequest:
    query = session.query(LoanRequest).filter(LoanRequest.id == request_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    req = query.first()
    if req is None:
        raise NotFoundError(f"Request {request_id} not found")
    return req


def require_status(req: LoanRequest, allowed: set[str], action: str) -> None:
    if req.status not in allowed:
        raise ConflictError(
            f"Cannot {action} request {req.folio} in status '{req.status}' "
            f"(allowed from: {', '.join(sorted(allowed))})"
        )


def _require_approver(req: LoanRequest, actor: Identity) -> None:
    # Instructors only act on requests addressed to them (or unassigned ones)
    if actor.role == "instructor" and req.approver_id not in (None, actor.user_id):
        raise ForbiddenError(f"Request {req.folio} is assigned to another approver")


def _requester_name(requester: Identity) -> Optional[str]:
    # Only student requests are tied to a named individual
    if requester.role != "student":
        return None
    return requester.name or f"user-{requester.user_id}"


def validate_lines(session, lines: Iterable[tuple[MaterialRef, int]]) -> list[tuple[MaterialRef, int]]:
    lines = list(lines)
    if not lines:
        raise ValidationError("At least one line is required")
    for ref, quantity in lines:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Quantity for {ref} must be a positive integer")
        if not stock_ledger.material_exists(session, ref):
            raise ValidationError(f"Material {ref} does not exist")
    return lines


def validate_dates(pickup_date: date, return_due_date: date, *, today: date, grace_days: int = 0) -> None:
    earliest = today - timedelta(days=grace_days)
    if pickup_date < earliest:
        raise ValidationError(f"pickup_date {pickup_date.isoformat()} is in the past")
    if return_due_date < pickup_date:
        raise ValidationError("return_due_date must not be before pickup_date")


def create_request(
    session,
    requester: Identity,
    lines: Iterable[tuple[MaterialRef, int]],
    pickup_date: date,
    return_due_date: date,
    *,
    approver_id: Optional[int] = None,
    pickup_grace_days: int = 0,
    clock: Clock | None = None,
    notifier=None,
) -> LoanRequest:
    """
    Persist a new request with its lines.

    Students land in 'pending'. Instructors are auto-approved: the request is
    created 'approved' and stock is reserved in the same transaction, so an
    InsufficientStockError leaves nothing behind.
    """
    clock = clock or SystemClock()
    if requester.role not in REQUESTING_ROLES:
        raise ForbiddenError(f"Role '{requester.role}' cannot create requests")

    lines = validate_lines(session, lines)
    validate_dates(pickup_date, return_due_date, today=clock.today(), grace_days=pickup_grace_days)

    auto_approved = requester.role in AUTO_APPROVED_ROLES
    now = clock.now()

    with atomic(session):
        req = LoanRequest(
            folio=generate_folio(),
            requester_id=requester.user_id,
            requester_role=requester.role,
            requester_name=_requester_name(requester),
            approver_id=requester.user_id if auto_approved else approver_id,
            status="approved" if auto_approved else "pending",
            pickup_date=pickup_date,
            return_due_date=return_due_date,
            created_at=now,
        )
        for ref, quantity in lines:
            req.lines.append(RequestLine(
                material_id=ref.material_id,
                category=ref.category,
                requested_quantity=quantity,
            ))
        session.add(req)
        session.flush()

        if auto_approved:
            req.approved_by_id = requester.user_id
            req.approved_at = now
            stock_ledger.reserve(
                session,
                reserved_lines(req.lines),
                actor_id=requester.user_id,
                request_id=req.id,
            )

    notices.safe_notify(
        notifier, req.requester_id, notices.REQUEST_CREATED,
        f"Request {req.folio} was created with status '{req.status}'.",
    )
    if not auto_approved:
        notices.safe_notify(
            notifier, req.approver_id, notices.REQUEST_PENDING_APPROVAL,
            f"Request {req.folio} is waiting for your approval.",
        )
    return req


def approve_request(session, request_id: int, *, actor: Identity, clock: Clock | None = None, notifier=None) -> LoanRequest:
    """Reserve every line at once; on InsufficientStockError nothing changes."""
    clock = clock or SystemClock()
    with atomic(session):
        req = load_request(session, request_id, lock=True)
        require_status(req, {"pending"}, "approve")
        _require_approver(req, actor)

        stock_ledger.reserve(
            session,
            reserved_lines(req.lines),
            actor_id=actor.user_id,
            request_id=req.id,
        )
        req.status = "approved"
        req.approved_by_id = actor.user_id
        req.approved_at = clock.now()

    notices.safe_notify(
        notifier, req.requester_id, notices.REQUEST_APPROVED,
        f"Your request {req.folio} was approved. Pick it up on {req.pickup_date.isoformat()}.",
    )
    return req


def reject_request(session, request_id: int, *, actor: Identity, notifier=None) -> dict:
    """Delete a pending request with its lines (and any debts). Returns the last snapshot."""
    with atomic(session):
        req = load_request(session, request_id, lock=True)
        require_status(req, {"pending"}, "reject")
        _require_approver(req, actor)

        snapshot = req.to_dict()
        snapshot["status"] = "rejected"
        session.delete(req)

    notices.safe_notify(
        notifier, snapshot["requester_id"], notices.REQUEST_REJECTED,
        f"Your request {snapshot['folio']} was rejected.",
    )
    return snapshot


def cancel_request(session, request_id: int, *, actor: Identity, clock: Clock | None = None, notifier=None) -> dict:
    """
    Requester cancellation deletes a pending request outright.

    Staff cancellation keeps the row as 'cancelled' for audit and hands any
    reservation back to stock. Returns a snapshot with a 'deleted' flag.
    """
    clock = clock or SystemClock()
    with atomic(session):
        req = load_request(session, request_id, lock=True)

        if req.requester_id == actor.user_id:
            require_status(req, {"pending"}, "cancel")
            snapshot = req.to_dict()
            snapshot.update(status="cancelled", deleted=True)
            session.delete(req)
        elif has_permission(actor, "CANCEL_ANY_REQUEST"):
            require_status(req, {"pending", "approved"}, "cancel")
            if req.status == "approved":
                stock_ledger.restore(
                    session,
                    reserved_lines(req.lines),
                    actor_id=actor.user_id,
                    request_id=req.id,
                    note=f"request {req.folio} cancelled",
                )
            req.status = "cancelled"
            req.cancelled_by_id = actor.user_id
            req.cancelled_at = clock.now()
            session.flush()
            snapshot = req.to_dict()
            snapshot["deleted"] = False
        else:
            raise ForbiddenError("Only the requester can cancel this request")

    if not snapshot["deleted"]:
        notices.safe_notify(
            notifier, snapshot["requester_id"], notices.REQUEST_CANCELLED,
            f"Your request {snapshot['folio']} was cancelled by staff.",
        )
    return snapshot


def deliver_request(
    session,
    request_id: int,
    delivered_lines: Iterable[tuple[int, int]],
    *,
    actor: Identity,
    clock: Clock | None = None,
    notifier=None,
) -> LoanRequest:
    """
    Hand out an approved request, fully or partially.

    Each delivered line (quantity > 0) opens one DebtEntry for that quantity.
    Lines missing from delivered_lines, or delivered with 0, are deleted.
    Whatever was reserved but not handed out is released back to stock.
    An empty delivery is valid: the request becomes 'delivered' with no debts.
    """
    clock = clock or SystemClock()
    with atomic(session):
        req = load_request(session, request_id, lock=True)
        require_status(req, {"approved"}, "deliver")

        by_id = {line.id: line for line in req.lines}
        delivered: dict[int, int] = {}
        for line_id, quantity in delivered_lines:
            line = by_id.get(line_id)
            if line is None:
                raise NotFoundError(f"Line {line_id} does not belong to request {req.id}")
            if line_id in delivered:
                raise ValidationError(f"Line {line_id} listed more than once")
            if quantity < 0 or quantity > line.requested_quantity:
                raise ValidationError(
                    f"Delivered quantity for line {line_id} must be between 0 and {line.requested_quantity}"
                )
            delivered[line_id] = quantity

        released = []
        for line in list(req.lines):
            quantity = delivered.get(line.id, 0)
            if quantity < line.requested_quantity:
                released.append(StockLine(line_ref(line), line.requested_quantity - quantity))
            if quantity == 0:
                req.lines.remove(line)
                continue
            line.delivered_quantity = quantity
            req.debts.append(DebtEntry(
                line=line,
                requester_id=req.requester_id,
                material_id=line.material_id,
                category=line.category,
                pending_quantity=quantity,
                due_date=req.return_due_date,
            ))

        stock_ledger.restore(
            session,
            released,
            actor_id=actor.user_id,
            request_id=req.id,
            movement_type="release",
            note=f"not delivered on request {req.folio}",
        )
        req.status = "delivered"
        req.delivered_by_id = actor.user_id
        req.delivered_at = clock.now()

    notices.safe_notify(
        notifier, req.requester_id, notices.REQUEST_DELIVERED,
        f"Request {req.folio} was delivered. Return it by {req.return_due_date.isoformat()}.",
    )
    return req


def get_request(session, request_id: int, *, viewer: Identity | None = None) -> LoanRequest:
    req = load_request(session, request_id)
    if viewer is not None and not can_view(viewer, req):
        raise ForbiddenError("You can only view your own requests")
    return req


def can_view(viewer: Identity, req: LoanRequest) -> bool:
    if has_permission(viewer, "VIEW_ALL_REQUESTS"):
        return True
    return viewer.user_id in (req.requester_id, req.approver_id)


def list_requests(session, *, requester_id: int | None = None, approver_id: int | None = None, status: str | None = None) -> list[LoanRequest]:
    if status is not None and status not in REQUEST_STATUSES:
        raise ValidationError(f"Unknown status '{status}'. Must be one of: {', '.join(REQUEST_STATUSES)}")
    query = session.query(LoanRequest)
    if requester_id is not None:
        query = query.filter(LoanRequest.requester_id == requester_id)
    if approver_id is not None:
        query = query.filter(LoanRequest.approver_id == approver_id)
    if status is not None:
        query = query.filter(LoanRequest.status == status)
    return query.order_by(LoanRequest.created_at.desc(), LoanRequest.id.desc()).all()


def describe_request(session, req: LoanRequest) -> dict:
    """to_dict() with material names and units on every line."""
    data = req.to_dict()
    labels = stock_ledger.material_labels(session, [line_ref(line) for line in req.lines])
    for line_data, line in zip(data["lines"], req.lines):
        label = labels.get(line_ref(line), {})
        line_data["material_name"] = label.get("name")
        line_data["unit"] = label.get("unit")
    return data
