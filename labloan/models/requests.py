from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z, to_iso_date


# Valid request states (lifecycle rules live in services/request_service.py)
REQUEST_STATUSES = (
    "pending",
    "approved",
    "delivered",
    "rejected",
    "cancelled",
    "expired_no_pickup",
)


class LoanRequest(db.Model):
    """
    A bundle of material lines requested by one user.

    LIFECYCLE:
        pending -> approved -> delivered -> (deleted once every debt is resolved)

    Rejected and requester-cancelled requests are deleted immediately.
    Staff cancellations and missed pickups stay behind with a terminal
    status until the stale sweep removes them.

    requester_name is only set for student requests; the expiry purge uses
    it to tell individually-owned reservations apart.
    """
    __tablename__ = "loan_requests"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'delivered', 'rejected', 'cancelled', 'expired_no_pickup')",
            name="ck_loan_requests_status_valid",
        ),
        db.Index("ix_loan_requests_status_pickup", "status", "pickup_date"),
        db.Index("ix_loan_requests_requester_status", "requester_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    folio = db.Column(db.String(8), nullable=False, index=True)

    requester_id = db.Column(db.Integer, nullable=False)
    requester_role = db.Column(db.String(32), nullable=False)
    requester_name = db.Column(db.String(255), nullable=True)
    approver_id = db.Column(db.Integer, nullable=True, index=True)

    status = db.Column(db.String(32), nullable=False, default="pending")

    pickup_date = db.Column(db.Date, nullable=False)
    return_due_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    approved_by_id = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    delivered_by_id = db.Column(db.Integer, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    cancelled_by_id = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    lines = db.relationship(
        "RequestLine",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RequestLine.id",
    )
    debts = db.relationship(
        "DebtEntry",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="DebtEntry.id",
    )

    def __repr__(self) -> str:
        return f"<LoanRequest id={self.id} folio={self.folio} status={self.status}>"

    def to_dict(self, *, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "folio": self.folio,
            "requester_id": self.requester_id,
            "requester_role": self.requester_role,
            "requester_name": self.requester_name,
            "approver_id": self.approver_id,
            "status": self.status,
            "pickup_date": to_iso_date(self.pickup_date),
            "return_due_date": to_iso_date(self.return_due_date),
            "created_at": to_utc_z(self.created_at),
            "approved_by_id": self.approved_by_id,
            "approved_at": to_utc_z(self.approved_at),
            "delivered_by_id": self.delivered_by_id,
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_by_id": self.cancelled_by_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["debts"] = [debt.to_dict() for debt in self.debts]
        return data


class RequestLine(db.Model):
    """One material + quantity entry of a request."""
    __tablename__ = "request_lines"
    __table_args__ = (
        db.CheckConstraint("requested_quantity > 0", name="ck_request_lines_requested_positive"),
        db.CheckConstraint(
            "delivered_quantity IS NULL OR delivered_quantity >= 0",
            name="ck_request_lines_delivered_nonneg",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("loan_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    material_id = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(32), nullable=False)
    requested_quantity = db.Column(db.Integer, nullable=False)
    delivered_quantity = db.Column(db.Integer, nullable=True)

    request = db.relationship("LoanRequest", back_populates="lines")
    debt = db.relationship(
        "DebtEntry",
        back_populates="line",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<RequestLine id={self.id} request_id={self.request_id} "
            f"{self.category}#{self.material_id} qty={self.requested_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "material_id": self.material_id,
            "category": self.category,
            "requested_quantity": self.requested_quantity,
            "delivered_quantity": self.delivered_quantity,
        }


class DebtEntry(db.Model):
    """
    Outstanding quantity of a delivered line that has not come back yet.

    pending_quantity only ever decreases; the row is deleted when it hits 0.
    """
    __tablename__ = "debt_entries"
    __table_args__ = (
        db.CheckConstraint("pending_quantity >= 0", name="ck_debt_entries_pending_nonneg"),
        db.UniqueConstraint("request_line_id", name="uq_debt_entries_request_line"),
        db.Index("ix_debt_entries_requester_due", "requester_id", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("loan_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    request_line_id = db.Column(
        db.Integer, db.ForeignKey("request_lines.id", ondelete="CASCADE"), nullable=False
    )
    requester_id = db.Column(db.Integer, nullable=False)
    material_id = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(32), nullable=False)
    pending_quantity = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    request = db.relationship("LoanRequest", back_populates="debts")
    line = db.relationship("RequestLine", back_populates="debt")

    def __repr__(self) -> str:
        return (
            f"<DebtEntry id={self.id} line={self.request_line_id} "
            f"{self.category}#{self.material_id} pending={self.pending_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "request_line_id": self.request_line_id,
            "requester_id": self.requester_id,
            "material_id": self.material_id,
            "category": self.category,
            "pending_quantity": self.pending_quantity,
            "due_date": to_iso_date(self.due_date),
        }
