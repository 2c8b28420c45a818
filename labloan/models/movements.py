from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


MOVEMENT_TYPES = ("opening", "reservation", "release", "restoration", "adjustment")


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    Written in the same transaction as the stock change it records, so for
    every material: on_hand == opening stock + sum(delta).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint(
            "movement_type IN ('opening', 'reservation', 'release', 'restoration', 'adjustment')",
            name="ck_stock_movements_type_valid",
        ),
        db.Index("ix_stock_movements_material", "category", "material_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(32), nullable=False)
    material_id = db.Column(db.Integer, nullable=False)
    delta = db.Column(db.Integer, nullable=False)
    movement_type = db.Column(db.String(32), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True)
    # Plain integer: the request may be deleted later, the movement stays
    request_id = db.Column(db.Integer, nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} {self.category}#{self.material_id} "
            f"type={self.movement_type} delta={self.delta}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "material_id": self.material_id,
            "delta": self.delta,
            "movement_type": self.movement_type,
            "actor_id": self.actor_id,
            "request_id": self.request_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
