from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow


class LiquidMaterial(db.Model):
    """Reagents and solutions, stocked in millilitres."""
    __tablename__ = "liquid_materials"
    __table_args__ = (
        db.CheckConstraint("available_ml >= 0", name="ck_liquid_materials_available_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    available_ml = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<LiquidMaterial id={self.id} name={self.name!r} available_ml={self.available_ml}>"


class SolidMaterial(db.Model):
    """Powders and solids, stocked in grams."""
    __tablename__ = "solid_materials"
    __table_args__ = (
        db.CheckConstraint("available_g >= 0", name="ck_solid_materials_available_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    available_g = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<SolidMaterial id={self.id} name={self.name!r} available_g={self.available_g}>"


class EquipmentMaterial(db.Model):
    """Countable equipment (balances, burners, ...)."""
    __tablename__ = "equipment_materials"
    __table_args__ = (
        db.CheckConstraint("available_units >= 0", name="ck_equipment_materials_available_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    available_units = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<EquipmentMaterial id={self.id} name={self.name!r} available_units={self.available_units}>"


class LabMaterial(db.Model):
    """Glassware and general lab items, counted in units."""
    __tablename__ = "lab_materials"
    __table_args__ = (
        db.CheckConstraint("available_quantity >= 0", name="ck_lab_materials_available_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    available_quantity = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<LabMaterial id={self.id} name={self.name!r} available_quantity={self.available_quantity}>"
