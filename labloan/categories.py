# Overview: Category -> stock store lookup shared by every stock operation.

"""
The four material categories live in four tables with four different stock
column names. Everything that reads or writes stock goes through this table
instead of branching per category.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ValidationError
from .models import LiquidMaterial, SolidMaterial, EquipmentMaterial, LabMaterial


@dataclass(frozen=True)
class CategoryStore:
    category: str
    model: type
    stock_field: str
    unit: str

    @property
    def table(self):
        return self.model.__table__

    @property
    def stock_column(self):
        """Core column, for conditional UPDATE statements."""
        return self.table.c[self.stock_field]

    def on_hand(self, material) -> int:
        return getattr(material, self.stock_field)

    def describe(self, material) -> dict:
        return {
            "category": self.category,
            "id": material.id,
            "name": material.name,
            "on_hand": self.on_hand(material),
            "unit": self.unit,
        }


CATEGORY_STORES: dict[str, CategoryStore] = {
    "liquid": CategoryStore("liquid", LiquidMaterial, "available_ml", "ml"),
    "solid": CategoryStore("solid", SolidMaterial, "available_g", "g"),
    "equipment": CategoryStore("equipment", EquipmentMaterial, "available_units", "u"),
    "lab_item": CategoryStore("lab_item", LabMaterial, "available_quantity", "u"),
}

CATEGORIES = tuple(CATEGORY_STORES)


def normalize_category(value) -> str:
    """Accept 'Lab-Item', ' lab_item ' etc. and return the canonical key."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("category is required")
    key = value.strip().lower().replace("-", "_")
    if key not in CATEGORY_STORES:
        raise ValidationError(
            f"Unknown category '{value}'. Must be one of: {', '.join(CATEGORIES)}"
        )
    return key


def category_store(category: str) -> CategoryStore:
    return CATEGORY_STORES[normalize_category(category)]


@dataclass(frozen=True, order=True)
class MaterialRef:
    """Tagged reference to one material: ids are only unique per category."""
    category: str
    material_id: int

    @classmethod
    def of(cls, category, material_id) -> "MaterialRef":
        return cls(normalize_category(category), material_id)

    @property
    def store(self) -> CategoryStore:
        return CATEGORY_STORES[self.category]

    def __str__(self) -> str:
        return f"{self.category}#{self.material_id}"

    def to_dict(self) -> dict:
        return {"category": self.category, "material_id": self.material_id}
