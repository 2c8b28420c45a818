# Overview: Service-layer operations for material stock; every stock change goes through here.

"""
Stock Ledger Invariants (authoritative)

- on_hand >= 0 for every material, always. Decrements are single conditional
  UPDATEs (``... WHERE stock >= :qty``) checked by rows-affected, never a
  read-then-write.
- Every change appends exactly one StockMovement per affected line inside the
  same transaction, so on_hand == opening stock + sum(movement.delta).
- Functions here never commit. The caller owns the transaction (see
  services.concurrency.atomic); bulk_adjust_relative is the one exception and
  commits per item.
- Category dispatch goes through categories.CATEGORY_STORES only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm.util import identity_key

from ..categories import CATEGORY_STORES, MaterialRef, category_store
from ..errors import InsufficientStockError, LoanError, MaterialNotFoundError, ValidationError
from ..models import MOVEMENT_TYPES, StockMovement
from ..validation import parse_int, parse_positive_int
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockLine:
    ref: MaterialRef
    quantity: int


@dataclass(frozen=True)
class AdjustmentResult:
    index: int
    ref: Optional[MaterialRef]
    delta: Optional[int]
    ok: bool
    quantity: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "material": self.ref.to_dict() if self.ref else None,
            "delta": self.delta,
            "ok": self.ok,
            "quantity": self.quantity,
            "error": self.error,
        }


# -- reads --

def get_stock(session, ref: MaterialRef) -> int:
    """Current on-hand quantity, read from the database (not the identity map)."""
    store = ref.store
    value = session.execute(
        select(store.stock_column).where(store.table.c.id == ref.material_id)
    ).scalar_one_or_none()
    if value is None:
        raise MaterialNotFoundError(ref)
    return value


def get_material(session, ref: MaterialRef):
    material = session.get(ref.store.model, ref.material_id)
    if material is None:
        raise MaterialNotFoundError(ref)
    return material


def material_exists(session, ref: MaterialRef) -> bool:
    store = ref.store
    return session.execute(
        select(store.table.c.id).where(store.table.c.id == ref.material_id)
    ).first() is not None


def list_materials(session, category: str | None = None) -> list[dict]:
    stores = [category_store(category)] if category else list(CATEGORY_STORES.values())
    rows = []
    for store in stores:
        for material in session.query(store.model).order_by(store.model.name).all():
            rows.append(store.describe(material))
    return rows


def material_labels(session, refs: Iterable[MaterialRef]) -> dict[MaterialRef, dict]:
    """{ref: {"name", "unit"}} for display; one query per category involved."""
    by_category: dict[str, set[int]] = {}
    for ref in refs:
        by_category.setdefault(ref.category, set()).add(ref.material_id)

    labels = {}
    for category, ids in by_category.items():
        store = CATEGORY_STORES[category]
        rows = session.execute(
            select(store.table.c.id, store.table.c.name).where(store.table.c.id.in_(ids))
        ).all()
        for material_id, name in rows:
            labels[MaterialRef(category, material_id)] = {"name": name, "unit": store.unit}
    return labels


def list_movements(session, ref: MaterialRef, *, limit: int = 100) -> list[StockMovement]:
    return (
        session.query(StockMovement)
        .filter(
            StockMovement.category == ref.category,
            StockMovement.material_id == ref.material_id,
        )
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def movement_total(session, ref: MaterialRef) -> int:
    total = session.query(func.coalesce(func.sum(StockMovement.delta), 0)).filter(
        StockMovement.category == ref.category,
        StockMovement.material_id == ref.material_id,
    ).scalar()
    return int(total or 0)


def reconcile(session) -> list[dict]:
    """
    Compare on-hand stock with the movement log for every material.

    drift != 0 means stock was changed outside the ledger.
    """
    sums = {
        (category, material_id): int(total)
        for category, material_id, total in session.query(
            StockMovement.category,
            StockMovement.material_id,
            func.sum(StockMovement.delta),
        ).group_by(StockMovement.category, StockMovement.material_id)
    }
    report = []
    for store in CATEGORY_STORES.values():
        for material in session.query(store.model).order_by(store.model.id).all():
            on_hand = store.on_hand(material)
            ledger_total = sums.get((store.category, material.id), 0)
            report.append({
                "category": store.category,
                "material_id": material.id,
                "name": material.name,
                "on_hand": on_hand,
                "ledger_total": ledger_total,
                "drift": on_hand - ledger_total,
            })
    return report


# -- writes --

def append_movement(
    session,
    *,
    ref: MaterialRef,
    delta: int,
    movement_type: str,
    actor_id: int | None = None,
    request_id: int | None = None,
    note: str | None = None,
    occurred_at: datetime | None = None,
) -> StockMovement:
    """Append-only movement row. No updates/deletes of existing rows."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"Unknown movement type: {movement_type}")
    movement = StockMovement(
        category=ref.category,
        material_id=ref.material_id,
        delta=delta,
        movement_type=movement_type,
        actor_id=actor_id,
        request_id=request_id,
        note=note,
    )
    if occurred_at is not None:
        movement.occurred_at = occurred_at
    session.add(movement)
    session.flush()
    return movement


def _expire_cached(session, ref: MaterialRef) -> None:
    # Core UPDATEs bypass the identity map; drop any stale loaded value.
    store = ref.store
    cached = session.identity_map.get(identity_key(store.model, ref.material_id))
    if cached is not None:
        session.expire(cached, [store.stock_field])


def _apply_delta(session, ref: MaterialRef, delta: int) -> bool:
    """
    Add delta to on-hand stock in one statement, refusing to go below zero.

    Returns False when the row is missing or the guard rejected the update.
    """
    store = ref.store
    column = store.stock_column
    stmt = (
        update(store.table)
        .where(store.table.c.id == ref.material_id)
        .values({store.stock_field: column + delta})
    )
    if delta < 0:
        stmt = stmt.where(column >= -delta)
    result = session.execute(stmt)
    _expire_cached(session, ref)
    return result.rowcount == 1


def _aggregate(lines: Iterable[StockLine]) -> dict[MaterialRef, int]:
    totals: dict[MaterialRef, int] = {}
    for line in lines:
        quantity = parse_positive_int(line.quantity, f"quantity for {line.ref}")
        totals[line.ref] = totals.get(line.ref, 0) + quantity
    return totals


def reserve(
    session,
    lines: Iterable[StockLine],
    *,
    actor_id: int | None = None,
    request_id: int | None = None,
) -> list[StockMovement]:
    """
    All-or-nothing reservation.

    Availability of every material is checked before anything is decremented,
    and each decrement is still guarded, so a concurrent reservation that got
    there first makes this one fail instead of overdrawing. Raises
    InsufficientStockError naming the first material that cannot be covered;
    the caller must roll back.
    """
    lines = list(lines)
    totals = _aggregate(lines)

    for ref, quantity in totals.items():
        available = get_stock(session, ref)
        if available < quantity:
            raise InsufficientStockError(ref, quantity, available)

    for ref, quantity in totals.items():
        if not _apply_delta(session, ref, -quantity):
            raise InsufficientStockError(ref, quantity, get_stock(session, ref))

    return [
        append_movement(
            session,
            ref=line.ref,
            delta=-line.quantity,
            movement_type="reservation",
            actor_id=actor_id,
            request_id=request_id,
        )
        for line in lines
    ]


def restore(
    session,
    lines: Iterable[StockLine],
    *,
    actor_id: int | None = None,
    request_id: int | None = None,
    movement_type: str = "restoration",
    note: str | None = None,
) -> list[StockMovement]:
    """Inverse of reserve. Always succeeds; a material that no longer exists is skipped."""
    movements = []
    for line in lines:
        if line.quantity <= 0:
            continue
        if not _apply_delta(session, line.ref, line.quantity):
            logger.warning(
                "Skipped restoring %s units of %s for request %s: material not found",
                line.quantity, line.ref, request_id,
            )
            continue
        movements.append(append_movement(
            session,
            ref=line.ref,
            delta=line.quantity,
            movement_type=movement_type,
            actor_id=actor_id,
            request_id=request_id,
            note=note,
        ))
    return movements


def set_absolute(
    session,
    ref: MaterialRef,
    new_quantity,
    *,
    actor_id: int | None,
    note: str | None = None,
) -> StockMovement:
    """Set stock to an absolute value and log delta = new - old as an adjustment."""
    new_quantity = parse_int(new_quantity, "quantity")
    if new_quantity < 0:
        raise ValidationError("quantity must not be negative")

    store = ref.store
    material = lock_for_update(
        session.query(store.model)
        .filter(store.model.id == ref.material_id)
        .populate_existing()
    ).first()
    if material is None:
        raise MaterialNotFoundError(ref)

    old_quantity = store.on_hand(material)
    setattr(material, store.stock_field, new_quantity)
    return append_movement(
        session,
        ref=ref,
        delta=new_quantity - old_quantity,
        movement_type="adjustment",
        actor_id=actor_id,
        note=note,
    )


def bulk_adjust_relative(session, adjustments, *, actor_id: int | None) -> list[AdjustmentResult]:
    """
    Apply (category, material_id, delta) items one by one.

    Each item is its own transaction: a rejected item (unknown material,
    result below zero, bad input) does not undo the items already applied.
    """
    results = []
    for index, (category, material_id, delta) in enumerate(adjustments):
        ref = None
        try:
            with atomic(session):
                ref = MaterialRef.of(category, parse_int(material_id, "material_id", minimum=1))
                delta = parse_int(delta, "delta")
                if delta == 0:
                    raise ValidationError("delta must not be zero")
                if not _apply_delta(session, ref, delta):
                    current = get_stock(session, ref)
                    raise InsufficientStockError(ref, -delta, current)
                append_movement(
                    session,
                    ref=ref,
                    delta=delta,
                    movement_type="adjustment",
                    actor_id=actor_id,
                    note="bulk adjustment",
                )
                quantity = get_stock(session, ref)
        except LoanError as e:
            results.append(AdjustmentResult(index, ref, delta, False, error=e.message))
            continue
        results.append(AdjustmentResult(index, ref, delta, True, quantity=quantity))
    return results


def create_material(session, category: str, name: str, quantity=0, *, actor_id: int | None = None):
    """Register a material with its opening stock (logged as an 'opening' movement)."""
    store = category_store(category)
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    quantity = parse_int(quantity, "quantity", minimum=0)

    material = store.model(name=name.strip())
    setattr(material, store.stock_field, quantity)
    session.add(material)
    session.flush()

    if quantity:
        append_movement(
            session,
            ref=MaterialRef(store.category, material.id),
            delta=quantity,
            movement_type="opening",
            actor_id=actor_id,
        )
    return material
