"""
Stock ledger tests.

Verifies:
- Reservations are all-or-nothing and never take stock below zero
- restore() is the exact inverse of reserve()
- Absolute and relative adjustments log one movement each
- reconcile() reports zero drift when every change went through the ledger
"""

import pytest

from labloan.categories import MaterialRef, normalize_category
from labloan.errors import InsufficientStockError, MaterialNotFoundError, ValidationError
from labloan.models import StockMovement
from labloan.services import stock_ledger
from labloan.services.concurrency import atomic
from labloan.services.stock_ledger import StockLine


# =============================================================================
# CATEGORY DISPATCH
# =============================================================================


class TestCategories:

    def test_category_aliases_are_normalized(self):
        assert normalize_category("Lab-Item") == "lab_item"
        assert normalize_category(" liquid ") == "liquid"

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            normalize_category("gas")

    def test_each_category_reads_its_own_column(
        self, db_session, ethanol, sodium_chloride, microscope, beaker
    ):
        assert stock_ledger.get_stock(db_session, ethanol) == 100
        assert stock_ledger.get_stock(db_session, sodium_chloride) == 500
        assert stock_ledger.get_stock(db_session, microscope) == 2
        assert stock_ledger.get_stock(db_session, beaker) == 10

    def test_unknown_material_raises_not_found(self, db_session):
        with pytest.raises(MaterialNotFoundError):
            stock_ledger.get_stock(db_session, MaterialRef("solid", 999999))


# =============================================================================
# RESERVE / RESTORE
# =============================================================================


class TestReserve:

    def test_reserve_decrements_and_logs(self, db_session, ethanol, beaker):
        with atomic(db_session):
            movements = stock_ledger.reserve(
                db_session,
                [StockLine(ethanol, 30), StockLine(beaker, 4)],
                actor_id=7,
                request_id=55,
            )

        assert stock_ledger.get_stock(db_session, ethanol) == 70
        assert stock_ledger.get_stock(db_session, beaker) == 6
        assert [m.delta for m in movements] == [-30, -4]
        assert {m.movement_type for m in movements} == {"reservation"}
        assert {m.request_id for m in movements} == {55}

    def test_reserve_is_all_or_nothing(self, db_session, ethanol, microscope):
        with pytest.raises(InsufficientStockError) as excinfo:
            with atomic(db_session):
                stock_ledger.reserve(
                    db_session,
                    [StockLine(ethanol, 30), StockLine(microscope, 3)],
                )

        assert excinfo.value.ref == microscope
        assert excinfo.value.available == 2
        assert stock_ledger.get_stock(db_session, ethanol) == 100
        assert stock_ledger.get_stock(db_session, microscope) == 2
        assert db_session.query(StockMovement).filter_by(movement_type="reservation").count() == 0

    def test_guarded_decrement_catches_stale_availability(
        self, db_session, monkeypatch, ethanol, beaker
    ):
        # The first two reads (one per material) report plenty, as if another
        # reservation took the stock right after they were made.
        real_get_stock = stock_ledger.get_stock
        calls = []

        def stale_get_stock(session, ref):
            calls.append(ref)
            if len(calls) <= 2:
                return 10_000
            return real_get_stock(session, ref)

        monkeypatch.setattr(stock_ledger, "get_stock", stale_get_stock)
        with pytest.raises(InsufficientStockError) as excinfo:
            with atomic(db_session):
                stock_ledger.reserve(
                    db_session,
                    [StockLine(ethanol, 30), StockLine(beaker, 50)],
                )
        monkeypatch.undo()

        assert excinfo.value.ref == beaker
        assert excinfo.value.available == 10
        assert stock_ledger.get_stock(db_session, ethanol) == 100
        assert stock_ledger.get_stock(db_session, beaker) == 10
        assert db_session.query(StockMovement).filter_by(movement_type="reservation").count() == 0

    def test_same_material_on_two_lines_is_checked_as_a_total(self, db_session, microscope):
        with pytest.raises(InsufficientStockError):
            with atomic(db_session):
                stock_ledger.reserve(
                    db_session,
                    [StockLine(microscope, 2), StockLine(microscope, 1)],
                )
        assert stock_ledger.get_stock(db_session, microscope) == 2

    def test_reserve_exact_stock_reaches_zero(self, db_session, microscope):
        with atomic(db_session):
            stock_ledger.reserve(db_session, [StockLine(microscope, 2)])
        assert stock_ledger.get_stock(db_session, microscope) == 0

    def test_reserve_rejects_non_positive_quantity(self, db_session, ethanol):
        with pytest.raises(ValidationError):
            with atomic(db_session):
                stock_ledger.reserve(db_session, [StockLine(ethanol, 0)])

    def test_restore_is_inverse_of_reserve(self, db_session, ethanol, sodium_chloride):
        lines = [StockLine(ethanol, 25), StockLine(sodium_chloride, 120)]
        with atomic(db_session):
            stock_ledger.reserve(db_session, lines, request_id=1)
        with atomic(db_session):
            restored = stock_ledger.restore(db_session, lines, request_id=1)

        assert stock_ledger.get_stock(db_session, ethanol) == 100
        assert stock_ledger.get_stock(db_session, sodium_chloride) == 500
        assert [m.delta for m in restored] == [25, 120]
        assert {m.movement_type for m in restored} == {"restoration"}

    def test_restore_skips_missing_material(self, db_session, ethanol):
        ghost = MaterialRef("equipment", 999999)
        with atomic(db_session):
            restored = stock_ledger.restore(
                db_session, [StockLine(ghost, 1), StockLine(ethanol, 5)]
            )

        assert len(restored) == 1
        assert stock_ledger.get_stock(db_session, ethanol) == 105


# =============================================================================
# ADJUSTMENTS
# =============================================================================


class TestAdjustments:

    def test_set_absolute_logs_signed_delta(self, db_session, sodium_chloride):
        with atomic(db_session):
            movement = stock_ledger.set_absolute(
                db_session, sodium_chloride, 480, actor_id=9, note="recount"
            )

        assert stock_ledger.get_stock(db_session, sodium_chloride) == 480
        assert movement.delta == -20
        assert movement.movement_type == "adjustment"
        assert movement.note == "recount"

    def test_set_absolute_rejects_negative(self, db_session, sodium_chloride):
        with pytest.raises(ValidationError):
            with atomic(db_session):
                stock_ledger.set_absolute(db_session, sodium_chloride, -1, actor_id=9)
        assert stock_ledger.get_stock(db_session, sodium_chloride) == 500

    def test_set_absolute_unknown_material(self, db_session):
        with pytest.raises(MaterialNotFoundError):
            with atomic(db_session):
                stock_ledger.set_absolute(db_session, MaterialRef("liquid", 999999), 5, actor_id=9)

    def test_bulk_adjust_applies_items_independently(self, db_session, ethanol, microscope):
        results = stock_ledger.bulk_adjust_relative(
            db_session,
            [
                ("liquid", ethanol.material_id, -20),
                ("equipment", microscope.material_id, -5),
                ("liquid", 999999, 3),
                ("solid", "abc", 1),
                ("liquid", ethanol.material_id, 0),
                ("lab-item", 999999, 1),
            ],
            actor_id=9,
        )

        assert [r.ok for r in results] == [True, False, False, False, False, False]
        assert results[0].quantity == 80
        assert "Insufficient stock" in results[1].error
        assert stock_ledger.get_stock(db_session, ethanol) == 80
        assert stock_ledger.get_stock(db_session, microscope) == 2

    def test_create_material_logs_opening_movement(self, db_session, beaker):
        movements = stock_ledger.list_movements(db_session, beaker)
        assert [(m.movement_type, m.delta) for m in movements] == [("opening", 10)]

    def test_create_material_without_stock_has_no_movement(self, db_session, make_material):
        ref = make_material("equipment", "Spectrophotometer", 0)
        assert stock_ledger.get_stock(db_session, ref) == 0
        assert stock_ledger.list_movements(db_session, ref) == []


# =============================================================================
# RECONCILIATION
# =============================================================================


class TestReconcile:

    def test_ledger_changes_leave_no_drift(self, db_session, ethanol, microscope):
        with atomic(db_session):
            stock_ledger.reserve(db_session, [StockLine(ethanol, 40), StockLine(microscope, 1)])
        with atomic(db_session):
            stock_ledger.restore(db_session, [StockLine(ethanol, 15)])
        with atomic(db_session):
            stock_ledger.set_absolute(db_session, microscope, 5, actor_id=1)

        report = stock_ledger.reconcile(db_session)
        assert all(row["drift"] == 0 for row in report)
        assert stock_ledger.movement_total(db_session, ethanol) == 75

    def test_out_of_band_change_shows_drift(self, db_session, ethanol):
        material = stock_ledger.get_material(db_session, ethanol)
        material.available_ml = 130
        db_session.commit()

        row = next(r for r in stock_ledger.reconcile(db_session) if r["category"] == "liquid")
        assert row["drift"] == 30
