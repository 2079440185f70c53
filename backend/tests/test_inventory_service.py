"""
Stock ledger tests: validation, entries and exits, reversal and queries.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from decimal import Decimal

import pytest

from models.log import Log
from models.product import Product
from models.stock import MovementType, StockMovement
from models.users import User
from services import inventory
from services.errors import (
    CounterpartyNotFound,
    InsufficientStock,
    InvalidQuantity,
    MovementNotFound,
    ProductNotFound,
)


def _stock(session_factory, product_id):
    with session_factory() as s:
        return s.get(Product, product_id).stock_quantity


def _movement_count(session_factory, product_id=None):
    with session_factory() as s:
        query = s.query(StockMovement)
        if product_id is not None:
            query = query.filter(StockMovement.product_id == product_id)
        return query.count()


def _entry(db, user, product_id, qty, **kwargs):
    return inventory.create_movement(db, user=user, kind=MovementType.ENTRY, product_id=product_id, quantity=qty, **kwargs)


def _exit(db, user, product_id, qty, **kwargs):
    return inventory.create_movement(db, user=user, kind=MovementType.EXIT, product_id=product_id, quantity=qty, **kwargs)


class TestValidateMovement:

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, "2", True, None])
    def test_rejects_non_positive_or_non_integer_quantity(self, db, seed, quantity):
        with pytest.raises(InvalidQuantity) as exc:
            inventory.validate_movement(
                db, company_id=seed.company_id, kind=MovementType.ENTRY,
                product_id=seed.laptop_id, quantity=quantity,
            )
        assert exc.value.code == "INVALID_QUANTITY"
        assert exc.value.status_code == 400

    def test_unknown_product(self, db, seed):
        with pytest.raises(ProductNotFound) as exc:
            inventory.validate_movement(
                db, company_id=seed.company_id, kind=MovementType.ENTRY, product_id=99999, quantity=1,
            )
        assert exc.value.status_code == 404
        assert exc.value.details == {"product_id": 99999}

    def test_product_of_another_company_is_not_found(self, db, seed):
        with pytest.raises(ProductNotFound):
            inventory.validate_movement(
                db, company_id=seed.company_id, kind=MovementType.EXIT, product_id=seed.monitor_id, quantity=1,
            )

    def test_inactive_product_is_not_found(self, db, seed):
        db.get(Product, seed.laptop_id).is_active = False
        db.commit()

        with pytest.raises(ProductNotFound):
            inventory.validate_movement(
                db, company_id=seed.company_id, kind=MovementType.ENTRY, product_id=seed.laptop_id, quantity=1,
            )

    def test_exit_larger_than_stock(self, db, seed):
        with pytest.raises(InsufficientStock) as exc:
            inventory.validate_movement(
                db, company_id=seed.company_id, kind=MovementType.EXIT, product_id=seed.cable_id, quantity=10,
            )
        err = exc.value
        assert err.code == "INSUFFICIENT_STOCK"
        assert err.message == "Insufficient stock. Available: 2, requested: 10"
        assert err.details["available"] == 2
        assert err.details["requested"] == 10

    def test_exit_of_whole_stock_is_allowed(self, db, seed):
        product = inventory.validate_movement(
            db, company_id=seed.company_id, kind=MovementType.EXIT, product_id=seed.cable_id, quantity=2,
        )
        assert product.id == seed.cable_id

    def test_has_no_side_effects(self, db, seed, session_factory):
        inventory.validate_movement(
            db, company_id=seed.company_id, kind="OUT", product_id=seed.laptop_id, quantity=5,
        )
        db.rollback()

        assert _stock(session_factory, seed.laptop_id) == 50
        assert _movement_count(session_factory) == 0


class TestCreateMovement:

    def test_entry_increases_stock(self, db, seed, admin, session_factory):
        result = _entry(db, admin, seed.laptop_id, 20, unit_price=Decimal("18000"))

        assert result.old_stock == 50
        assert result.new_stock == 70
        assert _stock(session_factory, seed.laptop_id) == 70

        items, total = inventory.list_movements(db, seed.company_id, product_id=seed.laptop_id)
        assert total == 1
        assert items[0].id == result.movement_id
        assert items[0].type == "IN"
        assert items[0].qty == 20
        assert items[0].user_id == seed.admin_id

    def test_exit_decreases_stock(self, db, seed, employee, session_factory):
        result = _exit(db, employee, seed.laptop_id, 8, counterparty_id=seed.client_id)

        assert result.new_stock == 42
        assert _stock(session_factory, seed.laptop_id) == 42
        movement = inventory.get_movement(db, seed.company_id, result.movement_id)
        assert movement.client_id == seed.client_id
        assert movement.supplier_id is None

    def test_insufficient_stock_rejects_without_changes(self, db, seed, admin, session_factory):
        with pytest.raises(InsufficientStock):
            _exit(db, admin, seed.cable_id, 10)

        assert _stock(session_factory, seed.cable_id) == 2
        assert _movement_count(session_factory) == 0

    def test_default_prices_follow_direction(self, db, seed, admin):
        entry = _entry(db, admin, seed.laptop_id, 1)
        exit_ = _exit(db, admin, seed.laptop_id, 1)

        assert inventory.get_movement(db, seed.company_id, entry.movement_id).unit_price == Decimal("18000")
        assert inventory.get_movement(db, seed.company_id, exit_.movement_id).unit_price == Decimal("22000")

    def test_explicit_price_wins(self, db, seed, admin):
        result = _entry(db, admin, seed.laptop_id, 3, unit_price=Decimal("17500.50"))
        assert inventory.get_movement(db, seed.company_id, result.movement_id).unit_price == Decimal("17500.50")

    def test_timezone_aware_date_is_stored_as_utc(self, db, seed, admin):
        moved_at = datetime.fromisoformat("2026-03-10T10:00:00+02:00")
        result = _entry(db, admin, seed.laptop_id, 1, movement_date=moved_at)

        assert inventory.get_movement(db, seed.company_id, result.movement_id).movement_date == datetime(2026, 3, 10, 8, 0)

    def test_supplier_of_another_company_is_rejected(self, db, seed, admin, session_factory):
        with pytest.raises(CounterpartyNotFound):
            _entry(db, admin, seed.laptop_id, 5, counterparty_id=seed.other_supplier_id)

        assert _stock(session_factory, seed.laptop_id) == 50

    def test_unknown_client_is_rejected(self, db, seed, admin):
        with pytest.raises(CounterpartyNotFound):
            _exit(db, admin, seed.laptop_id, 1, counterparty_id=seed.client_id + 1000)

    def test_identical_requests_create_two_movements(self, db, seed, admin, session_factory):
        first = _entry(db, admin, seed.laptop_id, 4, reference="PO-77")
        second = _entry(db, admin, seed.laptop_id, 4, reference="PO-77")

        assert first.movement_id != second.movement_id
        assert second.new_stock == 58
        assert _movement_count(session_factory, seed.laptop_id) == 2

    def test_stock_matches_ledger(self, db, seed, admin, session_factory):
        _entry(db, admin, seed.laptop_id, 20)
        _exit(db, admin, seed.laptop_id, 35)
        _entry(db, admin, seed.laptop_id, 7)
        _exit(db, admin, seed.laptop_id, 12)

        with session_factory() as s:
            signed = sum(m.signed_qty for m in s.query(StockMovement).filter_by(product_id=seed.laptop_id))
            assert s.get(Product, seed.laptop_id).stock_quantity == 50 + signed == 30

    def test_failure_after_insert_rolls_everything_back(self, db, seed, admin, session_factory, monkeypatch):
        def broken(product, delta):
            raise RuntimeError("disk full")

        monkeypatch.setattr(inventory, "_apply_stock_delta", broken)

        with pytest.raises(RuntimeError):
            _entry(db, admin, seed.laptop_id, 20)

        assert _stock(session_factory, seed.laptop_id) == 50
        assert _movement_count(session_factory) == 0
        assert db.query(Log).count() == 0

    def test_entry_is_audited_after_commit(self, db, seed, admin):
        result = _entry(db, admin, seed.laptop_id, 20, reference="PO-1")

        log = db.query(Log).filter(Log.action == "STOCK_ENTRY").one()
        assert log.company_id == seed.company_id
        assert log.user_id == seed.admin_id
        assert log.resource == "product"
        assert log.resource_id == seed.laptop_id
        assert log.old_values == {"stock": 50}
        assert log.new_values["stock"] == 70
        assert log.new_values["movement_id"] == result.movement_id
        assert "Laptop" in log.description

    def test_audit_failure_does_not_fail_the_movement(self, db, seed, admin, session_factory, monkeypatch, caplog):
        import utils.audit

        def broken_log(**kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(utils.audit, "Log", broken_log)

        with caplog.at_level(logging.ERROR, logger="utils.audit"):
            result = _exit(db, admin, seed.laptop_id, 5)

        assert result.new_stock == 45
        assert _stock(session_factory, seed.laptop_id) == 45
        assert _movement_count(session_factory) == 1
        assert "Audit log write failed" in caplog.text


class TestConcurrentExits:

    def _exit_in_own_session(self, session_factory, user_id, product_id, qty, barrier):
        with session_factory() as s:
            user = s.get(User, user_id)
            # End the read transaction so the other thread is not blocked before the barrier
            s.commit()
            barrier.wait(timeout=10)
            try:
                return inventory.create_movement(s, user=user, kind=MovementType.EXIT, product_id=product_id, quantity=qty)
            except InsufficientStock as exc:
                return exc

    def test_two_exits_of_whole_stock_only_one_wins(self, session_factory, seed):
        barrier = threading.Barrier(2)
        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(self._exit_in_own_session, session_factory, user_id, seed.laptop_id, 50, barrier)
                for user_id in (seed.admin_id, seed.employee_id)
            ]
            outcomes = [f.result(timeout=60) for f in futures]

        successes = [o for o in outcomes if isinstance(o, inventory.MovementResult)]
        rejections = [o for o in outcomes if isinstance(o, InsufficientStock)]
        assert len(successes) == 1
        assert len(rejections) == 1
        assert rejections[0].details["available"] == 0
        assert _stock(session_factory, seed.laptop_id) == 0
        assert _movement_count(session_factory, seed.laptop_id) == 1

    def test_many_small_exits_never_oversell(self, session_factory, seed):
        # Stock is 50: ten exits of 7 units, at most seven can pass
        barrier = threading.Barrier(10)
        user_ids = [seed.admin_id, seed.employee_id] * 5
        with ThreadPoolExecutor(max_workers=10) as pool:
            futures = [
                pool.submit(self._exit_in_own_session, session_factory, uid, seed.laptop_id, 7, barrier)
                for uid in user_ids
            ]
            outcomes = [f.result(timeout=120) for f in futures]

        successes = [o for o in outcomes if isinstance(o, inventory.MovementResult)]
        assert len(successes) == 7
        assert _stock(session_factory, seed.laptop_id) == 1


class TestReverseMovement:

    def test_reversing_an_entry_restores_stock(self, db, seed, admin, session_factory):
        entry = _entry(db, admin, seed.laptop_id, 20)
        result = inventory.reverse_movement(db, user=admin, movement_id=entry.movement_id)

        assert result.old_stock == 70
        assert result.new_stock == 50
        assert _stock(session_factory, seed.laptop_id) == 50
        assert _movement_count(session_factory) == 0

    def test_reversing_an_exit_adds_back(self, db, seed, admin, session_factory):
        exit_ = _exit(db, admin, seed.laptop_id, 15)
        result = inventory.reverse_movement(db, user=admin, movement_id=exit_.movement_id)

        assert result.new_stock == 50
        assert _stock(session_factory, seed.laptop_id) == 50

    def test_unknown_movement(self, db, seed, admin):
        with pytest.raises(MovementNotFound) as exc:
            inventory.reverse_movement(db, user=admin, movement_id=424242)
        assert exc.value.status_code == 404

    def test_movement_of_another_company_is_not_found(self, db, seed, admin, other_admin, session_factory):
        entry = _entry(db, admin, seed.laptop_id, 20)

        with pytest.raises(MovementNotFound):
            inventory.reverse_movement(db, user=other_admin, movement_id=entry.movement_id)

        assert _stock(session_factory, seed.laptop_id) == 70
        assert _movement_count(session_factory) == 1

    def test_reversing_a_consumed_entry_goes_negative(self, db, seed, admin, session_factory, caplog):
        entry = _entry(db, admin, seed.laptop_id, 20)
        _exit(db, admin, seed.laptop_id, 60)

        with caplog.at_level(logging.WARNING, logger="services.inventory"):
            result = inventory.reverse_movement(db, user=admin, movement_id=entry.movement_id)

        assert result.new_stock == -10
        assert _stock(session_factory, seed.laptop_id) == -10
        assert "negative stock" in caplog.text

    def test_reversal_is_audited(self, db, seed, admin):
        entry = _entry(db, admin, seed.laptop_id, 20)
        inventory.reverse_movement(db, user=admin, movement_id=entry.movement_id, ip="10.0.0.8")

        log = db.query(Log).filter(Log.action == "STOCK_REVERSAL").one()
        assert log.ip == "10.0.0.8"
        assert log.old_values["movement_id"] == entry.movement_id
        assert log.new_values == {"stock": 50}

    def test_failed_reversal_keeps_movement(self, db, seed, admin, session_factory, monkeypatch):
        entry = _entry(db, admin, seed.laptop_id, 20)

        def broken(product, delta):
            raise RuntimeError("boom")

        monkeypatch.setattr(inventory, "_apply_stock_delta", broken)
        with pytest.raises(RuntimeError):
            inventory.reverse_movement(db, user=admin, movement_id=entry.movement_id)

        assert _stock(session_factory, seed.laptop_id) == 70
        assert _movement_count(session_factory) == 1


class TestMovementQueries:

    def test_newest_first_with_id_tiebreak(self, db, seed, admin):
        same_time = datetime(2026, 5, 1, 12, 0)
        older = _entry(db, admin, seed.laptop_id, 1, movement_date=datetime(2026, 4, 1, 9, 0))
        first = _entry(db, admin, seed.laptop_id, 2, movement_date=same_time)
        second = _entry(db, admin, seed.laptop_id, 3, movement_date=same_time)

        items, total = inventory.list_movements(db, seed.company_id)
        assert total == 3
        assert [m.id for m in items] == [second.movement_id, first.movement_id, older.movement_id]

    def test_filters(self, db, seed, admin):
        _entry(db, admin, seed.laptop_id, 1, movement_date=datetime(2026, 4, 30, 23, 59))
        may_entry = _entry(db, admin, seed.laptop_id, 2, movement_date=datetime(2026, 5, 1, 0, 0))
        may_exit = _exit(db, admin, seed.cable_id, 1, movement_date=datetime(2026, 5, 31, 23, 59, 59))
        _entry(db, admin, seed.cable_id, 4, movement_date=datetime(2026, 6, 1, 0, 0))

        may = dict(date_from=date(2026, 5, 1), date_to=date(2026, 5, 31))
        items, total = inventory.list_movements(db, seed.company_id, **may)
        assert total == 2
        assert {m.id for m in items} == {may_entry.movement_id, may_exit.movement_id}

        items, total = inventory.list_movements(db, seed.company_id, kind=MovementType.EXIT, **may)
        assert [m.id for m in items] == [may_exit.movement_id]

        items, total = inventory.list_movements(db, seed.company_id, product_id=seed.cable_id)
        assert total == 2

    def test_single_day_range(self, db, seed, admin):
        result = _entry(db, admin, seed.laptop_id, 1, movement_date=datetime(2026, 5, 1, 18, 30))

        items, total = inventory.list_movements(
            db, seed.company_id, date_from=date(2026, 5, 1), date_to=date(2026, 5, 1)
        )
        assert [m.id for m in items] == [result.movement_id]

    def test_pagination(self, db, seed, admin):
        for day in range(1, 6):
            _entry(db, admin, seed.laptop_id, day, movement_date=datetime(2026, 5, day, 8, 0))

        items, total = inventory.list_movements(db, seed.company_id, page=3, limit=2)
        assert total == 5
        assert [m.qty for m in items] == [1]

        items, total = inventory.list_movements(db, seed.company_id, page=4, limit=2)
        assert items == []
        assert total == 5

    def test_company_scope(self, db, seed, admin, other_admin):
        mine = _entry(db, admin, seed.laptop_id, 1)
        theirs = _entry(db, other_admin, seed.monitor_id, 1)

        items, total = inventory.list_movements(db, seed.other_company_id)
        assert [m.id for m in items] == [theirs.movement_id]

        with pytest.raises(MovementNotFound):
            inventory.get_movement(db, seed.other_company_id, mine.movement_id)

    def test_other_company_cannot_move_foreign_product(self, db, seed, other_admin, session_factory):
        with pytest.raises(ProductNotFound):
            _exit(db, other_admin, seed.laptop_id, 1)
        assert _stock(session_factory, seed.laptop_id) == 50
