from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from config import settings
from database import ledger_transaction
from models.partner import Client, Supplier
from models.product import Product
from models.stock import MovementType, StockMovement
from models.users import User
from services.errors import (
    CounterpartyNotFound,
    InsufficientStock,
    InvalidQuantity,
    MovementNotFound,
    ProductNotFound,
)
from utils.audit import write_log
from utils.dates import day_end_exclusive, day_start, to_utc_naive, utc_now

logger = logging.getLogger(__name__)

AUDIT_ACTIONS = {
    MovementType.ENTRY: "STOCK_ENTRY",
    MovementType.EXIT: "STOCK_EXIT",
}
LABELS = {
    MovementType.ENTRY: "Entry",
    MovementType.EXIT: "Exit",
}


@dataclass(frozen=True)
class MovementResult:
    movement_id: int
    product_id: int
    old_stock: int
    new_stock: int


# ---------- Validation ----------
def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity(quantity)
    return quantity


def validate_movement(
    db: Session,
    *,
    company_id: int,
    kind: MovementType,
    product_id: int,
    quantity: int,
    lock: bool = False,
) -> Product:
    """
    Check a requested movement against the catalog and return the product.

    Raises InvalidQuantity, ProductNotFound (missing, inactive or owned by
    another company) or InsufficientStock (exit larger than current stock).
    With ``lock=True`` the product row is read with SELECT ... FOR UPDATE
    and refreshed, so the caller holds it until its transaction ends.
    """
    kind = MovementType(kind)
    qty = _check_quantity(quantity)

    query = db.query(Product).filter(
        Product.id == product_id,
        Product.company_id == company_id,
        Product.is_active.is_(True),
    )
    if lock:
        query = query.with_for_update().populate_existing()

    product = query.first()
    if product is None:
        raise ProductNotFound(product_id)

    if kind is MovementType.EXIT and product.stock_quantity < qty:
        raise InsufficientStock(product.id, product.stock_quantity, qty)

    return product


def _check_counterparty(db: Session, company_id: int, kind: MovementType, counterparty_id: int) -> None:
    model = Supplier if kind is MovementType.ENTRY else Client
    exists = (
        db.query(model.id)
        .filter(model.id == counterparty_id, model.company_id == company_id, model.is_active.is_(True))
        .first()
    )
    if exists is None:
        raise CounterpartyNotFound("supplier" if kind is MovementType.ENTRY else "client", counterparty_id)


# ---------- Ledger mutation ----------
def _apply_stock_delta(product: Product, delta: int) -> None:
    product.stock_quantity = product.stock_quantity + delta


def apply_movement(
    db: Session,
    *,
    user: User,
    kind: MovementType,
    product_id: int,
    quantity: int,
    unit_price: Optional[Decimal] = None,
    counterparty_id: Optional[int] = None,
    movement_date: Optional[datetime] = None,
    comment: Optional[str] = None,
    reference: Optional[str] = None,
) -> Tuple[StockMovement, Product, int]:
    """
    Insert a movement and update the product stock inside the caller's
    transaction. Returns the movement, the product and the stock before.

    Does not commit: wrap it in ``ledger_transaction``.
    """
    kind = MovementType(kind)
    product = validate_movement(
        db,
        company_id=user.company_id,
        kind=kind,
        product_id=product_id,
        quantity=quantity,
        lock=True,
    )
    if counterparty_id is not None:
        _check_counterparty(db, user.company_id, kind, counterparty_id)

    if unit_price is None:
        unit_price = product.buy_price if kind is MovementType.ENTRY else product.sell_price

    old_stock = product.stock_quantity

    movement = StockMovement(
        company_id=user.company_id,
        product_id=product.id,
        user_id=user.id,
        type=kind.value,
        qty=quantity,
        unit_price=unit_price,
        supplier_id=counterparty_id if kind is MovementType.ENTRY else None,
        client_id=counterparty_id if kind is MovementType.EXIT else None,
        movement_date=to_utc_naive(movement_date) if movement_date else utc_now(),
        comment=comment,
        reference=reference,
    )
    db.add(movement)
    db.flush()

    delta = quantity if kind is MovementType.ENTRY else -quantity
    _apply_stock_delta(product, delta)
    db.flush()

    return movement, product, old_stock


def create_movement(
    db: Session,
    *,
    user: User,
    kind: MovementType,
    product_id: int,
    quantity: int,
    unit_price: Optional[Decimal] = None,
    counterparty_id: Optional[int] = None,
    movement_date: Optional[datetime] = None,
    comment: Optional[str] = None,
    reference: Optional[str] = None,
    ip: Optional[str] = None,
) -> MovementResult:
    """
    Record an entry or an exit and adjust the stock as one transaction.

    There is no idempotency key: calling this twice with the same payload
    records two movements.
    """
    kind = MovementType(kind)
    company_id, user_id = user.company_id, user.id

    with ledger_transaction(db):
        movement, product, old_stock = apply_movement(
            db,
            user=user,
            kind=kind,
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            counterparty_id=counterparty_id,
            movement_date=movement_date,
            comment=comment,
            reference=reference,
        )
        result = MovementResult(
            movement_id=movement.id,
            product_id=product.id,
            old_stock=old_stock,
            new_stock=product.stock_quantity,
        )
        product_name = product.name
        resolved_price = movement.unit_price

    logger.info(
        "%s #%s committed: company=%s product=%s qty=%s stock %s -> %s",
        LABELS[kind], result.movement_id, company_id, result.product_id,
        quantity, result.old_stock, result.new_stock,
    )

    write_log(
        db,
        company_id=company_id,
        user_id=user_id,
        action=AUDIT_ACTIONS[kind],
        resource="product",
        resource_id=result.product_id,
        description=(
            f"{LABELS[kind]} of {quantity} {product_name} "
            f"(stock: {result.old_stock} -> {result.new_stock})"
        ),
        ip=ip,
        old_values={"stock": result.old_stock},
        new_values={
            "stock": result.new_stock,
            "movement_id": result.movement_id,
            "qty": quantity,
            "unit_price": resolved_price,
            "reference": reference,
        },
    )
    return result


def reverse_movement(
    db: Session,
    *,
    user: User,
    movement_id: int,
    ip: Optional[str] = None,
) -> MovementResult:
    """
    Cancel a movement: undo its stock effect and delete it, atomically.

    Stock is not checked here. Cancelling an entry whose units already left
    through later exits drives the stock negative; that is kept as is and
    only reported with a warning.
    """
    company_id, user_id = user.company_id, user.id

    with ledger_transaction(db):
        movement = (
            db.query(StockMovement)
            .filter(StockMovement.id == movement_id, StockMovement.company_id == company_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if movement is None:
            raise MovementNotFound(movement_id)

        product = (
            db.query(Product)
            .filter(Product.id == movement.product_id, Product.company_id == company_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if product is None:
            raise ProductNotFound(movement.product_id)

        kind = MovementType(movement.type)
        qty = movement.qty
        old_stock = product.stock_quantity

        _apply_stock_delta(product, -movement.signed_qty)
        db.delete(movement)
        db.flush()

        result = MovementResult(
            movement_id=movement_id,
            product_id=product.id,
            old_stock=old_stock,
            new_stock=product.stock_quantity,
        )
        product_name = product.name

    if result.new_stock < 0:
        logger.warning(
            "Cancelling movement #%s left product %s with negative stock (%s)",
            movement_id, result.product_id, result.new_stock,
        )
    else:
        logger.info(
            "Movement #%s cancelled: product=%s stock %s -> %s",
            movement_id, result.product_id, result.old_stock, result.new_stock,
        )

    write_log(
        db,
        company_id=company_id,
        user_id=user_id,
        action="STOCK_REVERSAL",
        resource="product",
        resource_id=result.product_id,
        description=(
            f"Cancelled movement #{movement_id} ({LABELS[kind].lower()}, qty: {qty}) "
            f"on {product_name} (stock: {result.old_stock} -> {result.new_stock})"
        ),
        ip=ip,
        old_values={"stock": result.old_stock, "movement_id": movement_id, "type": kind.value, "qty": qty},
        new_values={"stock": result.new_stock},
    )
    return result


# ---------- Queries ----------
def movements_query(
    db: Session,
    company_id: int,
    *,
    product_id: Optional[int] = None,
    kind: Optional[MovementType] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
):
    """Filtered, unordered query over one company's movements. Date bounds are inclusive."""
    query = db.query(StockMovement).filter(StockMovement.company_id == company_id)

    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if kind is not None:
        query = query.filter(StockMovement.type == MovementType(kind).value)
    if date_from is not None:
        query = query.filter(StockMovement.movement_date >= day_start(date_from))
    if date_to is not None:
        query = query.filter(StockMovement.movement_date < day_end_exclusive(date_to))

    return query


def _newest_first(query):
    return query.options(
        joinedload(StockMovement.product),
        joinedload(StockMovement.user),
        joinedload(StockMovement.supplier),
        joinedload(StockMovement.client),
    ).order_by(StockMovement.movement_date.desc(), StockMovement.id.desc())


def list_movements(
    db: Session,
    company_id: int,
    *,
    product_id: Optional[int] = None,
    kind: Optional[MovementType] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    limit: int = settings.DEFAULT_PAGE_SIZE,
) -> Tuple[List[StockMovement], int]:
    query = movements_query(
        db, company_id,
        product_id=product_id, kind=kind, date_from=date_from, date_to=date_to,
    )
    total = query.count()
    items = _newest_first(query).offset((max(page, 1) - 1) * limit).limit(limit).all()
    return items, total


def all_movements(db: Session, company_id: int, **filters) -> List[StockMovement]:
    """Every matching movement, newest first. Used by exports."""
    return _newest_first(movements_query(db, company_id, **filters)).all()


def get_movement(db: Session, company_id: int, movement_id: int) -> StockMovement:
    movement = (
        _newest_first(db.query(StockMovement))
        .filter(StockMovement.id == movement_id, StockMovement.company_id == company_id)
        .first()
    )
    if movement is None:
        raise MovementNotFound(movement_id)
    return movement
