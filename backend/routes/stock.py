# backend/routes/stock.py
import math
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from models.stock import MovementType, StockMovement
from models.users import User
from services import inventory
from utils.tokenJWT import get_current_user, require_admin
from utils.request import client_ip
import schemas.stock as stock_schemas

router = APIRouter(tags=["Stock"])


def movement_to_dict(m: StockMovement) -> dict:
    """Flatten a movement with its product, user and counterparty names."""
    unit_price = float(m.unit_price) if m.unit_price is not None else None
    return {
        "id": m.id,
        "type": m.type,
        "product_id": m.product_id,
        "product_name": m.product.name if m.product else "Unknown",
        "product_code": m.product.code if m.product else None,
        "qty": m.qty,
        "unit_price": unit_price,
        "total_value": round(unit_price * m.qty, 2) if unit_price is not None else None,
        "user_id": m.user_id,
        "user_name": m.user.full_name if m.user else None,
        "supplier_id": m.supplier_id,
        "supplier_name": m.supplier.name if m.supplier else None,
        "client_id": m.client_id,
        "client_name": m.client.name if m.client else None,
        "comment": m.comment,
        "reference": m.reference,
        "movement_date": m.movement_date,
        "created_at": m.created_at,
    }


# List movements of the current company, newest first
@router.get("/", response_model=stock_schemas.StockMovementPage)
def list_movements(
    product_id: Optional[int] = Query(None),
    type: Optional[MovementType] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items, total = inventory.list_movements(
        db,
        current_user.company_id,
        product_id=product_id,
        kind=type,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return {
        "items": [movement_to_dict(m) for m in items],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/{movement_id}", response_model=stock_schemas.StockMovementResponse)
def get_movement(
    movement_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return movement_to_dict(inventory.get_movement(db, current_user.company_id, movement_id))


# Register a stock entry
@router.post("/entries", response_model=stock_schemas.MovementResultOut, status_code=status.HTTP_201_CREATED)
def create_entry(
    payload: stock_schemas.EntryCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = inventory.create_movement(
        db,
        user=current_user,
        kind=MovementType.ENTRY,
        product_id=payload.product_id,
        quantity=payload.quantity,
        unit_price=payload.unit_price,
        counterparty_id=payload.supplier_id,
        movement_date=payload.movement_date,
        comment=payload.comment,
        reference=payload.reference,
        ip=client_ip(request),
    )
    return {"movement_id": result.movement_id, "new_stock": result.new_stock, "message": "Stock entry recorded"}


# Register a stock exit
@router.post("/exits", response_model=stock_schemas.MovementResultOut, status_code=status.HTTP_201_CREATED)
def create_exit(
    payload: stock_schemas.ExitCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = inventory.create_movement(
        db,
        user=current_user,
        kind=MovementType.EXIT,
        product_id=payload.product_id,
        quantity=payload.quantity,
        unit_price=payload.unit_price,
        counterparty_id=payload.client_id,
        movement_date=payload.movement_date,
        comment=payload.comment,
        reference=payload.reference,
        ip=client_ip(request),
    )
    return {"movement_id": result.movement_id, "new_stock": result.new_stock, "message": "Stock exit recorded"}


# Cancel a movement and roll its stock effect back (admin only)
@router.delete("/{movement_id}", response_model=stock_schemas.MovementResultOut)
def cancel_movement(
    movement_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    result = inventory.reverse_movement(db, user=current_user, movement_id=movement_id, ip=client_ip(request))
    return {"movement_id": result.movement_id, "new_stock": result.new_stock, "message": "Movement cancelled"}
