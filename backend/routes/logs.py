# backend/routes/logs.py
import math
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from models.log import Log
from models.stock import MovementType
from models.users import User
from routes.stock import movement_to_dict
from services import inventory
from utils.dates import day_end_exclusive, day_start
from utils.tokenJWT import get_current_user
from schemas.log import LogPage
from schemas.stock import StockMovementPage

router = APIRouter(prefix="/logs", tags=["Logs"])


# Audit trail of the current company, newest first (Admin only)
@router.get("", response_model=LogPage)
def get_logs(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    action: Optional[str] = Query(None, description="Filter by action"),
    user_id: Optional[int] = Query(None, description="Filter by user ID"),
    resource: Optional[str] = Query(None, description="Filter by resource"),
    product_id: Optional[int] = Query(None, description="Only events of this product"),
    status: Optional[str] = Query(None, description="Filter by status (SUCCESS/FAIL)"),
    date_from: Optional[date] = Query(None, description="From date (YYYY-MM-DD)"),
    date_to: Optional[date] = Query(None, description="To date (YYYY-MM-DD), inclusive"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Log).filter(Log.company_id == current_user.company_id)

    if action:
        query = query.filter(Log.action.ilike(f"%{action}%"))
    if user_id is not None:
        query = query.filter(Log.user_id == user_id)
    if resource:
        query = query.filter(Log.resource.ilike(f"%{resource}%"))
    if product_id is not None:
        query = query.filter(Log.resource == "product", Log.resource_id == product_id)
    if status:
        query = query.filter(Log.status == status)
    if date_from:
        query = query.filter(Log.ts >= day_start(date_from))
    if date_to:
        query = query.filter(Log.ts < day_end_exclusive(date_to))

    query = query.order_by(Log.ts.desc(), Log.id.desc())

    total = query.count()
    logs = query.offset((page - 1) * page_size).limit(page_size).all()

    items = []
    for entry in logs:
        items.append({
            "id": entry.id,
            "user_id": entry.user_id,
            "user_name": entry.user.full_name if entry.user else None,
            "action": entry.action,
            "resource": entry.resource,
            "resource_id": entry.resource_id,
            "description": entry.description,
            "status": entry.status,
            "ip": entry.ip,
            "ts": entry.ts,
            "old_values": entry.old_values,
            "new_values": entry.new_values,
        })

    return {"items": items, "total": total, "page": page, "page_size": page_size}


# Movement history, same filters as GET /stock/
@router.get("/movements", response_model=StockMovementPage)
def get_movement_history(
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
        db, current_user.company_id,
        product_id=product_id, kind=type, date_from=date_from, date_to=date_to,
        page=page, limit=limit,
    )
    return {
        "items": [movement_to_dict(m) for m in items],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
