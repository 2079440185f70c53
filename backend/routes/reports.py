# routes/reports.py
import logging
from datetime import date
from typing import Optional, List

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from config import settings
from database import get_db
from utils.tokenJWT import get_current_user
from utils.pdf import generate_movements_pdf
from utils.xlsx import XLSX_MEDIA_TYPE, export_to_excel
from models.users import User
from models.product import Product
from models.stock import MovementType
from routes.stock import movement_to_dict
from services import inventory
from schemas.reports import LowStockPage, LowStockItem

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])

MOVEMENT_COLUMNS = {
    "id": "ID",
    "movement_date": "Date",
    "type": "Type",
    "product_code": "Code",
    "product_name": "Product",
    "qty": "Quantity",
    "unit_price": "Unit price",
    "total_value": "Total value",
    "supplier_name": "Supplier",
    "client_name": "Client",
    "user_name": "User",
    "reference": "Reference",
    "comment": "Comment",
}

PRODUCT_COLUMNS = {
    "id": "ID",
    "code": "Code",
    "name": "Product",
    "category": "Category",
    "unit": "Unit",
    "buy_price": "Buy price",
    "sell_price": "Sell price",
    "stock_quantity": "Stock",
    "min_stock": "Minimum stock",
    "stock_value": "Stock value (buy)",
}


def _attachment(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _period_label(date_from: Optional[date], date_to: Optional[date]) -> str:
    if not date_from and not date_to:
        return "all"
    return f"{date_from or '...'} - {date_to or '...'}"


def summarize(rows: List[dict]) -> dict:
    """Entry and exit totals (units and value) over flattened movements."""
    summary = {"count": len(rows), "entries_qty": 0, "entries_value": 0.0, "exits_qty": 0, "exits_value": 0.0}
    for row in rows:
        prefix = "entries" if row["type"] == MovementType.ENTRY.value else "exits"
        summary[f"{prefix}_qty"] += row["qty"]
        summary[f"{prefix}_value"] += row["total_value"] or 0.0
    summary["entries_value"] = round(summary["entries_value"], 2)
    summary["exits_value"] = round(summary["exits_value"], 2)
    return summary


def _filtered_rows(db: Session, user: User, product_id, kind, date_from, date_to) -> List[dict]:
    movements = inventory.all_movements(
        db, user.company_id,
        product_id=product_id, kind=kind, date_from=date_from, date_to=date_to,
    )
    return [movement_to_dict(m) for m in movements]


# -----------------------------
# 1) Low stock
# -----------------------------
@router.get("/low-stock", response_model=LowStockPage)
def report_low_stock(
    q: Optional[str] = Query(None, description="Search by name/code"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # Each product is measured against its own threshold
    query = db.query(Product).filter(
        Product.company_id == current_user.company_id,
        Product.is_active.is_(True),
        Product.stock_quantity <= Product.min_stock,
    )
    if q:
        like = f"%{q}%"
        query = query.filter(or_(Product.name.ilike(like), Product.code.ilike(like)))

    total = query.count()
    rows = (query
            .order_by(Product.stock_quantity.asc(), Product.name.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all())

    items: List[LowStockItem] = [
        LowStockItem(
            product_id=p.id,
            name=p.name,
            code=p.code,
            stock_quantity=p.stock_quantity,
            min_stock=p.min_stock,
        )
        for p in rows
    ]
    return {"items": items, "total": total, "page": page, "page_size": page_size}


# -----------------------------
# 2) Movement exports
# -----------------------------
@router.get("/movements/pdf")
def export_movements_pdf(
    product_id: Optional[int] = Query(None),
    type: Optional[MovementType] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = _filtered_rows(db, current_user, product_id, type, date_from, date_to)
    listed = rows[:settings.EXPORT_ROW_LIMIT]

    content = generate_movements_pdf(
        listed,
        summarize(rows),
        company_name=current_user.company.name if current_user.company else None,
        period=_period_label(date_from, date_to),
        truncated=len(rows) > len(listed),
    )
    logger.info("Movements PDF exported for company %s (%s rows)", current_user.company_id, len(rows))
    return _attachment(content, "application/pdf", f"movements_{date.today():%Y%m%d}.pdf")


@router.get("/movements/xlsx")
def export_movements_xlsx(
    product_id: Optional[int] = Query(None),
    type: Optional[MovementType] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rows = _filtered_rows(db, current_user, product_id, type, date_from, date_to)
    summary = summarize(rows)
    for row in rows:
        row["type"] = "Entry" if row["type"] == MovementType.ENTRY.value else "Exit"

    content = export_to_excel(
        rows,
        MOVEMENT_COLUMNS,
        sheet_name="Movements",
        summary={
            "Period": _period_label(date_from, date_to),
            "Movements": summary["count"],
            "Units in": summary["entries_qty"],
            "Value in": summary["entries_value"],
            "Units out": summary["exits_qty"],
            "Value out": summary["exits_value"],
        },
    )
    return _attachment(content, XLSX_MEDIA_TYPE, f"movements_{date.today():%Y%m%d}.xlsx")


# -----------------------------
# 3) Product catalog export
# -----------------------------
@router.get("/products/xlsx")
def export_products_xlsx(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    products = (
        db.query(Product)
        .options(joinedload(Product.category))
        .filter(Product.company_id == current_user.company_id, Product.is_active.is_(True))
        .order_by(Product.name.asc())
        .all()
    )
    rows = [
        {
            "id": p.id,
            "code": p.code,
            "name": p.name,
            "category": p.category.name if p.category else None,
            "unit": p.unit,
            "buy_price": float(p.buy_price),
            "sell_price": float(p.sell_price),
            "stock_quantity": p.stock_quantity,
            "min_stock": p.min_stock,
            "stock_value": round(float(p.buy_price) * p.stock_quantity, 2),
        }
        for p in products
    ]
    content = export_to_excel(rows, PRODUCT_COLUMNS, sheet_name="Products")
    return _attachment(content, XLSX_MEDIA_TYPE, f"products_{date.today():%Y%m%d}.xlsx")
