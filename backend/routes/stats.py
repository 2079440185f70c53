# backend/routes/stats.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import func, case
from datetime import timedelta
from pydantic import BaseModel
from typing import List, Optional

from database import get_db
from utils.tokenJWT import get_current_user
from utils.dates import day_end_exclusive, day_start, reference_today
from models.users import User
from models.product import Product
from models.stock import MovementType, StockMovement

router = APIRouter(
    prefix="/stats",
    tags=["Stats"]
)

# Number of low stock products shown on the dashboard
LOW_STOCK_ALERTS = 10

# === Pydantic Response Schemas ===

class LowStockAlert(BaseModel):
    product_id: int
    product_name: str
    stock_quantity: int
    min_stock: int

class StatsSummary(BaseModel):
    total_products: int
    stock_value_buy: float
    stock_value_sell: float
    entries_today: int
    exits_today: int
    low_stock_count: int
    low_stock_alerts: List[LowStockAlert]

class DailyMovements(BaseModel):
    date: str
    entries: int
    exits: int

class DailyMovementsResponse(BaseModel):
    data: List[DailyMovements]

# Schema for most moved products
class TopProduct(BaseModel):
    product_id: int
    product_name: str
    total_quantity: int
    movements_count: int

class TopProductsResponse(BaseModel):
    data: List[TopProduct]


def _qty_by_type(kind: MovementType):
    return func.coalesce(func.sum(case((StockMovement.type == kind.value, StockMovement.qty), else_=0)), 0)


# === Endpoint 1: Dashboard Summary ===

@router.get("/summary", response_model=StatsSummary)
def get_stats_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    company_id = current_user.company_id
    active = (Product.company_id == company_id, Product.is_active.is_(True))

    # Product count and stock valuation at both prices
    total_products, value_buy, value_sell = db.query(
        func.count(Product.id),
        func.coalesce(func.sum(Product.stock_quantity * Product.buy_price), 0),
        func.coalesce(func.sum(Product.stock_quantity * Product.sell_price), 0),
    ).filter(*active).one()

    # Units moved today
    today = reference_today()
    entries_today, exits_today = db.query(
        _qty_by_type(MovementType.ENTRY),
        _qty_by_type(MovementType.EXIT),
    ).filter(
        StockMovement.company_id == company_id,
        StockMovement.movement_date >= day_start(today),
        StockMovement.movement_date < day_end_exclusive(today),
    ).one()

    low_stock = db.query(Product).filter(*active, Product.stock_quantity <= Product.min_stock)
    low_stock_count = low_stock.count()
    alerts = low_stock.order_by(Product.stock_quantity.asc(), Product.id.asc()).limit(LOW_STOCK_ALERTS).all()

    return StatsSummary(
        total_products=total_products,
        stock_value_buy=float(value_buy),
        stock_value_sell=float(value_sell),
        entries_today=int(entries_today),
        exits_today=int(exits_today),
        low_stock_count=low_stock_count,
        low_stock_alerts=[
            LowStockAlert(product_id=p.id, product_name=p.name, stock_quantity=p.stock_quantity, min_stock=p.min_stock)
            for p in alerts
        ],
    )

# === Endpoint 2: Chart Data ===

@router.get("/daily-movements", response_model=DailyMovementsResponse)
def get_daily_movements(
    period: int = Query(7, ge=1, le=365, description="Number of days, today included"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    today = reference_today()
    first_day = today - timedelta(days=period - 1)

    rows = (
        db.query(StockMovement.type, StockMovement.qty, StockMovement.movement_date)
        .filter(
            StockMovement.company_id == current_user.company_id,
            StockMovement.movement_date >= day_start(first_day),
            StockMovement.movement_date < day_end_exclusive(today),
        )
        .all()
    )

    # Bucket by reference-calendar day
    buckets = {first_day + timedelta(days=i): [0, 0] for i in range(period)}
    day_bounds = [(day, day_start(day), day_end_exclusive(day)) for day in buckets]
    for kind, qty, moved_at in rows:
        for day, start, end in day_bounds:
            if start <= moved_at < end:
                buckets[day][0 if kind == MovementType.ENTRY.value else 1] += qty
                break

    # Fill missing dates with zeros
    return DailyMovementsResponse(data=[
        DailyMovements(date=day.strftime("%Y-%m-%d"), entries=entries, exits=exits)
        for day, (entries, exits) in buckets.items()
    ])

# === Endpoint 3: Top Products ===

@router.get("/top-products", response_model=TopProductsResponse)
def get_top_products_stats(
    type: Optional[MovementType] = Query(None, description="Only entries (IN) or exits (OUT)"),
    limit: int = Query(5, ge=1, le=50),
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    since = day_start(reference_today() - timedelta(days=days - 1))

    query = (
        db.query(
            Product.id.label("product_id"),
            Product.name.label("product_name"),
            func.sum(StockMovement.qty).label("total_quantity"),
            func.count(StockMovement.id).label("movements_count"),
        )
        .join(StockMovement, StockMovement.product_id == Product.id)
        .filter(
            StockMovement.company_id == current_user.company_id,
            StockMovement.movement_date >= since,
        )
    )
    if type is not None:
        query = query.filter(StockMovement.type == type.value)

    # Aggregate quantity by product, sort descending
    rows = (
        query.group_by(Product.id, Product.name)
        .order_by(func.sum(StockMovement.qty).desc(), Product.id.asc())
        .limit(limit)
        .all()
    )

    return TopProductsResponse(data=[
        TopProduct(
            product_id=r.product_id,
            product_name=r.product_name,
            total_quantity=int(r.total_quantity),
            movements_count=r.movements_count,
        )
        for r in rows
    ])
