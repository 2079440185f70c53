# backend/routes/products.py
import logging
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from database import get_db, ledger_transaction
from utils.tokenJWT import get_current_user, require_admin
from utils.request import client_ip
from utils.audit import write_log
from models.users import User
from models.product import Category, Product
from models.stock import MovementType
from services.inventory import apply_movement
import schemas.product as product_schemas

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Products"])

PRICE_FIELDS = ("buy_price", "sell_price")
# NOT NULL columns: a null in a PATCH body leaves them unchanged
REQUIRED_FIELDS = ("name", "unit", "buy_price", "sell_price", "min_stock")


# ---- HELPERS ----
def _norm_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    c = code.strip().upper()
    return c if c else None


def serialize_product(p: Product) -> product_schemas.ProductResponse:
    fields = list(product_schemas.ProductResponse.model_fields.keys())
    data = {f: getattr(p, f) for f in fields if hasattr(p, f)}
    data["category_name"] = p.category.name if p.category else None
    return product_schemas.ProductResponse.model_validate(data)


def _company_product(db: Session, company_id: int, product_id: int) -> Product:
    product = (
        db.query(Product)
        .filter(Product.id == product_id, Product.company_id == company_id, Product.is_active.is_(True))
        .first()
    )
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


def _check_unique(db: Session, company_id: int, name: Optional[str], code: Optional[str], exclude_id: Optional[int] = None):
    base = db.query(Product.id).filter(Product.company_id == company_id)
    if exclude_id is not None:
        base = base.filter(Product.id != exclude_id)
    if name and base.filter(Product.is_active.is_(True), func.lower(Product.name) == name.strip().lower()).first():
        raise HTTPException(status_code=409, detail="A product with this name already exists")
    # Codes stay reserved by deactivated products (uq_products_company_code)
    if code and base.filter(Product.code == code).first():
        raise HTTPException(status_code=409, detail="A product with this code already exists")


def _check_category(db: Session, company_id: int, category_id: Optional[int]):
    if category_id is None:
        return
    exists = db.query(Category.id).filter(Category.id == category_id, Category.company_id == company_id).first()
    if not exists:
        raise HTTPException(status_code=404, detail="Category not found")


# =========================
# PRODUCT LIST
# =========================
@router.get("/products", response_model=product_schemas.ProductListPage)
def list_products(
    q: Optional[str] = Query(None, description="Search by name or code"),
    category_id: Optional[int] = Query(None),
    low_stock: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=500),
    sort_by: product_schemas.ProductSort = "name",
    order: str = Query("asc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Product).filter(
        Product.company_id == current_user.company_id,
        Product.is_active.is_(True),
    )

    if q:
        like = f"%{q}%"
        query = query.filter(or_(Product.name.ilike(like), Product.code.ilike(like)))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if low_stock:
        query = query.filter(Product.stock_quantity <= Product.min_stock)

    sort_col = getattr(Product, sort_by)
    query = query.order_by(sort_col.asc() if order == "asc" else sort_col.desc(), Product.id.asc())

    total = query.count()
    items: List[Product] = (
        query.options(joinedload(Product.category)).offset((page - 1) * page_size).limit(page_size).all()
    )

    return {"items": [serialize_product(p) for p in items], "total": total, "page": page, "page_size": page_size}


# =========================
# CATEGORIES
# =========================
@router.get("/products/categories", response_model=List[product_schemas.CategoryOut])
def list_categories(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return (
        db.query(Category)
        .filter(Category.company_id == current_user.company_id)
        .order_by(Category.name.asc())
        .all()
    )


@router.post("/products/categories", response_model=product_schemas.CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(
    payload: product_schemas.CategoryCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    name = payload.name.strip()
    duplicate = (
        db.query(Category.id)
        .filter(Category.company_id == current_user.company_id, func.lower(Category.name) == name.lower())
        .first()
    )
    if duplicate:
        raise HTTPException(status_code=409, detail="Category already exists")

    category = Category(company_id=current_user.company_id, name=name, description=payload.description)
    db.add(category)
    db.commit()
    db.refresh(category)

    write_log(db, company_id=current_user.company_id, user_id=current_user.id, action="CATEGORY_CREATE",
              resource="category", resource_id=category.id, description=f"Category {category.name} created",
              ip=client_ip(request))
    return category


# =========================
# SINGLE PRODUCT
# =========================
@router.get("/products/{product_id}", response_model=product_schemas.ProductResponse)
def get_product(
    product_id: int,
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user),
):
    return serialize_product(_company_product(db, current_user.company_id, product_id))


# =========================
# ADD PRODUCT
# =========================
@router.post("/products", response_model=product_schemas.ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: product_schemas.ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    company_id, user_id = current_user.company_id, current_user.id
    code = _norm_code(payload.code)
    _check_unique(db, company_id, payload.name, code)
    _check_category(db, company_id, payload.category_id)

    data = payload.model_dump(exclude={"initial_stock", "code"})
    data["name"] = data["name"].strip()

    with ledger_transaction(db):
        product = Product(company_id=company_id, code=code, stock_quantity=0, **data)
        db.add(product)
        db.flush()

        # Opening stock goes through the ledger like any other entry
        if payload.initial_stock > 0:
            apply_movement(
                db,
                user=current_user,
                kind=MovementType.ENTRY,
                product_id=product.id,
                quantity=payload.initial_stock,
                comment="Initial stock",
            )
        product_id = product.id

    logger.info("Product %s created for company %s (initial stock %s)", product_id, company_id, payload.initial_stock)

    write_log(db, company_id=company_id, user_id=user_id, action="PRODUCT_CREATE", resource="product",
              resource_id=product_id, description=f"Product {data['name']} created", ip=client_ip(request),
              new_values={"name": data["name"], "code": code, "initial_stock": payload.initial_stock})

    return serialize_product(_company_product(db, company_id, product_id))


# =========================
# EDIT PRODUCT
# =========================
@router.patch("/products/{product_id}", response_model=product_schemas.ProductResponse)
def update_product(
    product_id: int,
    payload: product_schemas.ProductEditRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    company_id, user_id = current_user.company_id, current_user.id
    product = _company_product(db, company_id, product_id)

    changes = {
        k: v for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k not in REQUIRED_FIELDS
    }
    if "code" in changes:
        changes["code"] = _norm_code(changes["code"])
    if "name" in changes:
        changes["name"] = changes["name"].strip()
    _check_unique(db, company_id, changes.get("name"), changes.get("code"), exclude_id=product.id)
    _check_category(db, company_id, changes.get("category_id"))

    old_values = {k: getattr(product, k) for k in changes}
    for key, value in changes.items():
        setattr(product, key, value)
    db.commit()

    price_changes = {k: v for k, v in changes.items() if k in PRICE_FIELDS and v != old_values[k]}

    write_log(db, company_id=company_id, user_id=user_id, action="PRODUCT_UPDATE", resource="product",
              resource_id=product_id, ip=client_ip(request), old_values=old_values, new_values=changes)
    if price_changes:
        write_log(db, company_id=company_id, user_id=user_id, action="PRICE_UPDATE", resource="product",
                  resource_id=product_id, description="Price changed", ip=client_ip(request),
                  old_values={k: old_values[k] for k in price_changes}, new_values=price_changes)

    return serialize_product(_company_product(db, company_id, product_id))


# =========================
# DELETE PRODUCT
# =========================
@router.delete("/products/{product_id}")
def delete_product(
    product_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    product = _company_product(db, current_user.company_id, product_id)

    # Soft delete keeps the movement history intact
    product.is_active = False
    name = product.name
    db.commit()

    write_log(db, company_id=current_user.company_id, user_id=current_user.id, action="PRODUCT_DELETE",
              resource="product", resource_id=product_id, description=f"Product {name} deactivated",
              ip=client_ip(request))
    return {"message": f"Product {name} deleted"}
