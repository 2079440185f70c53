# backend/schemas/product.py
from pydantic import BaseModel, Field, ConfigDict
from decimal import Decimal
from datetime import datetime
from typing import Optional, List, Literal


# Base configuration for ORM compatibility
class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Shared base attributes for product entities
class ProductBase(ORMBase):
    name: str = Field(min_length=1)
    code: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    unit: str = "unit"
    buy_price: Decimal = Field(default=Decimal("0"), ge=0)
    sell_price: Decimal = Field(default=Decimal("0"), ge=0)
    min_stock: int = Field(default=5, ge=0)


# Schema for creating a new product
class ProductCreate(ProductBase):
    # Recorded as an entry movement, not written to the product directly
    initial_stock: int = Field(default=0, ge=0)


# Schema for partial product updates
class ProductEditRequest(ORMBase):
    """Schema for PATCH requests - all fields optional. Stock is not editable here."""
    name: Optional[str] = Field(None, min_length=1)
    code: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    unit: Optional[str] = None
    buy_price: Optional[Decimal] = Field(None, ge=0)
    sell_price: Optional[Decimal] = Field(None, ge=0)
    min_stock: Optional[int] = Field(None, ge=0)


class ProductResponse(ORMBase):
    id: int
    name: str
    code: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    unit: str
    buy_price: float
    sell_price: float
    stock_quantity: int
    min_stock: int
    is_low_stock: bool
    is_active: bool
    created_at: Optional[datetime] = None


# Paginated response for product listings
class ProductListPage(ORMBase):
    items: List[ProductResponse]
    total: int
    page: int
    page_size: int


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None


class CategoryOut(ORMBase):
    id: int
    name: str
    description: Optional[str] = None


ProductSort = Literal["id", "name", "code", "buy_price", "sell_price", "stock_quantity", "created_at"]
