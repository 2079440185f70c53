# backend/schemas/stock.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Literal

# Allowed movement kinds
StockMovementType = Literal["IN", "OUT"]


# Shared fields of entry and exit requests
class MovementCreateBase(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    movement_date: Optional[datetime] = None
    comment: Optional[str] = None
    reference: Optional[str] = Field(default=None, max_length=100)


# Stock entry (goods received from a supplier)
class EntryCreate(MovementCreateBase):
    supplier_id: Optional[int] = None


# Stock exit (goods delivered to a client)
class ExitCreate(MovementCreateBase):
    client_id: Optional[int] = None


# Returned after an entry, an exit or a cancellation
class MovementResultOut(BaseModel):
    success: bool = True
    movement_id: int
    new_stock: int
    message: str


# Schema for returning stock movement details
class StockMovementResponse(BaseModel):
    id: int
    type: StockMovementType
    product_id: int
    product_name: str
    product_code: Optional[str] = None
    qty: int
    unit_price: Optional[float] = None
    total_value: Optional[float] = None
    user_id: int
    user_name: Optional[str] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    client_id: Optional[int] = None
    client_name: Optional[str] = None
    comment: Optional[str] = None
    reference: Optional[str] = None
    movement_date: datetime
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Paginated response for stock movement history
class StockMovementPage(BaseModel):
    items: List[StockMovementResponse]
    total: int
    page: int
    limit: int
    total_pages: int
