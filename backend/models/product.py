# backend/models/product.py
from sqlalchemy import (
    Column, Integer, String, Boolean, Numeric, DateTime, ForeignKey,
    CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from database import Base


# Product category, scoped to a company
class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)


# Model Product
# Catalog entry of a company: prices, current stock and the alert threshold.
# stock_quantity is only ever written by services.inventory.
class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_products_company_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)

    name = Column(String, nullable=False, index=True)
    code = Column(String, nullable=True, index=True) # barcode
    description = Column(String, nullable=True)
    unit = Column(String, nullable=False, default="unit")

    buy_price = Column(Numeric(12, 2), CheckConstraint("buy_price >= 0"), nullable=False, default=0)
    sell_price = Column(Numeric(12, 2), CheckConstraint("sell_price >= 0"), nullable=False, default=0)

    # No CHECK on stock_quantity: cancelling an old entry may leave it negative
    stock_quantity = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=5)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("Category")

    @property
    def is_low_stock(self) -> bool:
        return (self.stock_quantity or 0) <= (self.min_stock or 0)
