# backend/models/stock.py
import enum
from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, CheckConstraint, func
from sqlalchemy.orm import relationship
from database import Base


class MovementType(str, enum.Enum):
    ENTRY = "IN"
    EXIT = "OUT"


class StockMovement(Base):
    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_stock_movements_qty_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    # IN or OUT, see MovementType
    type = Column(String(8), nullable=False, index=True)

    # Always positive, the sign comes from the type
    qty = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=True)

    # Counterparty: supplier on entries, client on exits
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)

    comment = Column(String, nullable=True)
    reference = Column(String, nullable=True)

    # Naive UTC
    movement_date = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    product = relationship("Product")
    user = relationship("User")
    supplier = relationship("Supplier")
    client = relationship("Client")

    @property
    def signed_qty(self) -> int:
        return self.qty if self.type == MovementType.ENTRY.value else -self.qty
