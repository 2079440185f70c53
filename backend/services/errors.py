# backend/services/errors.py
"""
Business errors raised by the stock ledger.

Each error carries a stable ``code`` for API clients and the HTTP status it
maps to. main.py turns them into JSON responses; nothing here knows about
FastAPI.
"""
from typing import Any, Dict


class StockError(Exception):
    code = "STOCK_ERROR"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details


class InvalidQuantity(StockError):
    code = "INVALID_QUANTITY"
    status_code = 400

    def __init__(self, quantity: Any):
        super().__init__(f"Quantity must be an integer >= 1 (got {quantity!r})")


class ProductNotFound(StockError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404

    def __init__(self, product_id: int):
        super().__init__("Product not found", product_id=product_id)


class InsufficientStock(StockError):
    code = "INSUFFICIENT_STOCK"
    status_code = 400

    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock. Available: {available}, requested: {requested}",
            product_id=product_id,
            available=available,
            requested=requested,
        )


class MovementNotFound(StockError):
    code = "MOVEMENT_NOT_FOUND"
    status_code = 404

    def __init__(self, movement_id: int):
        super().__init__("Movement not found", movement_id=movement_id)


class CounterpartyNotFound(StockError):
    code = "COUNTERPARTY_NOT_FOUND"
    status_code = 404

    def __init__(self, kind: str, counterparty_id: int):
        super().__init__(f"{kind.capitalize()} not found", counterparty_id=counterparty_id)
