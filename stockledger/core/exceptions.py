"""
Error taxonomy of the stock ledger.

Every error carries a machine readable ``code`` plus structured attributes so
controllers can build user-facing messages without parsing strings.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StockLedgerError(Exception):
    code = "stock_ledger_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "detail": {k: _jsonable(v) for k, v in self.detail.items()},
        }


class InvalidQuantity(StockLedgerError):
    code = "invalid_quantity"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, quantity: Any):
        super().__init__(f"Quantity must be greater than zero, got {quantity}", quantity=quantity)
        self.quantity = quantity


class InsufficientStock(StockLedgerError):
    code = "insufficient_stock"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, product_id: int, outlet_id: int, requested: Decimal, available: Optional[Decimal] = None):
        message = f"Insufficient stock for product {product_id} at outlet {outlet_id}: requested {requested}"
        if available is not None:
            message += f", available {available}"
        super().__init__(
            message,
            product_id=product_id,
            outlet_id=outlet_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.outlet_id = outlet_id
        self.requested = requested
        self.available = available


class InvalidConversionFactor(StockLedgerError):
    code = "invalid_conversion_factor"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, factor: Any):
        super().__init__(f"Conversion factor must be positive, got {factor}", factor=factor)
        self.factor = factor


class DuplicateStatusTransition(StockLedgerError):
    """A status edge whose stock effect was already applied."""
    code = "duplicate_status_transition"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, entity: str, entity_id: int, status_value: str):
        super().__init__(
            f"{entity} {entity_id} is already {status_value}",
            entity=entity,
            entity_id=entity_id,
            status=status_value,
        )
        self.entity = entity
        self.entity_id = entity_id
        self.status = status_value


class InvalidStatusTransition(StockLedgerError):
    code = "invalid_status_transition"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, entity: str, entity_id: int, old_status: str, new_status: str):
        super().__init__(
            f"{entity} {entity_id} cannot move from {old_status} to {new_status}",
            entity=entity,
            entity_id=entity_id,
            old_status=old_status,
            new_status=new_status,
        )
        self.old_status = old_status
        self.new_status = new_status


class InsufficientPayment(StockLedgerError):
    code = "insufficient_payment"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, total: Decimal, paid: Decimal):
        super().__init__(f"Paid amount {paid} is below the sale total {total}", total=total, paid=paid)
        self.total = total
        self.paid = paid


class InvalidDiscount(StockLedgerError):
    code = "invalid_discount"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, discount: Decimal, limit: Decimal, applies_to: str):
        super().__init__(
            f"Discount {discount} exceeds the {applies_to} amount {limit}",
            discount=discount,
            limit=limit,
            applies_to=applies_to,
        )
        self.discount = discount
        self.limit = limit


class StaleStockCount(StockLedgerError):
    code = "stale_stock_count"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, product_id: int, outlet_id: int, expected: Decimal, actual: Optional[Decimal] = None):
        super().__init__(
            f"Stock of product {product_id} at outlet {outlet_id} changed since it was counted "
            f"(counted against {expected}, now {actual})",
            product_id=product_id,
            outlet_id=outlet_id,
            expected=expected,
            actual=actual,
        )
        self.product_id = product_id
        self.outlet_id = outlet_id
        self.expected = expected
        self.actual = actual


class EntityNotFound(StockLedgerError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class EmptyDocument(StockLedgerError):
    code = "empty_document"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, document: str):
        super().__init__(f"{document} must contain at least one line", document=document)


class InvalidTransfer(StockLedgerError):
    code = "invalid_transfer"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class ImmutableMovement(StockLedgerError):
    code = "immutable_movement"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, movement_id: int, operation: str):
        super().__init__(
            f"Stock movement {movement_id} is append-only, {operation} rejected",
            movement_id=movement_id,
            operation=operation,
        )


class TransactionRollback(StockLedgerError):
    """A multi-line operation aborted on a storage error; all partial effects were undone."""
    code = "transaction_rollback"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, operation: str, reason: str):
        super().__init__(f"{operation} rolled back: {reason}", operation=operation)
        self.operation = operation


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value


def register_exception_handlers(app: FastAPI):
    """Map ledger errors to JSON responses"""

    @app.exception_handler(StockLedgerError)
    async def stock_ledger_error_handler(request: Request, exc: StockLedgerError):
        if exc.http_status >= 500:
            logger.error(f"{request.method} {request.url.path} - {exc.code}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} - {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())
