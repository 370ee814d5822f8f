# stockledger/modules/stock/service.py
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.config.settings import settings
from stockledger.core.context import OperationContext
from stockledger.core.exceptions import StaleStockCount, TransactionRollback
from stockledger.shared.database.models import StockMovement
from stockledger.shared.references import MANUAL, Reference
from .repository import LedgerEntry, StockLedgerRepository
from .schemas import IncomingItem, MovementKind, OpnameItem

logger = logging.getLogger(__name__)


class StockService:
    """
    Public interface of the stock ledger for controllers and reporting.

    Each call here is its own transaction: commit on success, rollback and
    re-raise on any failure.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = StockLedgerRepository(db)

    # ==================== ADJUSTMENT PRIMITIVES ====================

    def increase(
        self,
        ctx: OperationContext,
        product_id: int,
        outlet_id: int,
        quantity: Decimal,
        kind: MovementKind = MovementKind.IN,
        reference: Reference = MANUAL,
        notes: Optional[str] = None
    ) -> Decimal:
        entry = self._in_transaction(
            "Stock increase",
            lambda: self.repository.increase(ctx, product_id, outlet_id, quantity, kind, reference, notes)
        )
        return entry.quantity_after

    def decrease(
        self,
        ctx: OperationContext,
        product_id: int,
        outlet_id: int,
        quantity: Decimal,
        kind: MovementKind = MovementKind.OUT,
        reference: Reference = MANUAL,
        notes: Optional[str] = None
    ) -> Decimal:
        entry = self._in_transaction(
            "Stock decrease",
            lambda: self.repository.decrease(ctx, product_id, outlet_id, quantity, kind, reference, notes)
        )
        return entry.quantity_after

    def receive_stock(
        self,
        ctx: OperationContext,
        outlet_id: int,
        items: List[IncomingItem],
        reference_number: Optional[str] = None
    ) -> Dict[str, Any]:
        """Goods arriving outside a purchase document, all lines or none"""

        def _apply():
            processed = []
            for item in items:
                entry = self.repository.increase(
                    ctx,
                    item.product_id,
                    outlet_id,
                    item.quantity,
                    MovementKind.IN,
                    MANUAL,
                    item.notes or f"Stock incoming {reference_number or ''}".strip()
                )
                processed.append({
                    "product_id": item.product_id,
                    "quantity_before": entry.quantity_before,
                    "quantity_after": entry.quantity_after
                })
            return processed

        processed_items = self._in_transaction("Stock incoming", _apply)
        logger.info(f"Stock incoming at outlet {outlet_id}: {len(processed_items)} items received")
        return {
            "success": True,
            "outlet_id": outlet_id,
            "processed_items": processed_items,
            "total_items": len(processed_items)
        }

    # ==================== READS ====================

    def list_stock(
        self,
        ctx: OperationContext,
        outlet_id: Optional[int] = None,
        search: Optional[str] = None,
        low_stock_only: bool = False,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        return [
            {
                "product_id": level.product_id,
                "product_name": product.name,
                "sku": product.sku,
                "outlet_id": level.outlet_id,
                "quantity": level.quantity,
                "min_stock": product.min_stock,
                "is_low_stock": level.quantity <= product.min_stock
            }
            for level, product in self.repository.list_levels(ctx, outlet_id, search, low_stock_only, limit)
        ]

    def current_quantity(self, ctx: OperationContext, product_id: int, outlet_id: int) -> Decimal:
        return self.repository.current_quantity(ctx, product_id, outlet_id)

    def movement_history(
        self,
        ctx: OperationContext,
        product_id: int,
        outlet_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        kinds: Optional[Sequence[MovementKind]] = None,
        limit: Optional[int] = None
    ) -> List[StockMovement]:
        return self.repository.recorder.history(ctx, product_id, outlet_id, start, end, kinds, limit)

    def reconcile(self, ctx: OperationContext, product_id: int, outlet_id: int) -> Dict[str, Any]:
        """Stored quantity against the sum of every recorded delta"""
        stored = self.repository.current_quantity(ctx, product_id, outlet_id)
        movement_total = self.repository.recorder.net_delta(ctx, product_id, outlet_id)
        if stored != movement_total:
            logger.warning(
                f"Ledger out of balance product={product_id} outlet={outlet_id}: "
                f"stored {stored}, movements {movement_total}"
            )
        return {
            "product_id": product_id,
            "outlet_id": outlet_id,
            "stored_quantity": stored,
            "movement_total": movement_total,
            "balanced": stored == movement_total
        }

    def low_stock_alerts(self, ctx: OperationContext, outlet_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return [
            {
                "product_id": level.product_id,
                "product_name": product.name,
                "outlet_id": level.outlet_id,
                "quantity": level.quantity,
                "min_stock": product.min_stock
            }
            for level, product in self.repository.low_stock(ctx, outlet_id)
        ]

    # ==================== MANUAL CORRECTIONS ====================

    def adjust_stock(
        self,
        ctx: OperationContext,
        product_id: int,
        outlet_id: int,
        new_quantity: Decimal,
        expected_quantity: Optional[Decimal] = None,
        notes: Optional[str] = None
    ) -> LedgerEntry:
        """
        Set the stock of one product to a counted quantity.

        With an explicit ``expected_quantity`` a concurrent change fails with
        StaleStockCount. Without one, the current quantity is read and the
        compare-and-set retried while other writers keep moving it.
        """
        notes = notes or "Stock adjustment"
        if expected_quantity is not None:
            return self._in_transaction(
                "Stock adjustment",
                lambda: self.repository.set_quantity(
                    ctx, product_id, outlet_id, new_quantity, expected_quantity, MANUAL, notes
                )
            )

        attempts = max(1, settings.adjust_max_attempts)
        for attempt in range(1, attempts + 1):
            expected = self.repository.current_quantity(ctx, product_id, outlet_id)
            # Release the read snapshot before the compare-and-set transaction
            self.db.rollback()
            try:
                return self._in_transaction(
                    "Stock adjustment",
                    lambda: self.repository.set_quantity(
                        ctx, product_id, outlet_id, new_quantity, expected, MANUAL, notes
                    )
                )
            except StaleStockCount:
                if attempt == attempts:
                    raise
                logger.info(f"Stock of product={product_id} outlet={outlet_id} moved during adjustment, retrying")

    def stock_opname(self, ctx: OperationContext, outlet_id: int, items: List[OpnameItem]) -> Dict[str, Any]:
        """Physical count of a whole outlet, all-or-nothing"""

        def _apply():
            processed = []
            for item in items:
                if item.difference == 0:
                    continue
                entry = self.repository.set_quantity(
                    ctx,
                    item.product_id,
                    outlet_id,
                    item.physical_stock,
                    item.system_stock,
                    MANUAL,
                    item.notes or "Stock opname adjustment"
                )
                processed.append({
                    "product_id": item.product_id,
                    "old_quantity": entry.quantity_before,
                    "new_quantity": entry.quantity_after,
                    "difference": entry.delta
                })
            return processed

        processed_items = self._in_transaction("Stock opname", _apply)
        logger.info(f"Stock opname at outlet {outlet_id}: {len(processed_items)} items adjusted")
        return {
            "success": True,
            "outlet_id": outlet_id,
            "processed_items": processed_items,
            "total_items": len(processed_items)
        }

    # ==================== TRANSACTION ====================

    def _in_transaction(self, operation: str, work):
        try:
            result = work()
            self.db.commit()
            return result
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"{operation} rolled back: {e}")
            raise TransactionRollback(operation, str(e)) from e
        except Exception:
            self.db.rollback()
            raise
