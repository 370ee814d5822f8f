# stockledger/modules/purchases/service.py
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.core.context import OperationContext
from stockledger.core.exceptions import (
    DuplicateStatusTransition, EmptyDocument, EntityNotFound, InvalidDiscount, InvalidQuantity,
    InvalidStatusTransition, TransactionRollback
)
from stockledger.modules.stock.repository import StockLedgerRepository
from stockledger.modules.stock.schemas import MovementKind
from stockledger.modules.units.service import UnitResolver, quantize_money, quantize_quantity
from stockledger.shared.database.models import Purchase
from stockledger.shared.references import PurchaseRef
from .repository import PurchaseRepository
from .schemas import PurchaseCreate, PurchaseStatus, StatusChangeResult

logger = logging.getLogger(__name__)

PENDING = PurchaseStatus.pending.value
PARTIAL = PurchaseStatus.partial.value
PAID = PurchaseStatus.paid.value
CANCELLED = PurchaseStatus.cancelled.value

ALLOWED_TRANSITIONS = {
    PENDING: {PARTIAL, PAID, CANCELLED},
    PARTIAL: {PAID, CANCELLED},
    PAID: {CANCELLED},
    CANCELLED: {PAID},
}


class PurchaseReceivingService:
    """
    Supplier purchases. Stock arrives when a purchase becomes paid and leaves
    again when a paid purchase is cancelled, each exactly once.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = PurchaseRepository(db)
        self.ledger = StockLedgerRepository(db)
        self.resolver = UnitResolver(db)

    # ==================== DOCUMENTS ====================

    def create_purchase(self, ctx: OperationContext, purchase_data: PurchaseCreate) -> Purchase:
        """
        Register a purchase.

        Pending when nothing is paid, partial when part is paid. A purchase
        paid in full is received on the spot, in the same transaction.
        """
        if not purchase_data.lines:
            raise EmptyDocument("Purchase")
        for line in purchase_data.lines:
            if line.quantity <= 0:
                raise InvalidQuantity(line.quantity)

        try:
            # 1. Cost every line and convert it to base units
            lines = []
            for line in purchase_data.lines:
                resolved = self.resolver.resolve(ctx, line.product_id, line.unit_id)
                price = line.unit_price if line.unit_price is not None else resolved.price("purchase")
                lines.append({
                    "product_id": line.product_id,
                    "unit_id": resolved.unit_id,
                    "conversion_factor": resolved.factor,
                    "quantity": quantize_quantity(line.quantity),
                    "base_quantity": resolved.base_quantity(line.quantity),
                    "unit_price": quantize_money(price),
                    "total_price": quantize_money(line.quantity * price)
                })

            # 2. Totals
            subtotal = quantize_money(sum((l["total_price"] for l in lines), Decimal("0")))
            gross_total = quantize_money(subtotal + purchase_data.tax_amount)
            if purchase_data.discount_amount > gross_total:
                raise InvalidDiscount(purchase_data.discount_amount, gross_total, "purchase")
            total = quantize_money(gross_total - purchase_data.discount_amount)
            paid = quantize_money(purchase_data.paid_amount)
            if paid >= total:
                target_status = PAID
            elif paid > 0:
                target_status = PARTIAL
            else:
                target_status = PENDING

            # 3. Document, always born pending
            purchase = self.repository.create_purchase(ctx, {
                "supplier_id": purchase_data.supplier_id,
                "outlet_id": purchase_data.outlet_id,
                "purchase_date": purchase_data.purchase_date,
                "status": PENDING,
                "stock_applied": False,
                "subtotal": subtotal,
                "tax_amount": quantize_money(purchase_data.tax_amount),
                "discount_amount": quantize_money(purchase_data.discount_amount),
                "total_amount": total,
                "paid_amount": paid,
                "remaining_amount": max(total - paid, Decimal("0.00")),
                "notes": purchase_data.notes
            })
            for line_data in lines:
                self.repository.add_line(ctx, purchase, line_data)

            # 4. Move to the status the payment earns, through the same edge as later updates
            if target_status != PENDING:
                self._write_status(ctx, purchase, PENDING, target_status)
                self._apply_status_effect(ctx, purchase, PENDING, target_status)

            purchase_id, number = purchase.id, purchase.number
            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Purchase at outlet {purchase_data.outlet_id} rolled back: {e}")
            raise TransactionRollback("Purchase creation", str(e)) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Purchase {number} (id {purchase_id}) created as {target_status}, total {total}")
        return purchase

    def get_purchase(self, ctx: OperationContext, purchase_id: int) -> Purchase:
        purchase = self.repository.get_purchase(ctx, purchase_id)
        if not purchase:
            raise EntityNotFound("Purchase", purchase_id)
        return purchase

    def list_purchases(
        self,
        ctx: OperationContext,
        outlet_id: Optional[int] = None,
        supplier_id: Optional[int] = None,
        status: Optional[PurchaseStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        limit: int = 20
    ) -> List[Purchase]:
        return self.repository.list_purchases(
            ctx,
            outlet_id=outlet_id,
            supplier_id=supplier_id,
            status=status.value if status else None,
            date_from=date_from,
            date_to=date_to,
            search=search,
            limit=limit
        )

    def delete_purchase(self, ctx: OperationContext, purchase_id: int) -> bool:
        """Delete a purchase, taking its stock back out first if it was received"""
        try:
            purchase = self.get_purchase(ctx, purchase_id)
            stock_reversed = False
            if purchase.stock_applied:
                if self.repository.claim_stock_applied(ctx, purchase_id, True, False):
                    self._reverse_stock(ctx, purchase, f"Deletion of purchase {purchase.number}")
                    stock_reversed = True

            self.repository.delete_purchase(purchase)
            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Deletion of purchase {purchase_id} rolled back: {e}")
            raise TransactionRollback("Purchase deletion", str(e)) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Purchase {purchase_id} deleted, stock reversed: {stock_reversed}")
        return stock_reversed

    # ==================== STATUS ====================

    def update_status(
        self,
        ctx: OperationContext,
        purchase_id: int,
        new_status: PurchaseStatus,
        notes: Optional[str] = None
    ) -> StatusChangeResult:
        """Write a new status and its stock effect in one transaction"""
        new_status = PurchaseStatus(new_status).value
        try:
            purchase = self.get_purchase(ctx, purchase_id)
            old_status = purchase.status
            if old_status == new_status:
                self.db.rollback()
                return StatusChangeResult(
                    purchase_id=purchase_id, old_status=old_status, new_status=new_status, noop=True
                )

            self._check_transition(purchase_id, old_status, new_status)
            self._write_status(ctx, purchase, old_status, new_status)
            if new_status == PAID:
                purchase.paid_amount = purchase.total_amount
                purchase.remaining_amount = Decimal("0.00")
            if notes:
                purchase.notes = notes

            result = self._apply_status_effect(ctx, purchase, old_status, new_status)
            self.db.commit()

        except DuplicateStatusTransition as e:
            self.db.rollback()
            logger.info(f"Ignoring repeated status change: {e.message}")
            return StatusChangeResult(
                purchase_id=purchase_id, old_status=old_status, new_status=new_status, noop=True
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Status change of purchase {purchase_id} rolled back: {e}")
            raise TransactionRollback("Purchase status change", str(e)) from e
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Status change of purchase {purchase_id} to {new_status} rolled back: {e}")
            raise

        logger.info(f"Purchase {purchase_id}: {old_status} -> {new_status}")
        return result

    def record_payment(
        self,
        ctx: OperationContext,
        purchase_id: int,
        paid_amount: Decimal,
        notes: Optional[str] = None
    ) -> Purchase:
        """
        Update the amount paid to the supplier and derive the status from it.

        Paying in full moves the purchase to paid and receives its stock in
        the same transaction. A payment that would walk a paid purchase back
        to partial or pending is rejected; cancel it instead.
        """
        paid = quantize_money(paid_amount)
        try:
            purchase = self.get_purchase(ctx, purchase_id)
            old_status = purchase.status
            total = purchase.total_amount
            if paid >= total:
                new_status = PAID
            elif paid > 0:
                new_status = PARTIAL
            else:
                new_status = PENDING

            if new_status != old_status:
                self._check_transition(purchase_id, old_status, new_status)
                self._write_status(ctx, purchase, old_status, new_status)

            purchase.paid_amount = paid
            purchase.remaining_amount = max(total - paid, Decimal("0.00"))
            if notes:
                purchase.notes = notes

            if new_status != old_status:
                self._apply_status_effect(ctx, purchase, old_status, new_status)
            self.db.commit()

        except DuplicateStatusTransition as e:
            self.db.rollback()
            logger.info(f"Ignoring repeated payment update: {e.message}")
            return self.get_purchase(ctx, purchase_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Payment update of purchase {purchase_id} rolled back: {e}")
            raise TransactionRollback("Purchase payment update", str(e)) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Purchase {purchase_id} paid {paid} of {total}: {old_status} -> {new_status}")
        return purchase

    def on_purchase_status_changed(
        self,
        ctx: OperationContext,
        purchase: Purchase,
        old_status: str,
        new_status: str
    ) -> StatusChangeResult:
        """
        Apply the stock effect of a status edge that was already written.

        Entering paid adds every line once; leaving paid for cancelled takes
        every line back out once. Replaying an edge is a logged no-op.
        """
        old_status = PurchaseStatus(old_status).value
        new_status = PurchaseStatus(new_status).value
        try:
            result = self._apply_status_effect(ctx, purchase, old_status, new_status)
            self.db.commit()
        except DuplicateStatusTransition as e:
            self.db.rollback()
            logger.info(f"Ignoring repeated status change: {e.message}")
            return StatusChangeResult(
                purchase_id=purchase.id, old_status=old_status, new_status=new_status, noop=True
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Stock effect of purchase {purchase.id} rolled back: {e}")
            raise TransactionRollback("Purchase receiving", str(e)) from e
        except Exception:
            self.db.rollback()
            raise
        return result

    # ==================== HELPERS ====================

    def _apply_status_effect(
        self,
        ctx: OperationContext,
        purchase: Purchase,
        old_status: str,
        new_status: str
    ) -> StatusChangeResult:
        result = StatusChangeResult(purchase_id=purchase.id, old_status=old_status, new_status=new_status)
        if old_status == new_status:
            result.noop = True
            return result

        self._check_transition(purchase.id, old_status, new_status)

        if new_status == PAID:
            if not self.repository.claim_stock_applied(ctx, purchase.id, False, True):
                raise DuplicateStatusTransition("Purchase", purchase.id, PAID)
            for line in purchase.lines:
                self.ledger.increase(
                    ctx, line.product_id, purchase.outlet_id, line.base_quantity,
                    MovementKind.IN, PurchaseRef(purchase.id), f"Purchase {purchase.number}"
                )
            result.stock_applied = True

        elif old_status == PAID and new_status == CANCELLED:
            if not self.repository.claim_stock_applied(ctx, purchase.id, True, False):
                raise DuplicateStatusTransition("Purchase", purchase.id, CANCELLED)
            self._reverse_stock(ctx, purchase, f"Cancellation of purchase {purchase.number}")
            result.stock_reversed = True

        return result

    def _reverse_stock(self, ctx: OperationContext, purchase: Purchase, notes: str):
        # Fails with InsufficientStock when received goods were already sold on
        for line in purchase.lines:
            self.ledger.decrease(
                ctx, line.product_id, purchase.outlet_id, line.base_quantity,
                MovementKind.ADJUSTMENT, PurchaseRef(purchase.id), notes
            )

    def _write_status(self, ctx: OperationContext, purchase: Purchase, old_status: str, new_status: str):
        if self.repository.set_status(ctx, purchase.id, old_status, new_status):
            return
        # Someone else moved the purchase since it was read
        self.db.refresh(purchase)
        if purchase.status == new_status:
            raise DuplicateStatusTransition("Purchase", purchase.id, new_status)
        raise InvalidStatusTransition("Purchase", purchase.id, purchase.status, new_status)

    @staticmethod
    def _check_transition(purchase_id: int, old_status: str, new_status: str):
        if new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
            raise InvalidStatusTransition("Purchase", purchase_id, old_status, new_status)
