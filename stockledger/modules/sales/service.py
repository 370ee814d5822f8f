# stockledger/modules/sales/service.py
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.core.context import OperationContext
from stockledger.core.exceptions import (
    DuplicateStatusTransition, EmptyDocument, EntityNotFound, InsufficientPayment, InvalidDiscount,
    InvalidQuantity, InvalidStatusTransition, TransactionRollback
)
from stockledger.modules.stock.repository import StockLedgerRepository
from stockledger.modules.stock.schemas import MovementKind
from stockledger.modules.units.service import UnitResolver, quantize_money, quantize_quantity
from stockledger.shared.database.models import Sale
from stockledger.shared.references import SaleRef
from .repository import SaleRepository
from .schemas import PaymentMethodType, SaleCreate, SaleStatus

logger = logging.getLogger(__name__)


class SaleSettlementService:
    """
    Turns a completed sale into stock decrements.

    A sale and every decrement it causes commit together or not at all.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = SaleRepository(db)
        self.ledger = StockLedgerRepository(db)
        self.resolver = UnitResolver(db)

    # ==================== SETTLEMENT ====================

    def settle(self, ctx: OperationContext, sale_data: SaleCreate) -> Sale:
        """
        Persist a sale and deduct its base quantities from the outlet.

        Lines naming the same product are deducted one after another, never
        merged; the sale fails as a whole if any of them lacks stock.
        """
        if not sale_data.lines:
            raise EmptyDocument("Sale")
        for line in sale_data.lines:
            if line.quantity <= 0:
                raise InvalidQuantity(line.quantity)

        try:
            # 1. Price every line and convert it to base units
            priced_lines = []
            for line in sale_data.lines:
                resolved = self.resolver.resolve(ctx, line.product_id, line.unit_id)
                price = line.unit_price if line.unit_price is not None else resolved.price("selling")
                gross = quantize_money(line.quantity * price)
                if line.discount_amount > gross:
                    raise InvalidDiscount(line.discount_amount, gross, "line")
                priced_lines.append({
                    "product_id": line.product_id,
                    "unit_id": resolved.unit_id,
                    "conversion_factor": resolved.factor,
                    "quantity": quantize_quantity(line.quantity),
                    "base_quantity": resolved.base_quantity(line.quantity),
                    "unit_price": quantize_money(price),
                    "discount_amount": quantize_money(line.discount_amount),
                    "total_price": quantize_money(gross - line.discount_amount)
                })

            # 2. Totals and payment
            subtotal = quantize_money(sum((l["total_price"] for l in priced_lines), Decimal("0")))
            gross_total = quantize_money(subtotal + sale_data.tax_amount)
            if sale_data.discount_amount > gross_total:
                raise InvalidDiscount(sale_data.discount_amount, gross_total, "sale")
            total = quantize_money(gross_total - sale_data.discount_amount)
            paid = quantize_money(sale_data.paid_amount)
            if paid < total:
                raise InsufficientPayment(total, paid)

            # 3. Sale document
            sale = self.repository.create_sale(ctx, {
                "outlet_id": sale_data.outlet_id,
                "customer_id": sale_data.customer_id,
                "status": SaleStatus.completed.value,
                "subtotal": subtotal,
                "tax_amount": quantize_money(sale_data.tax_amount),
                "discount_amount": quantize_money(sale_data.discount_amount),
                "total_amount": total,
                "paid_amount": paid,
                "change_amount": paid - total,
                "payment_method": sale_data.payment_method.value,
                "notes": sale_data.notes
            })
            for line_data in priced_lines:
                self.repository.add_line(ctx, sale, line_data)

            # 4. Deduct stock line by line
            for line_data in priced_lines:
                self.ledger.decrease(
                    ctx,
                    line_data["product_id"],
                    sale_data.outlet_id,
                    line_data["base_quantity"],
                    MovementKind.OUT,
                    SaleRef(sale.id),
                    f"Sale {sale.number}"
                )

            number = sale.number
            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Sale at outlet {sale_data.outlet_id} rolled back: {e}")
            raise TransactionRollback("Sale settlement", str(e)) from e
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Sale at outlet {sale_data.outlet_id} rolled back: {e}")
            raise

        logger.info(
            f"Sale {number} settled at outlet {sale_data.outlet_id}: "
            f"{len(priced_lines)} lines, total {total}, change {paid - total}"
        )
        return sale

    # ==================== REFUND ====================

    def refund(self, ctx: OperationContext, sale_id: int, reason: Optional[str] = None) -> Sale:
        """Return every line of a completed sale to stock, once"""
        try:
            sale = self.get_sale(ctx, sale_id)
            if not self.repository.claim_status(
                ctx, sale_id, SaleStatus.completed.value, SaleStatus.refunded.value
            ):
                self.db.refresh(sale)
                if sale.status == SaleStatus.refunded.value:
                    raise DuplicateStatusTransition("Sale", sale_id, sale.status)
                raise InvalidStatusTransition("Sale", sale_id, sale.status, SaleStatus.refunded.value)

            notes = f"Refund of sale {sale.number}"
            if reason:
                notes += f": {reason}"
            for line in sale.lines:
                self.ledger.increase(
                    ctx, line.product_id, sale.outlet_id, line.base_quantity,
                    MovementKind.IN, SaleRef(sale.id), notes
                )

            line_count = len(sale.lines)
            self.db.commit()

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Refund of sale {sale_id} rolled back: {e}")
            raise TransactionRollback("Sale refund", str(e)) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Sale {sale_id} refunded, {line_count} lines returned to stock")
        return sale

    # ==================== QUERIES ====================

    def get_sale(self, ctx: OperationContext, sale_id: int) -> Sale:
        sale = self.repository.get_sale(ctx, sale_id)
        if not sale:
            raise EntityNotFound("Sale", sale_id)
        return sale

    def list_sales(
        self,
        ctx: OperationContext,
        outlet_id: Optional[int] = None,
        status: Optional[SaleStatus] = None,
        payment_method: Optional[PaymentMethodType] = None,
        user_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        limit: int = 20
    ) -> List[Sale]:
        return self.repository.list_sales(
            ctx,
            outlet_id=outlet_id,
            status=status.value if status else None,
            payment_method=payment_method.value if payment_method else None,
            user_id=user_id,
            date_from=date_from,
            date_to=date_to,
            search=search,
            limit=limit
        )
