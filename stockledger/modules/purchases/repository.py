# stockledger/modules/purchases/repository.py
from datetime import date
from typing import Any, Dict, List, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session

from stockledger.core.context import OperationContext
from stockledger.shared.database.models import Purchase, PurchaseLine


class PurchaseRepository:
    """
    Purchase documents and their status edges. Nothing here commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_purchase(self, ctx: OperationContext, purchase_data: Dict[str, Any]) -> Purchase:
        if purchase_data.get("purchase_date") is None:
            purchase_data["purchase_date"] = date.today()
        purchase = Purchase(tenant_id=ctx.tenant_id, user_id=ctx.user_id, **purchase_data)
        self.db.add(purchase)
        self.db.flush()

        purchase.number = f"PUR{purchase.purchase_date:%Y%m%d}{purchase.id:04d}"
        self.db.flush()
        return purchase

    def add_line(self, ctx: OperationContext, purchase: Purchase, line_data: Dict[str, Any]) -> PurchaseLine:
        line = PurchaseLine(tenant_id=ctx.tenant_id, **line_data)
        purchase.lines.append(line)
        self.db.flush()
        return line

    def get_purchase(self, ctx: OperationContext, purchase_id: int) -> Optional[Purchase]:
        return self.db.query(Purchase).filter(
            Purchase.tenant_id == ctx.tenant_id,
            Purchase.id == purchase_id
        ).first()

    def list_purchases(
        self,
        ctx: OperationContext,
        outlet_id: Optional[int] = None,
        supplier_id: Optional[int] = None,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        limit: int = 20
    ) -> List[Purchase]:
        query = self.db.query(Purchase).filter(Purchase.tenant_id == ctx.tenant_id)

        if outlet_id:
            query = query.filter(Purchase.outlet_id == outlet_id)

        if supplier_id:
            query = query.filter(Purchase.supplier_id == supplier_id)

        if status:
            query = query.filter(Purchase.status == status)

        if date_from:
            query = query.filter(Purchase.purchase_date >= date_from)

        if date_to:
            query = query.filter(Purchase.purchase_date <= date_to)

        if search:
            query = query.filter(Purchase.number.ilike(f"%{search}%"))

        return query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc()).limit(limit).all()

    def set_status(self, ctx: OperationContext, purchase_id: int, old_status: str, new_status: str) -> bool:
        """Write the new status only if nobody moved the purchase since it was read"""
        return self._conditional_update(
            ctx, purchase_id, Purchase.status == old_status, status=new_status
        )

    def claim_stock_applied(self, ctx: OperationContext, purchase_id: int, current: bool, target: bool) -> bool:
        """Flip stock_applied; False when the flag was already flipped by an earlier call"""
        return self._conditional_update(
            ctx, purchase_id, Purchase.stock_applied.is_(current), stock_applied=target
        )

    def delete_purchase(self, purchase: Purchase):
        self.db.delete(purchase)
        self.db.flush()

    def _conditional_update(self, ctx: OperationContext, purchase_id: int, condition, **values) -> bool:
        result = self.db.execute(
            update(Purchase)
            .where(
                Purchase.tenant_id == ctx.tenant_id,
                Purchase.id == purchase_id,
                condition
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1
