# stockledger/modules/sales/repository.py
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy import update
from sqlalchemy.orm import Session

from stockledger.core.context import OperationContext
from stockledger.shared.database.models import Sale, SaleLine


class SaleRepository:
    """
    Sale documents. Nothing here commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_sale(self, ctx: OperationContext, sale_data: Dict[str, Any]) -> Sale:
        sale_data.setdefault("sold_at", datetime.now())
        sale = Sale(tenant_id=ctx.tenant_id, user_id=ctx.user_id, **sale_data)
        self.db.add(sale)
        self.db.flush()

        # Number derives from the id so two terminals can never draw the same one
        sale.number = f"TRX{sale.sold_at:%Y%m%d}{sale.id:04d}"
        self.db.flush()
        return sale

    def add_line(self, ctx: OperationContext, sale: Sale, line_data: Dict[str, Any]) -> SaleLine:
        line = SaleLine(tenant_id=ctx.tenant_id, sale_id=sale.id, **line_data)
        self.db.add(line)
        self.db.flush()
        return line

    def get_sale(self, ctx: OperationContext, sale_id: int) -> Optional[Sale]:
        return self.db.query(Sale).filter(
            Sale.tenant_id == ctx.tenant_id,
            Sale.id == sale_id
        ).first()

    def claim_status(self, ctx: OperationContext, sale_id: int, from_status: str, to_status: str) -> bool:
        """Move the sale along one status edge; False when another caller already took it"""
        result = self.db.execute(
            update(Sale)
            .where(
                Sale.tenant_id == ctx.tenant_id,
                Sale.id == sale_id,
                Sale.status == from_status
            )
            .values(status=to_status)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def list_sales(
        self,
        ctx: OperationContext,
        outlet_id: Optional[int] = None,
        status: Optional[str] = None,
        payment_method: Optional[str] = None,
        user_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        search: Optional[str] = None,
        limit: int = 20
    ) -> List[Sale]:
        """Sales newest first; dates bound sold_at inclusively"""
        query = self.db.query(Sale).filter(Sale.tenant_id == ctx.tenant_id)

        if outlet_id:
            query = query.filter(Sale.outlet_id == outlet_id)

        if status:
            query = query.filter(Sale.status == status)

        if payment_method:
            query = query.filter(Sale.payment_method == payment_method)

        if user_id:
            query = query.filter(Sale.user_id == user_id)

        if date_from:
            query = query.filter(Sale.sold_at >= datetime.combine(date_from, time.min))

        if date_to:
            query = query.filter(Sale.sold_at < datetime.combine(date_to + timedelta(days=1), time.min))

        if search:
            query = query.filter(Sale.number.ilike(f"%{search}%"))

        return query.order_by(Sale.id.desc()).limit(limit).all()
