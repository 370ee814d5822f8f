# stockledger/modules/transfers/repository.py
from datetime import date
from typing import Any, Dict, List, Optional
from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from stockledger.core.context import OperationContext
from stockledger.shared.database.models import StockTransfer, StockTransferLine


class TransferRepository:
    """
    Transfer documents between outlets. Nothing here commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_transfer(self, ctx: OperationContext, transfer_data: Dict[str, Any]) -> StockTransfer:
        if transfer_data.get("transfer_date") is None:
            transfer_data["transfer_date"] = date.today()
        transfer = StockTransfer(tenant_id=ctx.tenant_id, user_id=ctx.user_id, **transfer_data)
        self.db.add(transfer)
        self.db.flush()

        transfer.number = f"STF{transfer.transfer_date:%Y%m%d}{transfer.id:04d}"
        self.db.flush()
        return transfer

    def add_line(self, ctx: OperationContext, transfer: StockTransfer, product_id: int, quantity) -> StockTransferLine:
        line = StockTransferLine(tenant_id=ctx.tenant_id, product_id=product_id, quantity=quantity)
        transfer.lines.append(line)
        self.db.flush()
        return line

    def get_transfer(self, ctx: OperationContext, transfer_id: int) -> Optional[StockTransfer]:
        return self.db.query(StockTransfer).filter(
            StockTransfer.tenant_id == ctx.tenant_id,
            StockTransfer.id == transfer_id
        ).first()

    def list_transfers(
        self,
        ctx: OperationContext,
        outlet_id: Optional[int] = None,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 20
    ) -> List[StockTransfer]:
        """Transfers touching ``outlet_id`` on either side, latest first"""
        query = self.db.query(StockTransfer).filter(StockTransfer.tenant_id == ctx.tenant_id)

        if outlet_id:
            query = query.filter(or_(
                StockTransfer.from_outlet_id == outlet_id,
                StockTransfer.to_outlet_id == outlet_id
            ))

        if status:
            query = query.filter(StockTransfer.status == status)

        if date_from:
            query = query.filter(StockTransfer.transfer_date >= date_from)

        if date_to:
            query = query.filter(StockTransfer.transfer_date <= date_to)

        return query.order_by(StockTransfer.transfer_date.desc(), StockTransfer.id.desc()).limit(limit).all()

    def claim_status(
        self,
        ctx: OperationContext,
        transfer_id: int,
        from_status: str,
        to_status: str,
        **values: Any
    ) -> bool:
        """Take one status edge; False when the transfer is no longer in ``from_status``"""
        result = self.db.execute(
            update(StockTransfer)
            .where(
                StockTransfer.tenant_id == ctx.tenant_id,
                StockTransfer.id == transfer_id,
                StockTransfer.status == from_status
            )
            .values(status=to_status, **values)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1
