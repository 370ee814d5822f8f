# stockledger/modules/transfers/service.py
import logging
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockledger.core.context import OperationContext
from stockledger.core.exceptions import (
    DuplicateStatusTransition, EmptyDocument, EntityNotFound, InsufficientStock,
    InvalidQuantity, InvalidStatusTransition, InvalidTransfer, TransactionRollback
)
from stockledger.modules.stock.repository import StockLedgerRepository
from stockledger.modules.stock.schemas import MovementKind
from stockledger.modules.units.service import quantize_quantity
from stockledger.shared.database.models import StockTransfer
from stockledger.shared.references import TransferRef
from .repository import TransferRepository
from .schemas import TransferCreate, TransferStatus

logger = logging.getLogger(__name__)

PENDING = TransferStatus.pending.value
APPROVED = TransferStatus.approved.value
CANCELLED = TransferStatus.cancelled.value


class TransferService:
    """
    Moves stock between two outlets of the same tenant.

    A transfer has no stock effect until it is approved; approval moves every
    line out of the origin and into the destination in one transaction.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repository = TransferRepository(db)
        self.ledger = StockLedgerRepository(db)

    # ==================== DOCUMENTS ====================

    def create_transfer(self, ctx: OperationContext, transfer_data: TransferCreate) -> StockTransfer:
        """Register a pending transfer"""
        self._validate(transfer_data)
        try:
            transfer = self._create_document(ctx, transfer_data)
            number = transfer.number
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise TransactionRollback("Transfer creation", str(e)) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Transfer {number} created: outlet {transfer_data.from_outlet_id} -> "
            f"{transfer_data.to_outlet_id}, {len(transfer_data.lines)} lines"
        )
        return transfer

    def transfer_now(self, ctx: OperationContext, transfer_data: TransferCreate) -> StockTransfer:
        """Create and approve a transfer in a single transaction"""
        self._validate(transfer_data)
        try:
            transfer = self._create_document(ctx, transfer_data)
            self._move_stock(ctx, transfer)
            number = transfer.number
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Direct transfer from outlet {transfer_data.from_outlet_id} rolled back: {e}")
            raise TransactionRollback("Stock transfer", str(e)) from e
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Direct transfer from outlet {transfer_data.from_outlet_id} rolled back: {e}")
            raise

        logger.info(f"Transfer {number} moved at once by user {ctx.user_id}")
        return transfer

    def get_transfer(self, ctx: OperationContext, transfer_id: int) -> StockTransfer:
        transfer = self.repository.get_transfer(ctx, transfer_id)
        if not transfer:
            raise EntityNotFound("Transfer", transfer_id)
        return transfer

    def list_transfers(
        self,
        ctx: OperationContext,
        outlet_id: Optional[int] = None,
        status: Optional[TransferStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 20
    ) -> List[StockTransfer]:
        return self.repository.list_transfers(
            ctx, outlet_id, status.value if status else None, date_from, date_to, limit
        )

    # ==================== STATUS ====================

    def approve_transfer(self, ctx: OperationContext, transfer_id: int) -> StockTransfer:
        transfer = self.get_transfer(ctx, transfer_id)
        self.on_transfer_approved(ctx, transfer)
        return transfer

    def on_transfer_approved(self, ctx: OperationContext, transfer: StockTransfer) -> bool:
        """
        Move the stock of an approved transfer.

        Returns False when the transfer had already been approved; the stock
        then stays where the first approval put it.
        """
        transfer_id = transfer.id
        try:
            self._move_stock(ctx, transfer)
            number = transfer.number
            self.db.commit()
        except DuplicateStatusTransition as e:
            self.db.rollback()
            logger.info(f"Ignoring repeated approval: {e.message}")
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Approval of transfer {transfer_id} rolled back: {e}")
            raise TransactionRollback("Transfer approval", str(e)) from e
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Approval of transfer {transfer_id} rolled back: {e}")
            raise

        logger.info(f"Transfer {number} approved by user {ctx.user_id}")
        return True

    def cancel_transfer(self, ctx: OperationContext, transfer_id: int) -> StockTransfer:
        """Cancel a pending transfer; it never touched stock"""
        try:
            transfer = self.get_transfer(ctx, transfer_id)
            if not self.repository.claim_status(ctx, transfer_id, PENDING, CANCELLED):
                self.db.refresh(transfer)
                if transfer.status != CANCELLED:
                    raise InvalidStatusTransition("Transfer", transfer_id, transfer.status, CANCELLED)
                logger.info(f"Transfer {transfer_id} is already cancelled")
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise TransactionRollback("Transfer cancellation", str(e)) from e
        except Exception:
            self.db.rollback()
            raise
        return transfer

    # ==================== HELPERS ====================

    def _move_stock(self, ctx: OperationContext, transfer: StockTransfer):
        if not self.repository.claim_status(
            ctx, transfer.id, PENDING, APPROVED, approved_by=ctx.user_id, approved_at=datetime.now()
        ):
            self.db.refresh(transfer)
            if transfer.status == APPROVED:
                raise DuplicateStatusTransition("Transfer", transfer.id, APPROVED)
            raise InvalidStatusTransition("Transfer", transfer.id, transfer.status, APPROVED)

        reference = TransferRef(transfer.id)
        notes = f"Transfer {transfer.number}"
        for line in transfer.lines:
            # Origin first: a short origin aborts before the destination is touched
            self.ledger.decrease(
                ctx, line.product_id, transfer.from_outlet_id, line.quantity,
                MovementKind.TRANSFER, reference, notes
            )
            self.ledger.increase(
                ctx, line.product_id, transfer.to_outlet_id, line.quantity,
                MovementKind.TRANSFER, reference, notes
            )

    def _create_document(self, ctx: OperationContext, transfer_data: TransferCreate) -> StockTransfer:
        self._check_availability(ctx, transfer_data)
        transfer = self.repository.create_transfer(ctx, {
            "from_outlet_id": transfer_data.from_outlet_id,
            "to_outlet_id": transfer_data.to_outlet_id,
            "transfer_date": transfer_data.transfer_date,
            "status": PENDING,
            "notes": transfer_data.notes
        })
        for line in transfer_data.lines:
            self.repository.add_line(ctx, transfer, line.product_id, quantize_quantity(line.quantity))
        return transfer

    def _check_availability(self, ctx: OperationContext, transfer_data: TransferCreate):
        """Early feedback only; approval re-checks atomically"""
        requested: Dict[int, Decimal] = defaultdict(Decimal)
        for line in transfer_data.lines:
            requested[line.product_id] += quantize_quantity(line.quantity)

        for product_id, quantity in requested.items():
            available = self.ledger.current_quantity(ctx, product_id, transfer_data.from_outlet_id)
            if available < quantity:
                raise InsufficientStock(product_id, transfer_data.from_outlet_id, quantity, available)

    @staticmethod
    def _validate(transfer_data: TransferCreate):
        if transfer_data.from_outlet_id == transfer_data.to_outlet_id:
            raise InvalidTransfer(
                "Origin and destination outlet must differ",
                outlet_id=transfer_data.from_outlet_id
            )
        if not transfer_data.lines:
            raise EmptyDocument("Transfer")
        for line in transfer_data.lines:
            if line.quantity <= 0:
                raise InvalidQuantity(line.quantity)
