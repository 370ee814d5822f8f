# stockledger/modules/stock/repository.py
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from stockledger.core.context import OperationContext
from stockledger.core.exceptions import InsufficientStock, InvalidQuantity, StaleStockCount
from stockledger.shared.database.models import Product, StockLevel, StockMovement
from stockledger.shared.references import Reference, to_columns
from .schemas import MovementKind

logger = logging.getLogger(__name__)

STOCK = StockLevel.__table__
STOCK_KEY = [STOCK.c.tenant_id, STOCK.c.product_id, STOCK.c.outlet_id]
QUANTITY_STEP = Decimal("0.001")


@dataclass(frozen=True)
class LedgerEntry:
    """Result of one ledger mutation, before/after taken from the mutating statement"""
    product_id: int
    outlet_id: int
    quantity_before: Decimal
    quantity_after: Decimal
    movement: StockMovement

    @property
    def delta(self) -> Decimal:
        return self.quantity_after - self.quantity_before


UPSERT_INSERT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dialect_insert(db: Session):
    # create_db_engine only builds engines for these dialects
    return UPSERT_INSERT[db.get_bind().dialect.name]


def _rounded(expression):
    """
    Quantity expression rounded to three decimals inside the statement.

    SQLite keeps NUMERIC as binary floats, so sums and guards are compared at
    the same fixed point the application uses.
    """
    return func.round(expression, 3, type_=STOCK.c.quantity.type)


class MovementRecorder:
    """
    Append-only journal of stock movements. Exposes no update or delete.
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        ctx: OperationContext,
        product_id: int,
        outlet_id: int,
        kind: MovementKind,
        delta: Decimal,
        quantity_before: Decimal,
        quantity_after: Decimal,
        reference: Reference,
        notes: Optional[str] = None
    ) -> StockMovement:
        reference_type, reference_id = to_columns(reference)
        movement = StockMovement(
            tenant_id=ctx.tenant_id,
            product_id=product_id,
            outlet_id=outlet_id,
            kind=MovementKind(kind).value,
            quantity=delta,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            reference_type=reference_type.value,
            reference_id=reference_id,
            user_id=ctx.user_id,
            notes=notes
        )
        self.db.add(movement)
        self.db.flush()
        return movement

    def history(
        self,
        ctx: OperationContext,
        product_id: int,
        outlet_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        kinds: Optional[Sequence[MovementKind]] = None,
        limit: Optional[int] = None
    ) -> List[StockMovement]:
        """Movements of one (product, outlet), oldest first"""
        query = self.db.query(StockMovement).filter(
            StockMovement.tenant_id == ctx.tenant_id,
            StockMovement.product_id == product_id,
            StockMovement.outlet_id == outlet_id
        )

        if start:
            query = query.filter(StockMovement.created_at >= start)

        if end:
            query = query.filter(StockMovement.created_at <= end)

        if kinds:
            query = query.filter(StockMovement.kind.in_([MovementKind(k).value for k in kinds]))

        query = query.order_by(StockMovement.id)
        if limit:
            query = query.limit(limit)
        return query.all()

    def for_reference(self, ctx: OperationContext, reference: Reference) -> List[StockMovement]:
        reference_type, reference_id = to_columns(reference)
        return self.db.query(StockMovement).filter(
            StockMovement.tenant_id == ctx.tenant_id,
            StockMovement.reference_type == reference_type.value,
            StockMovement.reference_id == reference_id
        ).order_by(StockMovement.id).all()

    def net_delta(self, ctx: OperationContext, product_id: int, outlet_id: int) -> Decimal:
        total = self.db.query(func.sum(StockMovement.quantity)).filter(
            StockMovement.tenant_id == ctx.tenant_id,
            StockMovement.product_id == product_id,
            StockMovement.outlet_id == outlet_id
        ).scalar()
        return _as_quantity(total or 0)


class StockLedgerRepository:
    """
    The only writer of stock_levels.quantity.

    Every mutation is a single conditional statement that also returns the
    resulting quantity, so concurrent terminals never lose an update and the
    audit snapshot can't be polluted by a third writer. Nothing here commits;
    the calling service owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db
        self.recorder = MovementRecorder(db)

    # ==================== PRIMITIVES ====================

    def increase(
        self,
        ctx: OperationContext,
        product_id: int,
        outlet_id: int,
        quantity: Decimal,
        kind: MovementKind,
        reference: Reference,
        notes: Optional[str] = None
    ) -> LedgerEntry:
        quantity = self._validate_quantity(quantity)
        insert = _dialect_insert(self.db)

        upsert = (
            insert(STOCK)
            .values(
                tenant_id=ctx.tenant_id,
                product_id=product_id,
                outlet_id=outlet_id,
                quantity=quantity
            )
            .on_conflict_do_update(
                index_elements=STOCK_KEY,
                set_={"quantity": _rounded(STOCK.c.quantity + quantity), "updated_at": func.now()}
            )
            .returning(STOCK.c.quantity)
        )
        after = _as_quantity(self.db.execute(upsert).scalar_one())
        before = after - quantity

        movement = self.recorder.record(
            ctx, product_id, outlet_id, kind, quantity, before, after, reference, notes
        )
        logger.debug(f"Stock +{quantity} product={product_id} outlet={outlet_id}: {before} -> {after}")
        return LedgerEntry(product_id, outlet_id, before, after, movement)

    def decrease(
        self,
        ctx: OperationContext,
        product_id: int,
        outlet_id: int,
        quantity: Decimal,
        kind: MovementKind,
        reference: Reference,
        notes: Optional[str] = None
    ) -> LedgerEntry:
        quantity = self._validate_quantity(quantity)
        self._ensure_row(ctx, product_id, outlet_id)

        # Compare-and-decrement: only lands when enough stock is on hand
        stmt = (
            update(STOCK)
            .where(
                and_(
                    STOCK.c.tenant_id == ctx.tenant_id,
                    STOCK.c.product_id == product_id,
                    STOCK.c.outlet_id == outlet_id,
                    _rounded(STOCK.c.quantity) >= quantity
                )
            )
            .values(quantity=_rounded(STOCK.c.quantity - quantity), updated_at=func.now())
            .returning(STOCK.c.quantity)
        )
        after = self.db.execute(stmt).scalar_one_or_none()
        if after is None:
            available = self.current_quantity(ctx, product_id, outlet_id)
            logger.info(
                f"Rejected stock -{quantity} product={product_id} outlet={outlet_id}: only {available} on hand"
            )
            raise InsufficientStock(product_id, outlet_id, quantity, available)

        after = _as_quantity(after)
        before = after + quantity

        movement = self.recorder.record(
            ctx, product_id, outlet_id, kind, -quantity, before, after, reference, notes
        )
        logger.debug(f"Stock -{quantity} product={product_id} outlet={outlet_id}: {before} -> {after}")
        return LedgerEntry(product_id, outlet_id, before, after, movement)

    def set_quantity(
        self,
        ctx: OperationContext,
        product_id: int,
        outlet_id: int,
        new_quantity: Decimal,
        expected: Decimal,
        reference: Reference,
        notes: Optional[str] = None
    ) -> LedgerEntry:
        """Compare-and-set to an absolute count taken against ``expected``"""
        new_quantity = _as_quantity(new_quantity)
        expected = _as_quantity(expected)
        if new_quantity < 0:
            raise InvalidQuantity(new_quantity)
        self._ensure_row(ctx, product_id, outlet_id)

        stmt = (
            update(STOCK)
            .where(
                and_(
                    STOCK.c.tenant_id == ctx.tenant_id,
                    STOCK.c.product_id == product_id,
                    STOCK.c.outlet_id == outlet_id,
                    _rounded(STOCK.c.quantity) == expected
                )
            )
            .values(quantity=new_quantity, updated_at=func.now())
            .returning(STOCK.c.quantity)
        )
        after = self.db.execute(stmt).scalar_one_or_none()
        if after is None:
            raise StaleStockCount(product_id, outlet_id, expected, self.current_quantity(ctx, product_id, outlet_id))

        after = _as_quantity(after)
        movement = self.recorder.record(
            ctx, product_id, outlet_id, MovementKind.ADJUSTMENT, after - expected, expected, after, reference, notes
        )
        logger.debug(f"Stock set product={product_id} outlet={outlet_id}: {expected} -> {after}")
        return LedgerEntry(product_id, outlet_id, expected, after, movement)

    # ==================== READS ====================

    def current_quantity(self, ctx: OperationContext, product_id: int, outlet_id: int) -> Decimal:
        quantity = self.db.execute(
            select(STOCK.c.quantity).where(
                STOCK.c.tenant_id == ctx.tenant_id,
                STOCK.c.product_id == product_id,
                STOCK.c.outlet_id == outlet_id
            )
        ).scalar_one_or_none()
        return _as_quantity(quantity) if quantity is not None else _as_quantity(0)

    def list_levels(
        self,
        ctx: OperationContext,
        outlet_id: Optional[int] = None,
        search: Optional[str] = None,
        low_stock_only: bool = False,
        limit: int = 100
    ):
        """Stock levels with their product, by product then outlet"""
        query = self.db.query(StockLevel, Product).join(
            Product, Product.id == StockLevel.product_id
        ).filter(StockLevel.tenant_id == ctx.tenant_id)

        if outlet_id:
            query = query.filter(StockLevel.outlet_id == outlet_id)

        if search:
            query = query.filter(or_(
                Product.name.ilike(f"%{search}%"),
                Product.sku.ilike(f"%{search}%")
            ))

        if low_stock_only:
            query = query.filter(StockLevel.quantity <= Product.min_stock)

        return query.order_by(StockLevel.product_id, StockLevel.outlet_id).limit(limit).all()

    def low_stock(self, ctx: OperationContext, outlet_id: Optional[int] = None):
        """Stock levels at or under the product's minimum but not empty"""
        query = self.db.query(StockLevel, Product).join(
            Product, Product.id == StockLevel.product_id
        ).filter(
            StockLevel.tenant_id == ctx.tenant_id,
            StockLevel.quantity > 0,
            StockLevel.quantity <= Product.min_stock
        )

        if outlet_id:
            query = query.filter(StockLevel.outlet_id == outlet_id)

        return query.order_by(StockLevel.quantity.asc()).all()

    # ==================== HELPERS ====================

    def _ensure_row(self, ctx: OperationContext, product_id: int, outlet_id: int):
        insert = _dialect_insert(self.db)
        self.db.execute(
            insert(STOCK)
            .values(tenant_id=ctx.tenant_id, product_id=product_id, outlet_id=outlet_id, quantity=0)
            .on_conflict_do_nothing(index_elements=STOCK_KEY)
        )

    @staticmethod
    def _validate_quantity(quantity) -> Decimal:
        quantity = _as_quantity(quantity)
        if quantity <= 0:
            raise InvalidQuantity(quantity)
        return quantity


def _as_quantity(value) -> Decimal:
    """Fixed point, three fractional digits"""
    return Decimal(str(value)).quantize(QUANTITY_STEP)
