# stockledger/modules/units/repository.py
from typing import Optional
from sqlalchemy.orm import Session

from stockledger.core.context import OperationContext
from stockledger.shared.database.models import Product, ProductUnit


class UnitRepository:
    """
    Read-only access to products and their alternate units
    """

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, ctx: OperationContext, product_id: int) -> Optional[Product]:
        return self.db.query(Product).filter(
            Product.tenant_id == ctx.tenant_id,
            Product.id == product_id
        ).first()

    def get_product_unit(
        self,
        ctx: OperationContext,
        product_id: int,
        unit_id: int
    ) -> Optional[ProductUnit]:
        return self.db.query(ProductUnit).filter(
            ProductUnit.tenant_id == ctx.tenant_id,
            ProductUnit.product_id == product_id,
            ProductUnit.unit_id == unit_id,
            ProductUnit.is_active.is_(True)
        ).first()

    def get_product_unit_by_barcode(self, ctx: OperationContext, barcode: str) -> Optional[ProductUnit]:
        return self.db.query(ProductUnit).filter(
            ProductUnit.tenant_id == ctx.tenant_id,
            ProductUnit.barcode == barcode,
            ProductUnit.is_active.is_(True)
        ).first()
