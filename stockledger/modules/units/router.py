from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.config.database import get_db
from stockledger.core.context import OperationContext, get_operation_context
from .schemas import ConversionResponse
from .service import UnitResolver

router = APIRouter()


@router.get("/products/{product_id}/conversions", response_model=ConversionResponse)
async def convert_quantity(
    product_id: int,
    unit_id: Optional[int] = Query(None, description="Alternate unit; base unit when omitted"),
    quantity: Decimal = Query(Decimal(1), gt=0, description="Quantity in the chosen unit"),
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Convert a quantity in a chosen unit to base units and show the unit prices

    **Rules:**
    - 1 alternate unit = conversion_factor base units
    - A price override configured on the unit wins over base price / factor
    """
    resolved = UnitResolver(db).resolve(ctx, product_id, unit_id)
    return ConversionResponse(
        product_id=product_id,
        unit_id=resolved.unit_id,
        conversion_factor=resolved.factor,
        quantity=quantity,
        base_quantity=resolved.base_quantity(quantity),
        selling_price=resolved.price("selling"),
        purchase_price=resolved.price("purchase"),
        wholesale_price=resolved.price("wholesale")
    )
