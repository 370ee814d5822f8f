from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


class ConversionResponse(BaseModel):
    product_id: int
    unit_id: Optional[int] = None
    conversion_factor: Decimal
    quantity: Decimal = Field(..., description="Quantity in the chosen unit")
    base_quantity: Decimal = Field(..., description="Same quantity in base units")
    selling_price: Decimal = Field(..., description="Price of one chosen unit")
    purchase_price: Decimal
    wholesale_price: Decimal
