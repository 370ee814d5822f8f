from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

# ==================== ENUMS ====================

class MovementKind(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"

# ==================== BASE ====================

class StockBaseModel(BaseModel):
    """
    Base class for response schemas, reading straight from ORM rows.
    """
    model_config = ConfigDict(from_attributes=True)

# ==================== REQUEST SCHEMAS ====================

class StockAdjustRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    outlet_id: int = Field(..., gt=0)
    new_quantity: Decimal = Field(..., ge=0, description="Counted quantity in base units")
    expected_quantity: Optional[Decimal] = Field(
        None, ge=0, description="Quantity the count was taken against; current stock when omitted"
    )
    notes: Optional[str] = Field(None, max_length=500)

class OpnameItem(BaseModel):
    product_id: int = Field(..., gt=0)
    system_stock: Decimal = Field(..., ge=0, description="Stock shown when the count started")
    physical_stock: Decimal = Field(..., ge=0, description="Stock physically counted")
    notes: Optional[str] = Field(None, max_length=500)

    @property
    def difference(self) -> Decimal:
        return self.physical_stock - self.system_stock

class StockOpnameRequest(BaseModel):
    outlet_id: int = Field(..., gt=0)
    items: List[OpnameItem] = Field(..., min_length=1)

    @field_validator('items')
    @classmethod
    def validate_unique_products(cls, v: List[OpnameItem]):
        product_ids = [item.product_id for item in v]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError('Each product can be counted only once per opname')
        return v

class IncomingItem(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0, description="Received quantity in base units")
    notes: Optional[str] = Field(None, max_length=500)

class StockIncomingRequest(BaseModel):
    outlet_id: int = Field(..., gt=0)
    reference_number: Optional[str] = Field(None, max_length=100, description="Delivery note or invoice number")
    items: List[IncomingItem] = Field(..., min_length=1)

# ==================== RESPONSE SCHEMAS ====================

class StockLevelResponse(BaseModel):
    product_id: int
    outlet_id: int
    quantity: Decimal

class MovementResponse(StockBaseModel):
    id: int
    product_id: int
    outlet_id: int
    kind: MovementKind
    quantity: Decimal
    quantity_before: Decimal
    quantity_after: Decimal
    reference_type: str
    reference_id: Optional[int] = None
    user_id: int
    notes: Optional[str] = None
    created_at: datetime

class OpnameItemResult(BaseModel):
    product_id: int
    old_quantity: Decimal
    new_quantity: Decimal
    difference: Decimal

class StockOpnameResponse(BaseModel):
    success: bool = True
    outlet_id: int
    processed_items: List[OpnameItemResult]
    total_items: int

class IncomingItemResult(BaseModel):
    product_id: int
    quantity_before: Decimal
    quantity_after: Decimal

class StockIncomingResponse(BaseModel):
    success: bool = True
    outlet_id: int
    processed_items: List[IncomingItemResult]
    total_items: int

class StockLevelItem(BaseModel):
    product_id: int
    product_name: str
    sku: Optional[str] = None
    outlet_id: int
    quantity: Decimal
    min_stock: Decimal
    is_low_stock: bool

class LowStockItem(BaseModel):
    product_id: int
    product_name: str
    outlet_id: int
    quantity: Decimal
    min_stock: Decimal

class ReconciliationResponse(BaseModel):
    product_id: int
    outlet_id: int
    stored_quantity: Decimal
    movement_total: Decimal
    balanced: bool
