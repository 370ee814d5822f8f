from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

# ==================== ENUMS ====================

class PurchaseStatus(str, Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"
    cancelled = "cancelled"

# ==================== BASE ====================

class PurchaseBaseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

# ==================== REQUEST SCHEMAS ====================

class PurchaseLineCreate(BaseModel):
    product_id: int = Field(..., gt=0)
    unit_id: Optional[int] = Field(None, description="Unit the supplier invoiced in; base unit when omitted")
    quantity: Decimal = Field(..., description="Quantity in the chosen unit")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Cost of one chosen unit; catalog cost when omitted")

class PurchaseCreate(BaseModel):
    supplier_id: Optional[int] = None
    outlet_id: int = Field(..., gt=0)
    purchase_date: Optional[date] = None
    lines: List[PurchaseLineCreate] = Field(default_factory=list)
    tax_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    paid_amount: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = Field(None, max_length=500)

class PurchaseStatusUpdate(BaseModel):
    status: PurchaseStatus
    notes: Optional[str] = Field(None, max_length=500)

class PurchasePaymentUpdate(BaseModel):
    paid_amount: Decimal = Field(..., ge=0, description="Total paid to the supplier so far")
    notes: Optional[str] = Field(None, max_length=500)

# ==================== RESPONSE SCHEMAS ====================

class PurchaseLineResponse(PurchaseBaseModel):
    id: int
    product_id: int
    unit_id: Optional[int] = None
    conversion_factor: Decimal
    quantity: Decimal
    base_quantity: Decimal
    unit_price: Decimal
    total_price: Decimal

class PurchaseResponse(PurchaseBaseModel):
    id: int
    number: str
    supplier_id: Optional[int] = None
    outlet_id: int
    user_id: int
    purchase_date: date
    status: PurchaseStatus
    stock_applied: bool
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    notes: Optional[str] = None
    created_at: datetime
    lines: List[PurchaseLineResponse]

class StatusChangeResult(BaseModel):
    """Outcome of one purchase status edge"""
    purchase_id: int
    old_status: PurchaseStatus
    new_status: PurchaseStatus
    stock_applied: bool = False
    stock_reversed: bool = False
    noop: bool = False

class PurchaseDeleteResponse(BaseModel):
    success: bool = True
    purchase_id: int
    stock_reversed: bool

class PurchaseSummary(PurchaseBaseModel):
    id: int
    number: str
    supplier_id: Optional[int] = None
    outlet_id: int
    purchase_date: date
    status: PurchaseStatus
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
