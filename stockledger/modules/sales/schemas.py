from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

# ==================== ENUMS ====================

class SaleStatus(str, Enum):
    completed = "completed"
    refunded = "refunded"

class PaymentMethodType(str, Enum):
    cash = "cash"
    card = "card"
    transfer = "transfer"
    qris = "qris"

# ==================== BASE ====================

class SalesBaseModel(BaseModel):
    """
    Base class for sale responses, read from ORM rows.
    """
    model_config = ConfigDict(from_attributes=True)

# ==================== REQUEST SCHEMAS ====================

class SaleLineCreate(BaseModel):
    product_id: int = Field(..., gt=0)
    unit_id: Optional[int] = Field(None, description="Unit the line is sold in; base unit when omitted")
    # Non-positive quantities are rejected by the settlement with InvalidQuantity
    quantity: Decimal = Field(..., description="Quantity in the chosen unit")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Price of one chosen unit; catalog price when omitted")
    discount_amount: Decimal = Field(Decimal("0"), ge=0)

class SaleCreate(BaseModel):
    outlet_id: int = Field(..., gt=0)
    customer_id: Optional[int] = None
    lines: List[SaleLineCreate] = Field(default_factory=list)
    tax_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_amount: Decimal = Field(Decimal("0"), ge=0, description="Discount on the whole sale")
    paid_amount: Decimal = Field(..., ge=0)
    payment_method: PaymentMethodType = PaymentMethodType.cash
    notes: Optional[str] = Field(None, max_length=500)

class SaleRefundRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

# ==================== RESPONSE SCHEMAS ====================

class SaleLineResponse(SalesBaseModel):
    id: int
    product_id: int
    unit_id: Optional[int] = None
    conversion_factor: Decimal
    quantity: Decimal
    base_quantity: Decimal
    unit_price: Decimal
    discount_amount: Decimal
    total_price: Decimal

class SaleResponse(SalesBaseModel):
    id: int
    number: str
    outlet_id: int
    user_id: int
    customer_id: Optional[int] = None
    status: SaleStatus
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    change_amount: Decimal
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    sold_at: datetime
    lines: List[SaleLineResponse]

class SaleSummary(SalesBaseModel):
    id: int
    number: str
    outlet_id: int
    user_id: int
    status: SaleStatus
    total_amount: Decimal
    payment_method: Optional[str] = None
    sold_at: datetime
