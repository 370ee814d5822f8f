from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

# ==================== ENUMS ====================

class TransferStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    cancelled = "cancelled"

# ==================== BASE ====================

class TransferBaseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

# ==================== REQUEST SCHEMAS ====================

class TransferLineCreate(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., description="Quantity in base units")

class TransferCreate(BaseModel):
    from_outlet_id: int = Field(..., gt=0, description="Outlet the goods leave")
    to_outlet_id: int = Field(..., gt=0, description="Outlet the goods arrive at")
    transfer_date: Optional[date] = None
    lines: List[TransferLineCreate] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=500)

# ==================== RESPONSE SCHEMAS ====================

class TransferLineResponse(TransferBaseModel):
    id: int
    product_id: int
    quantity: Decimal

class TransferResponse(TransferBaseModel):
    id: int
    number: str
    from_outlet_id: int
    to_outlet_id: int
    status: TransferStatus
    transfer_date: date
    user_id: int
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    lines: List[TransferLineResponse]

class TransferSummary(TransferBaseModel):
    id: int
    number: str
    from_outlet_id: int
    to_outlet_id: int
    status: TransferStatus
    transfer_date: date
    user_id: int
