from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockledger.config.database import get_db
from stockledger.core.context import OperationContext, get_operation_context
from .service import PurchaseReceivingService
from .schemas import (
    PurchaseCreate, PurchaseStatusUpdate, PurchaseResponse, StatusChangeResult,
    PurchaseDeleteResponse, PurchasePaymentUpdate, PurchaseStatus, PurchaseSummary
)

router = APIRouter()

# ==================== PURCHASES ====================

@router.post("", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase(
    purchase_data: PurchaseCreate,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Register a supplier purchase

    **Functionality:**
    - Lines may be invoiced in any configured unit, received in base units
    - Nothing paid: pending; partly paid: partial; fully paid: received at once
    """
    service = PurchaseReceivingService(db)
    return service.create_purchase(ctx, purchase_data)


@router.get("", response_model=List[PurchaseSummary])
async def get_purchases(
    outlet_id: Optional[int] = Query(None),
    supplier_id: Optional[int] = Query(None),
    status_filter: Optional[PurchaseStatus] = Query(None, alias="status"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    search: Optional[str] = Query(None, description="Purchase number"),
    limit: int = Query(20, ge=1, le=100),
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Purchases, latest purchase date first

    **Filters:**
    - outlet_id, supplier_id, status
    - date_from / date_to: inclusive on purchase_date
    - search: part of the purchase number
    """
    service = PurchaseReceivingService(db)
    return service.list_purchases(
        ctx, outlet_id, supplier_id, status_filter, date_from, date_to, search, limit
    )


@router.get("/{purchase_id}", response_model=PurchaseResponse)
async def get_purchase(
    purchase_id: int,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """Purchase with its lines"""
    service = PurchaseReceivingService(db)
    return service.get_purchase(ctx, purchase_id)


@router.patch("/{purchase_id}/status", response_model=StatusChangeResult)
async def update_purchase_status(
    purchase_id: int,
    status_data: PurchaseStatusUpdate,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Move a purchase to a new status

    **Rules:**
    - pending -> partial -> paid -> cancelled; pending -> paid; pending/partial -> cancelled
    - A cancelled purchase can only be reopened as paid
    - Becoming paid adds every line to stock once
    - Cancelling a paid purchase takes its stock back out (409 if already sold on)
    - Repeating the current status changes nothing
    """
    service = PurchaseReceivingService(db)
    return service.update_status(ctx, purchase_id, status_data.status, status_data.notes)


@router.patch("/{purchase_id}/payment", response_model=PurchaseResponse)
async def update_purchase_payment(
    purchase_id: int,
    payment_data: PurchasePaymentUpdate,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Record the amount paid to the supplier

    **Rules:**
    - Status follows the payment: nothing paid is pending, part paid is partial, all paid is paid
    - Reaching paid adds every line to stock once
    - Lowering the payment of a paid purchase is rejected (409); cancel it instead
    """
    service = PurchaseReceivingService(db)
    return service.record_payment(ctx, purchase_id, payment_data.paid_amount, payment_data.notes)


@router.delete("/{purchase_id}", response_model=PurchaseDeleteResponse)
async def delete_purchase(
    purchase_id: int,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """Delete a purchase; received stock is reversed first"""
    service = PurchaseReceivingService(db)
    stock_reversed = service.delete_purchase(ctx, purchase_id)
    return PurchaseDeleteResponse(purchase_id=purchase_id, stock_reversed=stock_reversed)
