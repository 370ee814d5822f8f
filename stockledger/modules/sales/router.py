from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockledger.config.database import get_db
from stockledger.core.context import OperationContext, get_operation_context
from .service import SaleSettlementService
from .schemas import PaymentMethodType, SaleCreate, SaleRefundRequest, SaleResponse, SaleStatus, SaleSummary

router = APIRouter()

# ==================== SALES ====================

@router.post("", response_model=SaleResponse, status_code=status.HTTP_201_CREATED)
async def create_sale(
    sale_data: SaleCreate,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Register a completed sale

    **Functionality:**
    - Lines may be sold in any configured unit; stock is deducted in base units
    - Missing unit prices default to the catalog price of the chosen unit
    - Paid amount must cover the total; change is returned
    - If any line lacks stock nothing is saved (409)
    """
    service = SaleSettlementService(db)
    return service.settle(ctx, sale_data)


@router.get("", response_model=List[SaleSummary])
async def get_sales(
    outlet_id: Optional[int] = Query(None),
    status_filter: Optional[SaleStatus] = Query(None, alias="status"),
    payment_method: Optional[PaymentMethodType] = Query(None),
    user_id: Optional[int] = Query(None, description="Cashier"),
    date_from: Optional[date] = Query(None, description="Sold on or after this day"),
    date_to: Optional[date] = Query(None, description="Sold on or before this day"),
    search: Optional[str] = Query(None, description="Sale number"),
    limit: int = Query(20, ge=1, le=100),
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Sales, newest first

    **Filters:**
    - outlet_id, status, payment_method, user_id
    - date_from / date_to: inclusive days on sold_at
    - search: part of the sale number
    """
    service = SaleSettlementService(db)
    return service.list_sales(
        ctx, outlet_id, status_filter, payment_method, user_id, date_from, date_to, search, limit
    )


@router.get("/{sale_id}", response_model=SaleResponse)
async def get_sale(
    sale_id: int,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """Sale with its lines"""
    service = SaleSettlementService(db)
    return service.get_sale(ctx, sale_id)


@router.post("/{sale_id}/refund", response_model=SaleResponse)
async def refund_sale(
    sale_id: int,
    refund_data: Optional[SaleRefundRequest] = None,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Refund a completed sale

    Every line goes back to stock. Refunding twice is rejected with 409.
    """
    service = SaleSettlementService(db)
    return service.refund(ctx, sale_id, refund_data.reason if refund_data else None)
