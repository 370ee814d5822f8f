from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockledger.config.database import get_db
from stockledger.core.context import OperationContext, get_operation_context
from .service import TransferService
from .schemas import TransferCreate, TransferResponse, TransferStatus, TransferSummary

router = APIRouter()

# ==================== TRANSFERS ====================

@router.post("", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    transfer_data: TransferCreate,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Request a transfer between two outlets

    **Functionality:**
    - Quantities are in base units
    - Origin stock is checked up front but only moved on approval
    """
    service = TransferService(db)
    return service.create_transfer(ctx, transfer_data)


@router.post("/direct", response_model=TransferResponse, status_code=status.HTTP_201_CREATED)
async def create_direct_transfer(
    transfer_data: TransferCreate,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """Create and approve a transfer at once"""
    service = TransferService(db)
    return service.transfer_now(ctx, transfer_data)


@router.get("", response_model=List[TransferSummary])
async def get_transfers(
    outlet_id: Optional[int] = Query(None, description="Origin or destination outlet"),
    status_filter: Optional[TransferStatus] = Query(None, alias="status"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """Transfers, latest transfer date first"""
    service = TransferService(db)
    return service.list_transfers(ctx, outlet_id, status_filter, date_from, date_to, limit)


@router.get("/{transfer_id}", response_model=TransferResponse)
async def get_transfer(
    transfer_id: int,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """Transfer with its lines"""
    service = TransferService(db)
    return service.get_transfer(ctx, transfer_id)


@router.post("/{transfer_id}/approve", response_model=TransferResponse)
async def approve_transfer(
    transfer_id: int,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Approve a pending transfer

    **Rules:**
    - Every line leaves the origin and arrives at the destination together
    - A short origin rejects the whole transfer (409), which stays pending
    - Approving again changes nothing
    """
    service = TransferService(db)
    return service.approve_transfer(ctx, transfer_id)


@router.post("/{transfer_id}/cancel", response_model=TransferResponse)
async def cancel_transfer(
    transfer_id: int,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """Cancel a pending transfer"""
    service = TransferService(db)
    return service.cancel_transfer(ctx, transfer_id)
