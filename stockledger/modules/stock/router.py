from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.config.database import get_db
from stockledger.core.context import OperationContext, get_operation_context
from .service import StockService
from .schemas import (
    MovementKind, StockAdjustRequest, StockOpnameRequest, StockLevelResponse,
    MovementResponse, OpnameItemResult, StockOpnameResponse, LowStockItem,
    ReconciliationResponse, StockIncomingRequest, StockIncomingResponse, StockLevelItem
)

router = APIRouter()

# ==================== QUERIES ====================

@router.get("", response_model=List[StockLevelItem])
async def get_stock_list(
    outlet_id: Optional[int] = Query(None, description="Limit to one outlet"),
    search: Optional[str] = Query(None, description="Product name or SKU"),
    low_stock_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Stock levels with product name and minimum stock

    **Filters:**
    - outlet_id: one outlet only
    - search: matches product name or SKU
    - low_stock_only: levels at or under the product minimum, empty ones included
    """
    service = StockService(db)
    return service.list_stock(ctx, outlet_id, search, low_stock_only, limit)


@router.get("/low-stock", response_model=List[LowStockItem])
async def get_low_stock(
    outlet_id: Optional[int] = Query(None, description="Limit to one outlet"),
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Products at or under their minimum stock, lowest first

    Empty stock levels are not listed.
    """
    service = StockService(db)
    return service.low_stock_alerts(ctx, outlet_id)


@router.get("/{product_id}/{outlet_id}", response_model=StockLevelResponse)
async def get_stock_level(
    product_id: int,
    outlet_id: int,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """Quantity on hand in base units; 0 when the product was never stocked here"""
    service = StockService(db)
    return StockLevelResponse(
        product_id=product_id,
        outlet_id=outlet_id,
        quantity=service.current_quantity(ctx, product_id, outlet_id)
    )


@router.get("/{product_id}/{outlet_id}/movements", response_model=List[MovementResponse])
async def get_movement_history(
    product_id: int,
    outlet_id: int,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    kind: Optional[List[MovementKind]] = Query(None, description="Filter by movement kind"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Movement history of one product at one outlet, oldest first

    **Filters:**
    - start / end: creation time window
    - kind: in, out, adjustment, transfer
    """
    service = StockService(db)
    return service.movement_history(ctx, product_id, outlet_id, start, end, kind, limit)


@router.get("/{product_id}/{outlet_id}/reconcile", response_model=ReconciliationResponse)
async def reconcile_stock(
    product_id: int,
    outlet_id: int,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """Compare the stored quantity with the sum of all recorded movements"""
    service = StockService(db)
    return service.reconcile(ctx, product_id, outlet_id)

# ==================== ADJUSTMENTS ====================

@router.post("/adjust", response_model=OpnameItemResult)
async def adjust_stock(
    adjust_data: StockAdjustRequest,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Set the stock of a product to a counted quantity

    **Functionality:**
    - Records one adjustment movement with the signed difference
    - With expected_quantity, fails with 409 if the stock moved since the count
    - Without it, retries against concurrent sales a bounded number of times
    """
    service = StockService(db)
    entry = service.adjust_stock(
        ctx,
        adjust_data.product_id,
        adjust_data.outlet_id,
        adjust_data.new_quantity,
        adjust_data.expected_quantity,
        adjust_data.notes
    )
    return OpnameItemResult(
        product_id=entry.product_id,
        old_quantity=entry.quantity_before,
        new_quantity=entry.quantity_after,
        difference=entry.delta
    )


@router.post("/incoming", response_model=StockIncomingResponse)
async def receive_stock(
    incoming_data: StockIncomingRequest,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Record goods received without a purchase document

    **Functionality:**
    - Increases each product at the outlet by the received base quantity
    - Records one "in" movement per item with a manual reference
    - All-or-nothing: a rejected item leaves every stock level unchanged
    """
    service = StockService(db)
    return service.receive_stock(ctx, incoming_data.outlet_id, incoming_data.items, incoming_data.reference_number)


@router.post("/opname", response_model=StockOpnameResponse)
async def process_stock_opname(
    opname_data: StockOpnameRequest,
    ctx: OperationContext = Depends(get_operation_context),
    db: Session = Depends(get_db)
):
    """
    Physical stock count of an outlet

    **Functionality:**
    - Each item carries the system stock it was counted against
    - Items whose physical count differs are adjusted
    - All-or-nothing: one stale item rejects the whole count
    """
    service = StockService(db)
    return service.stock_opname(ctx, opname_data.outlet_id, opname_data.items)
