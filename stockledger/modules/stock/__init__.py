# stockledger/modules/stock/__init__.py
"""
Stock module - the ledger of quantities on hand

- Atomic increase / decrease of stock per (product, outlet)
- Decreases never drive stock negative, even under concurrent terminals
- Every change appends one immutable movement with before/after snapshots
- Manual adjustment and stock opname by compare-and-set
- Low stock alerts and ledger reconciliation

Architecture:
- router.py: FastAPI endpoints
- service.py: transaction boundary and public interface
- repository.py: ledger store and movement recorder
- schemas.py: Pydantic request/response models
"""

from .router import router as stock_router
from .service import StockService
from .repository import LedgerEntry, MovementRecorder, StockLedgerRepository
from .schemas import MovementKind

__all__ = [
    "stock_router",
    "StockService",
    "StockLedgerRepository",
    "MovementRecorder",
    "LedgerEntry",
    "MovementKind"
]
