# stockledger/modules/sales/__init__.py
"""
Sales module - settlement of completed sales

- Sale lines in any configured unit, deducted from stock in base units
- Totals, tax, discounts, payment and change
- The sale and all its stock decrements commit together or not at all
- Refund returns every line to stock exactly once

Architecture:
- router.py: FastAPI endpoints
- service.py: settlement and refund
- repository.py: sale documents
- schemas.py: Pydantic request/response models
"""

from .router import router as sales_router
from .service import SaleSettlementService
from .repository import SaleRepository

__all__ = [
    "sales_router",
    "SaleSettlementService",
    "SaleRepository"
]
