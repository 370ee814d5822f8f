# stockledger/modules/purchases/__init__.py
"""
Purchases module - receiving supplier goods

- Purchase lines in any configured unit, received in base units
- Status flow pending -> partial -> paid -> cancelled
- Stock is added when a purchase becomes paid and reversed when a paid
  purchase is cancelled or deleted, each exactly once

Architecture:
- router.py: FastAPI endpoints
- service.py: status machine and stock effects
- repository.py: purchase documents and conditional status edges
- schemas.py: Pydantic request/response models
"""

from .router import router as purchases_router
from .service import PurchaseReceivingService
from .repository import PurchaseRepository

__all__ = [
    "purchases_router",
    "PurchaseReceivingService",
    "PurchaseRepository"
]
