# stockledger/modules/transfers/__init__.py
"""
Transfers module - moving stock between outlets

- Pending transfers with an early availability check at the origin
- Approval moves every line out of the origin and into the destination atomically
- Repeated approvals are ignored; cancelled transfers cannot be approved
- Direct transfers create and approve in one step

Architecture:
- router.py: FastAPI endpoints
- service.py: approval and stock movement
- repository.py: transfer documents and conditional status edges
- schemas.py: Pydantic request/response models
"""

from .router import router as transfers_router
from .service import TransferService
from .repository import TransferRepository

__all__ = [
    "transfers_router",
    "TransferService",
    "TransferRepository"
]
