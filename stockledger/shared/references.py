"""
What caused a stock movement.

A closed set of reference kinds. Movements persist them as a
``(reference_type, reference_id)`` pair; ``to_columns`` and ``from_columns``
are the only places that translate between the two shapes.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union


class ReferenceType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    TRANSFER = "transfer"
    MANUAL = "manual"


@dataclass(frozen=True)
class SaleRef:
    id: int


@dataclass(frozen=True)
class PurchaseRef:
    id: int


@dataclass(frozen=True)
class TransferRef:
    id: int


@dataclass(frozen=True)
class ManualRef:
    pass


Reference = Union[SaleRef, PurchaseRef, TransferRef, ManualRef]

MANUAL = ManualRef()


def to_columns(reference: Reference) -> Tuple[ReferenceType, Optional[int]]:
    if isinstance(reference, SaleRef):
        return ReferenceType.SALE, reference.id
    if isinstance(reference, PurchaseRef):
        return ReferenceType.PURCHASE, reference.id
    if isinstance(reference, TransferRef):
        return ReferenceType.TRANSFER, reference.id
    if isinstance(reference, ManualRef):
        return ReferenceType.MANUAL, None
    raise TypeError(f"Unknown movement reference: {reference!r}")


def from_columns(reference_type: str, reference_id: Optional[int]) -> Reference:
    kind = ReferenceType(reference_type)
    if kind is ReferenceType.SALE:
        return SaleRef(reference_id)
    if kind is ReferenceType.PURCHASE:
        return PurchaseRef(reference_id)
    if kind is ReferenceType.TRANSFER:
        return TransferRef(reference_id)
    return MANUAL
