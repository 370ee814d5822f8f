# stockledger/modules/units/__init__.py
"""
Units module - conversion between alternate units and the base unit

- Quantities ordered in an alternate unit are converted to base units (q x F)
- Unit prices honour per-unit overrides, otherwise base price x F
- Non-positive factors are rejected with InvalidConversionFactor

Architecture:
- router.py: FastAPI endpoints
- service.py: conversion arithmetic and the resolver
- repository.py: data access
- schemas.py: Pydantic response models
"""

from .router import router as units_router
from .service import UnitResolver, ResolvedUnit

__all__ = [
    "units_router",
    "UnitResolver",
    "ResolvedUnit"
]
