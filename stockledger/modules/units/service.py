# stockledger/modules/units/service.py
"""
Unit conversion.

Stock is always kept in the product's base unit. An alternate unit carries a
factor F meaning 1 alternate unit = F base units (1 Box = 24 Pcs).
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
from sqlalchemy.orm import Session

from stockledger.core.context import OperationContext
from stockledger.core.exceptions import EntityNotFound, InvalidConversionFactor
from stockledger.shared.database.models import Product, ProductUnit
from .repository import UnitRepository

Number = Union[Decimal, int, str]

QUANTITY_STEP = Decimal("0.001")
MONEY_STEP = Decimal("0.01")

PRICE_KINDS = ("selling", "purchase", "wholesale")


def quantize_quantity(value: Number) -> Decimal:
    return Decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def quantize_money(value: Number) -> Decimal:
    return Decimal(value).quantize(MONEY_STEP, rounding=ROUND_HALF_UP)


def validate_factor(factor: Number) -> Decimal:
    factor = Decimal(factor)
    if factor <= 0:
        raise InvalidConversionFactor(factor)
    return factor


def to_base_quantity(quantity: Number, factor: Number) -> Decimal:
    """Ordered quantity in an alternate unit -> base units (q x F)"""
    return quantize_quantity(Decimal(quantity) * validate_factor(factor))


def to_unit_quantity(base_quantity: Number, factor: Number) -> Decimal:
    """Base units -> quantity expressed in the alternate unit (q / F)"""
    return quantize_quantity(Decimal(base_quantity) / validate_factor(factor))


def unit_price(base_price: Number, product_unit: Optional[ProductUnit], kind: str = "selling") -> Decimal:
    """
    Displayed price of one alternate unit.

    An explicit override configured on the unit wins; otherwise the base-unit
    price is divided by the factor (price / F). ``product_unit`` of None means
    the base unit.
    """
    if kind not in PRICE_KINDS:
        raise ValueError(f"Unknown price kind: {kind}")
    if product_unit is None:
        return quantize_money(base_price)

    factor = validate_factor(product_unit.conversion_factor)
    override = getattr(product_unit, f"{kind}_price")
    if override is not None:
        return quantize_money(override)
    return quantize_money(Decimal(base_price) / factor)


@dataclass(frozen=True)
class ResolvedUnit:
    product: Product
    product_unit: Optional[ProductUnit]
    factor: Decimal

    @property
    def unit_id(self) -> Optional[int]:
        if self.product_unit is not None:
            return self.product_unit.unit_id
        return self.product.base_unit_id

    def base_quantity(self, quantity: Number) -> Decimal:
        return to_base_quantity(quantity, self.factor)

    def price(self, kind: str = "selling") -> Decimal:
        # Products carry no wholesale price of their own
        base_price = getattr(self.product, f"{kind}_price", None)
        if base_price is None:
            base_price = self.product.selling_price
        return unit_price(base_price, self.product_unit, kind)


class UnitResolver:
    """Looks up the conversion factor a (product, unit) pair resolves to"""

    def __init__(self, db: Session):
        self.db = db
        self.repository = UnitRepository(db)

    def resolve(self, ctx: OperationContext, product_id: int, unit_id: Optional[int] = None) -> ResolvedUnit:
        product = self.repository.get_product(ctx, product_id)
        if not product:
            raise EntityNotFound("Product", product_id)

        # The base unit (or no unit at all) is factor 1
        if unit_id is None or unit_id == product.base_unit_id:
            return ResolvedUnit(product=product, product_unit=None, factor=Decimal(1))

        product_unit = self.repository.get_product_unit(ctx, product_id, unit_id)
        if not product_unit:
            raise EntityNotFound("ProductUnit", f"{product_id}/{unit_id}")

        return ResolvedUnit(
            product=product,
            product_unit=product_unit,
            factor=validate_factor(product_unit.conversion_factor)
        )

    def resolve_barcode(self, ctx: OperationContext, barcode: str) -> ResolvedUnit:
        product_unit = self.repository.get_product_unit_by_barcode(ctx, barcode)
        if not product_unit:
            raise EntityNotFound("Barcode", barcode)
        return self.resolve(ctx, product_unit.product_id, product_unit.unit_id)
