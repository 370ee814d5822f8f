from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Date, Text, ForeignKey, Numeric,
    UniqueConstraint, CheckConstraint, Index, event
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from stockledger.config.database import Base
from stockledger.core.exceptions import ImmutableMovement

QUANTITY = Numeric(15, 3)
MONEY = Numeric(15, 2)
FACTOR = Numeric(12, 3)

class TimestampMixin:
    """Automatic created/updated timestamps"""
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

# ===== CATALOG =====

class Unit(Base):
    """Unit of measure (Pcs, Box, Carton)"""
    __tablename__ = "units"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    symbol = Column(String(20))

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='units_unique_per_tenant'),
    )

class Product(Base, TimestampMixin):
    """Product; its stock is always kept in the base unit"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    sku = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False, index=True)
    base_unit_id = Column(Integer, ForeignKey("units.id"))
    min_stock = Column(QUANTITY, default=0, nullable=False)
    purchase_price = Column(MONEY, default=0, nullable=False)
    selling_price = Column(MONEY, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'sku', name='products_unique_sku_per_tenant'),
    )

    # Relationships
    base_unit = relationship("Unit")
    units = relationship("ProductUnit", back_populates="product")

class ProductUnit(Base, TimestampMixin):
    """Alternate unit: 1 unit = conversion_factor base units"""
    __tablename__ = "product_units"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=False)
    conversion_factor = Column(FACTOR, nullable=False)
    purchase_price = Column(MONEY)
    selling_price = Column(MONEY)
    wholesale_price = Column(MONEY)
    barcode = Column(String(100))
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'product_id', 'unit_id', name='product_units_unique_unit'),
        UniqueConstraint('tenant_id', 'barcode', name='product_units_unique_barcode'),
    )

    # Relationships
    product = relationship("Product", back_populates="units")
    unit = relationship("Unit")

class Outlet(Base, TimestampMixin):
    """Physical outlet / point of sale"""
    __tablename__ = "outlets"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)

# ===== INVENTORY =====

class StockLevel(Base):
    """Quantity on hand per (product, outlet). Never negative."""
    __tablename__ = "stock_levels"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False)
    quantity = Column(QUANTITY, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'product_id', 'outlet_id', name='stock_levels_unique_product_outlet'),
        CheckConstraint('quantity >= 0', name='stock_levels_quantity_non_negative'),
    )

    # Relationships
    product = relationship("Product")
    outlet = relationship("Outlet")

class StockMovement(Base):
    """Append-only stock movement"""
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False)
    kind = Column(String(20), nullable=False)  # in, out, adjustment, transfer
    quantity = Column(QUANTITY, nullable=False)  # signed delta
    quantity_before = Column(QUANTITY, nullable=False)
    quantity_after = Column(QUANTITY, nullable=False)
    reference_type = Column(String(20), nullable=False)  # sale, purchase, transfer, manual
    reference_id = Column(Integer)
    user_id = Column(Integer, nullable=False)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_stock_movements_ledger', 'tenant_id', 'product_id', 'outlet_id', 'id'),
        Index('ix_stock_movements_reference', 'tenant_id', 'reference_type', 'reference_id'),
    )

    # Relationships
    product = relationship("Product")
    outlet = relationship("Outlet")

    @property
    def direction(self) -> str:
        return "in" if self.quantity > 0 else "out"

# ===== SALES =====

class Sale(Base):
    """Completed sale"""
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    number = Column(String(50), index=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False)
    user_id = Column(Integer, nullable=False)
    customer_id = Column(Integer)
    status = Column(String(20), default='completed', nullable=False)
    subtotal = Column(MONEY, default=0, nullable=False)
    tax_amount = Column(MONEY, default=0, nullable=False)
    discount_amount = Column(MONEY, default=0, nullable=False)
    total_amount = Column(MONEY, default=0, nullable=False)
    paid_amount = Column(MONEY, default=0, nullable=False)
    change_amount = Column(MONEY, default=0, nullable=False)
    payment_method = Column(String(50), default='cash')
    notes = Column(Text)
    sold_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    outlet = relationship("Outlet")
    lines = relationship("SaleLine", back_populates="sale", order_by="SaleLine.id")

class SaleLine(Base):
    """Sale line; keeps the conversion factor used at sale time"""
    __tablename__ = "sale_lines"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False)
    sale_id = Column(Integer, ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"))
    conversion_factor = Column(FACTOR, default=1, nullable=False)
    quantity = Column(QUANTITY, nullable=False)
    base_quantity = Column(QUANTITY, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    discount_amount = Column(MONEY, default=0, nullable=False)
    total_price = Column(MONEY, nullable=False)

    # Relationships
    sale = relationship("Sale", back_populates="lines")
    product = relationship("Product")

# ===== PURCHASES =====

class Purchase(Base, TimestampMixin):
    """Supplier purchase; stock lands only when it becomes paid"""
    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    number = Column(String(50), index=True)
    supplier_id = Column(Integer)
    outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False)
    user_id = Column(Integer, nullable=False)
    purchase_date = Column(Date, server_default=func.current_date())
    status = Column(String(20), default='pending', nullable=False)
    stock_applied = Column(Boolean, default=False, nullable=False)
    subtotal = Column(MONEY, default=0, nullable=False)
    tax_amount = Column(MONEY, default=0, nullable=False)
    discount_amount = Column(MONEY, default=0, nullable=False)
    total_amount = Column(MONEY, default=0, nullable=False)
    paid_amount = Column(MONEY, default=0, nullable=False)
    remaining_amount = Column(MONEY, default=0, nullable=False)
    notes = Column(Text)

    # Relationships
    outlet = relationship("Outlet")
    lines = relationship(
        "PurchaseLine", back_populates="purchase", order_by="PurchaseLine.id",
        cascade="all, delete-orphan"
    )

class PurchaseLine(Base):
    """Purchase line"""
    __tablename__ = "purchase_lines"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False)
    purchase_id = Column(Integer, ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    unit_id = Column(Integer, ForeignKey("units.id"))
    conversion_factor = Column(FACTOR, default=1, nullable=False)
    quantity = Column(QUANTITY, nullable=False)
    base_quantity = Column(QUANTITY, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    total_price = Column(MONEY, nullable=False)

    # Relationships
    purchase = relationship("Purchase", back_populates="lines")
    product = relationship("Product")

# ===== TRANSFERS =====

class StockTransfer(Base, TimestampMixin):
    """Transfer between outlets"""
    __tablename__ = "stock_transfers"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    number = Column(String(50), index=True)
    from_outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False)
    to_outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False)
    status = Column(String(20), default='pending', nullable=False)
    transfer_date = Column(Date, server_default=func.current_date())
    user_id = Column(Integer, nullable=False)
    approved_by = Column(Integer)
    approved_at = Column(DateTime(timezone=True))
    notes = Column(Text)

    # Relationships
    from_outlet = relationship("Outlet", foreign_keys=[from_outlet_id])
    to_outlet = relationship("Outlet", foreign_keys=[to_outlet_id])
    lines = relationship("StockTransferLine", back_populates="transfer", order_by="StockTransferLine.id")

class StockTransferLine(Base):
    """Transfer line, quantity in base units"""
    __tablename__ = "stock_transfer_lines"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False)
    transfer_id = Column(Integer, ForeignKey("stock_transfers.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(QUANTITY, nullable=False)

    # Relationships
    transfer = relationship("StockTransfer", back_populates="lines")
    product = relationship("Product")

# ===== IMMUTABILITY =====

@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableMovement(target.id, "update")

@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableMovement(target.id, "delete")
