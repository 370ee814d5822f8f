"""
Pytest fixtures for the stock ledger test suite.

Provides:
- A fresh SQLite database file per test, with the same BEGIN IMMEDIATE
  engine setup the service uses
- A session factory so concurrency tests can open one session per thread
- The operation context and a small tenant catalog
- A helper to put stock on the shelf through the ledger
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

from stockledger.config.database import create_db_engine, init_db
from stockledger.core.context import OperationContext
from stockledger.modules.stock.service import StockService
from stockledger.shared.database.models import Outlet, Product, ProductUnit, Unit

TENANT_ID = 1
OTHER_TENANT_ID = 2
USER_ID = 7


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def ctx():
    return OperationContext(tenant_id=TENANT_ID, user_id=USER_ID)


@pytest.fixture
def other_ctx():
    return OperationContext(tenant_id=OTHER_TENANT_ID, user_id=USER_ID)


@pytest.fixture
def catalog(db):
    """
    Two products sold by the piece, the first also by the box of 24,
    and two outlets. Only ids are handed out so no test holds a
    transaction open on the shared session.
    """
    pcs = Unit(tenant_id=TENANT_ID, name="Pieces", symbol="Pcs")
    box = Unit(tenant_id=TENANT_ID, name="Box", symbol="Box")
    db.add_all([pcs, box])
    db.flush()

    water = Product(
        tenant_id=TENANT_ID,
        sku="SKU-001",
        name="Mineral water 600ml",
        base_unit_id=pcs.id,
        min_stock=Decimal("10"),
        purchase_price=Decimal("3000"),
        selling_price=Decimal("5000"),
    )
    noodles = Product(
        tenant_id=TENANT_ID,
        sku="SKU-002",
        name="Instant noodles",
        base_unit_id=pcs.id,
        min_stock=Decimal("5"),
        purchase_price=Decimal("2000"),
        selling_price=Decimal("3500"),
    )
    db.add_all([water, noodles])
    db.flush()

    db.add(ProductUnit(
        tenant_id=TENANT_ID,
        product_id=water.id,
        unit_id=box.id,
        conversion_factor=Decimal("24"),
        selling_price=Decimal("110000"),
        barcode="BOX-001",
    ))

    main = Outlet(tenant_id=TENANT_ID, name="Main store")
    branch = Outlet(tenant_id=TENANT_ID, name="Branch")
    db.add_all([main, branch])
    db.flush()

    ids = SimpleNamespace(
        pcs=pcs.id,
        box=box.id,
        water=water.id,
        noodles=noodles.id,
        main=main.id,
        branch=branch.id,
    )
    db.commit()
    return ids


@pytest.fixture
def seed(db, ctx):
    """Put stock on the shelf through the ledger so movements reconcile"""

    def _seed(product_id, outlet_id, quantity):
        return StockService(db).increase(ctx, product_id, outlet_id, Decimal(str(quantity)))

    return _seed
