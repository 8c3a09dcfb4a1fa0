from __future__ import annotations

import itertools
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from poledger.app.db.base import Base
from poledger.app.db import immutability  # noqa: F401  (append-only listeners)
from poledger.app.db.models.core_types import ProductState
from poledger.app.db.models.models_v1 import (
    Location,
    Organization,
    Product,
    ProductVariant,
    Store,
    Supplier,
    User,
)
from poledger.services.context import RequestContext


@pytest.fixture(scope="function")
def engine():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps the single connection alive so every session of the
    test sees the same database.
    """
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


class Factory:
    """Master data builder; every row gets a unique name."""

    def __init__(self, db: Session):
        self.db = db
        self._seq = itertools.count(1)

    def _n(self) -> int:
        return next(self._seq)

    def organization(self, name: str | None = None) -> Organization:
        org = Organization(name=name or f"ORG-{self._n()}")
        self.db.add(org)
        self.db.flush()
        return org

    def store(self, org: Organization, name: str | None = None) -> Store:
        store = Store(organization_id=org.id, name=name or f"STORE-{self._n()}")
        self.db.add(store)
        self.db.flush()
        return store

    def location(self, org: Organization, store: Store | None = None, name: str | None = None) -> Location:
        loc = Location(
            organization_id=org.id,
            store_id=store.id if store else None,
            name=name or f"LOC-{self._n()}",
        )
        self.db.add(loc)
        self.db.flush()
        return loc

    def supplier(self, org: Organization, name: str | None = None) -> Supplier:
        sup = Supplier(organization_id=org.id, name=name or f"SUP-{self._n()}")
        self.db.add(sup)
        self.db.flush()
        return sup

    def user(self, org: Organization, name: str | None = None) -> User:
        n = self._n()
        user = User(organization_id=org.id, name=name or f"USER-{n}", email=f"user{n}@test.example")
        self.db.add(user)
        self.db.flush()
        return user

    def product(self, store: Store, name: str | None = None, sku: str | None = None) -> Product:
        n = self._n()
        product = Product(
            store_id=store.id,
            name=name or f"PROD-{n}",
            slug=f"prod-{n}",
            sku=sku or f"SKU-{n}",
            base_price=Decimal("0"),
            stock_quantity=0,
            state=ProductState.active,
        )
        self.db.add(product)
        self.db.flush()
        return product

    def variant(self, product: Product, name: str | None = None) -> ProductVariant:
        n = self._n()
        variant = ProductVariant(product_id=product.id, name=name or f"VAR-{n}", sku=f"VSKU-{n}")
        self.db.add(variant)
        self.db.flush()
        return variant

    def world(self) -> SimpleNamespace:
        """One organization with a store, a warehouse of that store, a supplier, a user and a product."""
        org = self.organization()
        store = self.store(org)
        location = self.location(org, store)
        supplier = self.supplier(org)
        user = self.user(org)
        product = self.product(store)
        return SimpleNamespace(
            org=org,
            store=store,
            location=location,
            supplier=supplier,
            user=user,
            product=product,
            ctx=RequestContext(organization_id=org.id, user_id=user.id),
        )


@pytest.fixture(scope="function")
def factory(db_session) -> Factory:
    return Factory(db_session)


@pytest.fixture(scope="function")
def world(factory):
    return factory.world()
