import pytest
from decimal import Decimal
from sqlalchemy import select

from poledger.app.db.models.core_types import ProductState
from poledger.app.db.models.models_v1 import Product, StockLevel
from poledger.app.schemas.purchase_order import PurchaseOrderItemCreate
from poledger.services import products
from poledger.services.errors import InvalidRequest


def _line(**kw):
    data = {"quantity": 1, "unit_price": Decimal("1.00")}
    data.update(kw)
    return PurchaseOrderItemCreate(**data)


def test_existing_product_id_is_returned_unchanged(db_session, world):
    pid = products.resolve_product_id(
        db_session,
        organization_id=world.org.id,
        location_id=world.location.id,
        item=_line(product_id=world.product.id, product_name="ignored"),
    )

    assert pid == world.product.id
    assert db_session.execute(select(Product)).scalars().all() == [world.product]


def test_adhoc_product_created_in_location_store(db_session, world):
    pid = products.resolve_product_id(
        db_session,
        organization_id=world.org.id,
        location_id=world.location.id,
        item=_line(product_name="Blue Widget (XL)", product_description="big"),
    )

    product = db_session.get(Product, pid)
    assert product.store_id == world.store.id
    assert product.name == "Blue Widget (XL)"
    assert product.slug.startswith("blue-widget-xl-")
    assert product.sku.startswith("GEN-")
    assert product.description == "big"
    assert product.base_price == Decimal("0")
    assert product.stock_quantity == 0
    assert product.state == ProductState.active

    # no stock until a receipt
    assert db_session.execute(select(StockLevel)).scalars().all() == []


def test_adhoc_product_keeps_given_sku(db_session, world):
    pid = products.resolve_product_id(
        db_session,
        organization_id=world.org.id,
        location_id=world.location.id,
        item=_line(product_name="Gadget", sku="GAD-001"),
    )

    assert db_session.get(Product, pid).sku == "GAD-001"


def test_store_falls_back_to_first_store_of_organization(db_session, factory, world):
    loose = factory.location(world.org, store=None)
    factory.store(world.org)  # created later, not the first

    pid = products.resolve_product_id(
        db_session,
        organization_id=world.org.id,
        location_id=loose.id,
        item=_line(product_name="Bolt"),
    )

    assert db_session.get(Product, pid).store_id == world.store.id


def test_no_store_for_organization_fails(db_session, factory):
    org = factory.organization()
    loc = factory.location(org, store=None)

    with pytest.raises(InvalidRequest) as exc:
        products.resolve_product_id(
            db_session,
            organization_id=org.id,
            location_id=loc.id,
            item=_line(product_name="Nut"),
        )

    assert "No store found" in str(exc.value)


def test_missing_name_for_new_product_fails(db_session, world):
    with pytest.raises(InvalidRequest):
        products.resolve_product_id(
            db_session,
            organization_id=world.org.id,
            location_id=world.location.id,
            item=_line(product_name="   "),
        )


def test_same_name_twice_gives_distinct_products(db_session, world):
    ids = [
        products.resolve_product_id(
            db_session,
            organization_id=world.org.id,
            location_id=world.location.id,
            item=_line(product_name="Widget"),
        )
        for _ in range(2)
    ]

    first, second = (db_session.get(Product, pid) for pid in ids)
    assert first.id != second.id
    assert first.slug != second.slug
    assert first.sku != second.sku


def test_slugify():
    assert products.slugify("  Hello, World!! ") == "hello-world"
    assert products.slugify("Café 2000") == "caf-2000"
    assert products.slugify("***") == ""
