import pytest
from sqlalchemy import select

from poledger.app.db import immutability
from poledger.app.db.models.core_types import MovementType, SourceOrderType
from poledger.app.db.models.models_v1 import InventoryMovement, Product, StockLevel
from poledger.services import inventory
from poledger.services.errors import ImmutableRecordError, InsufficientStock, InvalidRequest


def test_apply_delta_creates_stock_level_lazily(db_session, world):
    assert inventory.get_stock_level(db_session, product_id=world.product.id, location_id=world.location.id) is None

    sl = inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=7)

    assert sl.id is not None
    assert sl.quantity_on_hand == 7
    assert sl.quantity_reserved == 0
    assert sl.quantity_available == 7


def test_negative_delta_clamps_at_zero(db_session, world):
    """
    GIVEN a stock level with on_hand = 3
    WHEN  a delta of -5 is applied
    THEN  on_hand == 0 (not -2)
    """
    inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=3)

    sl = inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=-5)

    assert sl.quantity_on_hand == 0
    assert sl.quantity_available == 0


def test_negative_delta_on_missing_key_creates_empty_row(db_session, world):
    sl = inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=-4)

    assert sl.quantity_on_hand == 0


def test_quantities_never_negative_over_a_sequence(db_session, world):
    deltas = [5, -2, -10, 4, -1, -100, 8, 0, -3]
    for delta in deltas:
        sl = inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=delta)
        assert sl.quantity_on_hand >= 0
        assert sl.quantity_available >= 0

    assert sl.quantity_on_hand == 5


def test_apply_delta_is_not_idempotent(db_session, world):
    for _ in range(2):
        sl = inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=4)

    assert sl.quantity_on_hand == 8
    rows = db_session.execute(select(StockLevel)).scalars().all()
    assert len(rows) == 1


def test_null_variant_and_variant_are_separate_keys(db_session, factory, world):
    variant = factory.variant(world.product)

    inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=2)
    inventory.apply_delta(
        db_session, product_id=world.product.id, location_id=world.location.id, delta=5, variant_id=variant.id
    )
    inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=1)

    plain = inventory.get_stock_level(db_session, product_id=world.product.id, location_id=world.location.id)
    with_variant = inventory.get_stock_level(
        db_session, product_id=world.product.id, location_id=world.location.id, variant_id=variant.id
    )
    assert plain.quantity_on_hand == 3
    assert with_variant.quantity_on_hand == 5


def test_product_stock_quantity_follows_all_locations(db_session, factory, world):
    other = factory.location(world.org, world.store)

    inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=6)
    inventory.apply_delta(db_session, product_id=world.product.id, location_id=other.id, delta=4)
    inventory.apply_delta(db_session, product_id=world.product.id, location_id=other.id, delta=-1)

    product = db_session.get(Product, world.product.id)
    assert product.stock_quantity == 9


def test_available_is_on_hand_minus_reserved(db_session, world):
    inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=10)

    sl = inventory.reserve_stock(db_session, product_id=world.product.id, location_id=world.location.id, quantity=4)
    assert sl.quantity_reserved == 4
    assert sl.quantity_available == 6

    # available is derived, so a stock decrease is reflected without touching reserved
    sl = inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=-8)
    assert sl.quantity_on_hand == 2
    assert sl.quantity_reserved == 4
    assert sl.quantity_available == 0


def test_available_usable_in_sql_filters(db_session, factory, world):
    other = factory.product(world.store)
    inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=10)
    inventory.apply_delta(db_session, product_id=other.id, location_id=world.location.id, delta=3)
    inventory.reserve_stock(db_session, product_id=other.id, location_id=world.location.id, quantity=3)

    rows = db_session.execute(select(StockLevel).where(StockLevel.quantity_available > 0)).scalars().all()

    assert [sl.product_id for sl in rows] == [world.product.id]


def test_reserve_more_than_available_fails(db_session, world):
    inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=2)

    with pytest.raises(InsufficientStock) as exc:
        inventory.reserve_stock(db_session, product_id=world.product.id, location_id=world.location.id, quantity=3)

    assert exc.value.available == 2
    assert exc.value.requested == 3


def test_release_clamps_at_zero(db_session, world):
    inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=5)
    inventory.reserve_stock(db_session, product_id=world.product.id, location_id=world.location.id, quantity=2)

    sl = inventory.release_stock(db_session, product_id=world.product.id, location_id=world.location.id, quantity=9)

    assert sl.quantity_reserved == 0
    assert sl.quantity_on_hand == 5


def test_record_movement_rejects_non_positive_quantity(db_session, world):
    with pytest.raises(InvalidRequest):
        inventory.record_movement(
            db_session,
            organization_id=world.org.id,
            product_id=world.product.id,
            quantity=0,
            movement_type=MovementType.stock_in,
            to_location_id=world.location.id,
        )


def _movement(db_session, world, qty=3):
    return inventory.record_movement(
        db_session,
        organization_id=world.org.id,
        product_id=world.product.id,
        quantity=qty,
        movement_type=MovementType.stock_in,
        to_location_id=world.location.id,
        source_order_type=SourceOrderType.purchase,
        source_order_id=42,
        reason="test",
    )


def test_movement_cannot_be_updated(db_session, world):
    mv = _movement(db_session, world)

    mv.quantity = 99
    with pytest.raises(ImmutableRecordError):
        db_session.flush()


def test_movement_cannot_be_deleted(db_session, world):
    mv = _movement(db_session, world)

    db_session.delete(mv)
    with pytest.raises(ImmutableRecordError):
        db_session.flush()


def test_listeners_can_be_removed_and_restored(db_session, world):
    mv = _movement(db_session, world)

    immutability.unregister_immutability_listeners()
    try:
        mv.reason = "corrected"
        db_session.flush()
    finally:
        immutability.register_immutability_listeners()

    db_session.refresh(mv)
    assert mv.reason == "corrected"
    mv.reason = "again"
    with pytest.raises(ImmutableRecordError):
        db_session.flush()


def test_list_movements_filters(db_session, factory, world):
    other = factory.location(world.org, world.store)
    _movement(db_session, world, qty=2)
    inventory.record_movement(
        db_session,
        organization_id=world.org.id,
        product_id=world.product.id,
        quantity=1,
        movement_type=MovementType.stock_out,
        from_location_id=other.id,
    )

    by_source = inventory.list_movements(db_session, source_order_type=SourceOrderType.purchase, source_order_id=42)
    assert [mv.quantity for mv in by_source] == [2]

    at_other = inventory.list_movements(db_session, location_id=other.id)
    assert [mv.movement_type for mv in at_other] == [MovementType.stock_out]

    all_rows = db_session.execute(select(InventoryMovement)).scalars().all()
    assert len(all_rows) == 2


def test_list_stock_levels_scoped_by_organization(db_session, factory, world):
    other_org = factory.organization()
    other_store = factory.store(other_org)
    other_loc = factory.location(other_org, other_store)
    other_product = factory.product(other_store)

    inventory.apply_delta(db_session, product_id=world.product.id, location_id=world.location.id, delta=1)
    inventory.apply_delta(db_session, product_id=other_product.id, location_id=other_loc.id, delta=1)

    rows = inventory.list_stock_levels(db_session, organization_id=world.org.id)

    assert [sl.location_id for sl in rows] == [world.location.id]
