from __future__ import annotations

from sqlalchemy import select

from poledger.app.db.session import SessionLocal
from poledger.app.db.models.models_v1 import Location, Organization, Store, Supplier, User
from poledger.app.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


def run_seed():
    db = SessionLocal()
    try:
        # 1) Organization + store
        org = db.scalar(select(Organization).where(Organization.name == "Demo"))
        if not org:
            org = Organization(name="Demo")
            db.add(org)
            db.flush()

        store = db.scalar(select(Store).where(Store.organization_id == org.id))
        if not store:
            store = Store(organization_id=org.id, name="Main store", active=True)
            db.add(store)
            db.flush()

        # 2) Receiving warehouse, attached to the store
        loc = db.scalar(
            select(Location).where(Location.organization_id == org.id).where(Location.name == "Main warehouse")
        )
        if not loc:
            loc = Location(organization_id=org.id, store_id=store.id, name="Main warehouse", code="WH-1")
            db.add(loc)

        # 3) One supplier and one buyer
        sup = db.scalar(select(Supplier).where(Supplier.organization_id == org.id).where(Supplier.name == "Acme Supply"))
        if not sup:
            db.add(Supplier(organization_id=org.id, name="Acme Supply", email="orders@acme.example"))

        user = db.scalar(select(User).where(User.email == "buyer@demo.example"))
        if not user:
            db.add(User(organization_id=org.id, name="Buyer", email="buyer@demo.example"))

        db.commit()
        logger.info("seed_ok", extra={"organization_id": org.id, "store_id": store.id})
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    configure_logging(json_lines=False)
    run_seed()
