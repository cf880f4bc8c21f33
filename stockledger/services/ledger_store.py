import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from stockledger.models.catalog import Location, Product
from stockledger.models.stock import StockRecord

_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def get_stock_record(db: Session, product_id: str, location_id: str) -> StockRecord | None:
    """Read the record straight from the database, refreshing any cached instance."""
    stmt = (
        select(StockRecord)
        .where(StockRecord.product_id == product_id, StockRecord.location_id == location_id)
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalar_one_or_none()


def get_or_create(
    db: Session, product_id: str, location_id: str, unit_cost: Decimal = Decimal("0")
) -> StockRecord:
    record = get_stock_record(db, product_id, location_id)
    if record is not None:
        return record

    insert = _UPSERT_INSERTS.get(db.get_bind().dialect.name)
    if insert is None:
        db.add(StockRecord(product_id=product_id, location_id=location_id, quantity=0, unit_cost=unit_cost))
        db.flush()
    else:
        # A concurrent creator may win the race; the unique pair makes ours a no-op.
        stmt = (
            insert(StockRecord)
            .values(
                id=str(uuid.uuid4()),
                product_id=product_id,
                location_id=location_id,
                quantity=0,
                unit_cost=unit_cost,
            )
            .on_conflict_do_nothing(index_elements=["product_id", "location_id"])
        )
        db.execute(stmt)

    return get_stock_record(db, product_id, location_id)


def compare_and_set(
    db: Session, product_id: str, location_id: str, expected_quantity: int, new_quantity: int
) -> bool:
    """Set quantity to ``new_quantity`` only if it is still ``expected_quantity``.

    Returns False on conflict (another writer changed the row since it was read).
    """
    if new_quantity < 0:
        raise ValueError("Stock quantity cannot go negative")
    stmt = (
        update(StockRecord)
        .where(
            StockRecord.product_id == product_id,
            StockRecord.location_id == location_id,
            StockRecord.quantity == expected_quantity,
        )
        .values(quantity=new_quantity, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount == 1


def list_stock(
    db: Session,
    product_id: str | None = None,
    location_id: str | None = None,
    warehouse_id: str | None = None,
    low_stock: bool = False,
    expired: bool = False,
    skip: int = 0,
    limit: int | None = 100,
) -> list[StockRecord]:
    """Filtered stock records, most recently touched first. ``limit=None`` returns every match."""
    q = db.query(StockRecord)
    if product_id:
        q = q.filter(StockRecord.product_id == product_id)
    if location_id:
        q = q.filter(StockRecord.location_id == location_id)
    if warehouse_id:
        q = q.join(Location, StockRecord.location_id == Location.id).filter(Location.warehouse_id == warehouse_id)
    if low_stock:
        q = q.join(Product, StockRecord.product_id == Product.id).filter(StockRecord.quantity <= Product.min_stock)
    if expired:
        q = q.filter(StockRecord.expiry_date < date.today())
    return q.order_by(StockRecord.updated_at.desc(), StockRecord.id).offset(skip).limit(limit).all()


def total_on_hand(db: Session, product_id: str) -> int:
    """Sum of the product's quantity across every location."""
    total = db.query(func.coalesce(func.sum(StockRecord.quantity), 0)).filter(
        StockRecord.product_id == product_id
    ).scalar()
    return int(total)
