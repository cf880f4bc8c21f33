import logging
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy.orm import Session

from stockledger.models.movement import MovementRecord, MovementType
from stockledger.models.stock import StockRecord
from stockledger.schemas.stock import ReconcileOut

logger = logging.getLogger(__name__)


def append_movement(
    db: Session,
    *,
    product_id: str,
    location_id: str,
    user_id: str,
    type: MovementType,
    previous_quantity: int,
    new_quantity: int,
    notes: str | None = None,
    reference_number: str | None = None,
) -> MovementRecord:
    movement = MovementRecord(
        product_id=product_id,
        location_id=location_id,
        user_id=user_id,
        type=type,
        quantity=abs(new_quantity - previous_quantity),
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        notes=notes,
        reference_number=reference_number,
    )
    db.add(movement)
    db.flush()
    return movement


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def list_movements(
    db: Session,
    product_id: str | None = None,
    location_id: str | None = None,
    user_id: str | None = None,
    type: MovementType | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    reference_number: str | None = None,
    skip: int = 0,
    limit: int = 100,
) -> list[MovementRecord]:
    """Newest first. Date bounds are inclusive whole UTC days."""
    q = db.query(MovementRecord)
    if product_id:
        q = q.filter(MovementRecord.product_id == product_id)
    if location_id:
        q = q.filter(MovementRecord.location_id == location_id)
    if user_id:
        q = q.filter(MovementRecord.user_id == user_id)
    if type:
        q = q.filter(MovementRecord.type == type)
    if date_from:
        q = q.filter(MovementRecord.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(MovementRecord.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
    if reference_number:
        q = q.filter(MovementRecord.reference_number.startswith(reference_number))
    return q.order_by(MovementRecord.id.desc()).offset(skip).limit(limit).all()


def movements_for_pair(db: Session, product_id: str, location_id: str) -> list[MovementRecord]:
    """Full history of one (product, location) in application order."""
    return (
        db.query(MovementRecord)
        .filter(MovementRecord.product_id == product_id, MovementRecord.location_id == location_id)
        .order_by(MovementRecord.id)
        .all()
    )


def replay_quantity(movements: list[MovementRecord]) -> int:
    """Rebuild on-hand quantity from zero by applying each recorded delta.

    Raises ValueError if a record does not continue from the previous one.
    """
    quantity = 0
    for movement in movements:
        if movement.previous_quantity != quantity:
            raise ValueError(
                f"Movement {movement.id} starts at {movement.previous_quantity}, expected {quantity}"
            )
        quantity += movement.delta
    return quantity


def reconcile(db: Session, record: StockRecord) -> ReconcileOut:
    """Compare a stock record with the quantity its journal replays to."""
    movements = movements_for_pair(db, record.product_id, record.location_id)
    out = ReconcileOut(
        product_id=record.product_id,
        location_id=record.location_id,
        quantity=record.quantity,
        movement_count=len(movements),
        consistent=False,
    )
    try:
        out.replayed_quantity = replay_quantity(movements)
    except ValueError as e:
        logger.error("Journal chain broken for %s@%s: %s", record.product_id, record.location_id, e)
        out.error = str(e)
        return out
    out.consistent = out.replayed_quantity == record.quantity
    if not out.consistent:
        logger.error(
            "Stock %s@%s holds %d but journal replays to %d",
            record.product_id, record.location_id, record.quantity, out.replayed_quantity,
        )
    return out
