import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.models.movement import MovementRecord, MovementType
from stockledger.schemas.stock import MovementCreate
from stockledger.services import catalog_service, journal, ledger_store
from stockledger.services.errors import (
    ConcurrentUpdateConflict,
    InsufficientStock,
    InvalidRequest,
    LedgerError,
    NotFound,
)
from stockledger.services.reference import new_reference

logger = logging.getLogger(__name__)


def _validate_quantity(value) -> int:
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequest("Quantity must be an integer")
    if value <= 0:
        raise InvalidRequest("Quantity must be greater than 0")
    return value


def _movement_type(value) -> MovementType:
    try:
        return MovementType(value)
    except ValueError:
        raise InvalidRequest(f"Unsupported movement type: {value}")


def signed_delta(movement_type: MovementType | str, quantity: int, delta: int | None = None) -> int:
    """Signed change a movement applies to on-hand quantity."""
    movement_type = _movement_type(movement_type)
    quantity = _validate_quantity(quantity)

    if movement_type == MovementType.TRANSFER:
        if delta is None:
            raise InvalidRequest("Transfer legs require a signed delta")
        if isinstance(delta, bool) or not isinstance(delta, int) or abs(delta) != quantity:
            raise InvalidRequest("Transfer delta must be +quantity or -quantity")
        return delta

    if delta is not None:
        raise InvalidRequest("Only transfer legs may carry an explicit delta")
    if movement_type == MovementType.OUT:
        return -quantity
    return quantity


def _ensure_targets_exist(db: Session, product_id: str, location_id: str) -> None:
    if catalog_service.get_product(db, product_id) is None:
        raise NotFound("product", product_id)
    if catalog_service.get_location(db, location_id) is None:
        raise NotFound("location", location_id)


def apply_leg(
    db: Session,
    data: MovementCreate,
    actor_id: str,
    unit_cost: Decimal = Decimal("0"),
) -> MovementRecord:
    """Apply one movement inside the caller's transaction, without committing.

    ``unit_cost`` is used only if the stock record has to be created.
    """
    if not data.product_id or not data.location_id:
        raise InvalidRequest("product_id and location_id are required")
    if not actor_id:
        raise InvalidRequest("An acting user is required")
    movement_type = _movement_type(data.type)
    delta = signed_delta(movement_type, data.quantity, data.delta)

    _ensure_targets_exist(db, data.product_id, data.location_id)

    max_attempts = max(1, settings.MOVEMENT_MAX_RETRIES)
    for attempt in range(1, max_attempts + 1):
        record = ledger_store.get_or_create(db, data.product_id, data.location_id, unit_cost=unit_cost)
        previous_quantity = record.quantity
        new_quantity = previous_quantity + delta
        if new_quantity < 0:
            raise InsufficientStock(available=previous_quantity, requested=data.quantity)

        if ledger_store.compare_and_set(db, data.product_id, data.location_id, previous_quantity, new_quantity):
            db.expire(record)
            return journal.append_movement(
                db,
                product_id=data.product_id,
                location_id=data.location_id,
                user_id=actor_id,
                type=movement_type,
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
                notes=data.notes,
                reference_number=data.reference_number or new_reference("MOV"),
            )

        logger.warning(
            "Stock %s@%s changed concurrently (attempt %d/%d)",
            data.product_id, data.location_id, attempt, max_attempts,
        )

    raise ConcurrentUpdateConflict(data.product_id, data.location_id, max_attempts)


def apply_movement(db: Session, data: MovementCreate, actor_id: str) -> MovementRecord:
    """Apply a single movement as its own transaction.

    Either the quantity update and its journal entry are both committed, or
    neither is. Raises a ``LedgerError`` subclass on rejection.
    """
    try:
        movement = apply_leg(db, data, actor_id)
        db.commit()
    except LedgerError as e:
        db.rollback()
        logger.info("Movement rejected (%s) for %s@%s: %s", e.code, data.product_id, data.location_id, e.message)
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(movement)
    logger.info(
        "Movement %s on %s@%s: %d -> %d",
        movement.reference_number, movement.product_id, movement.location_id,
        movement.previous_quantity, movement.new_quantity,
    )
    return movement
