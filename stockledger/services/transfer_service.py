import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from stockledger.models.movement import MovementType
from stockledger.schemas.stock import MovementCreate, MovementOut, TransferCreate, TransferResult
from stockledger.services import ledger_store, movement_engine
from stockledger.services.errors import InvalidRequest, LedgerError
from stockledger.services.reference import new_reference

logger = logging.getLogger(__name__)


def _leg_notes(notes: str | None, direction: str) -> str:
    return f"{notes} ({direction})" if notes else f"({direction})"


def transfer(db: Session, data: TransferCreate, actor_id: str) -> TransferResult:
    if data.from_location_id == data.to_location_id:
        raise InvalidRequest("Source and destination locations must differ")
    if isinstance(data.quantity, bool) or data.quantity <= 0:
        raise InvalidRequest("Quantity must be greater than 0")

    reference = new_reference("TRF")
    try:
        source_leg = movement_engine.apply_leg(
            db,
            MovementCreate(
                product_id=data.product_id,
                location_id=data.from_location_id,
                type=MovementType.TRANSFER,
                quantity=data.quantity,
                delta=-data.quantity,
                notes=_leg_notes(data.notes, "Transfer out"),
                reference_number=f"{reference}-OUT",
            ),
            actor_id,
        )
        # New destination records inherit the source's unit cost
        source = ledger_store.get_stock_record(db, data.product_id, data.from_location_id)
        unit_cost = source.unit_cost if source is not None else Decimal("0")

        destination_leg = movement_engine.apply_leg(
            db,
            MovementCreate(
                product_id=data.product_id,
                location_id=data.to_location_id,
                type=MovementType.TRANSFER,
                quantity=data.quantity,
                delta=data.quantity,
                notes=_leg_notes(data.notes, "Transfer in"),
                reference_number=f"{reference}-IN",
            ),
            actor_id,
            unit_cost=unit_cost,
        )
        db.commit()
    except LedgerError as e:
        db.rollback()
        logger.info("Transfer %s rolled back (%s): %s", reference, e.code, e.message)
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(source_leg)
    db.refresh(destination_leg)
    logger.info(
        "Transfer %s: %d of %s from %s to %s",
        reference, data.quantity, data.product_id, data.from_location_id, data.to_location_id,
    )
    return TransferResult(
        reference_number=reference,
        source=MovementOut.model_validate(source_leg),
        destination=MovementOut.model_validate(destination_leg),
    )
