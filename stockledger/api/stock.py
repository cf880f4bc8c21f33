from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from stockledger.api.auth import require_permission
from stockledger.database import get_db
from stockledger.models.movement import MovementType
from stockledger.models.user import User
from stockledger.schemas.stock import (
    MovementCreate,
    MovementOut,
    ReconcileOut,
    StockRecordOut,
    TransferCreate,
    TransferResult,
)
from stockledger.services import journal, ledger_store, movement_engine, transfer_service
from stockledger.services.errors import InvalidRequest

router = APIRouter(prefix="/stock", tags=["Stock"])


@router.get("", response_model=list[StockRecordOut])
def list_stock(
    product_id: str | None = None,
    location_id: str | None = None,
    warehouse_id: str | None = None,
    low_stock: bool = False,
    expired: bool = False,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("manage-stock")),
):
    return ledger_store.list_stock(
        db,
        product_id=product_id,
        location_id=location_id,
        warehouse_id=warehouse_id,
        low_stock=low_stock,
        expired=expired,
        skip=skip,
        limit=limit,
    )


@router.get("/movements", response_model=list[MovementOut])
def movement_history(
    product_id: str | None = None,
    location_id: str | None = None,
    user_id: str | None = None,
    type: MovementType | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    reference_number: str | None = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("manage-stock")),
):
    return journal.list_movements(
        db,
        product_id=product_id,
        location_id=location_id,
        user_id=user_id,
        type=type,
        date_from=date_from,
        date_to=date_to,
        reference_number=reference_number,
        skip=skip,
        limit=limit,
    )


@router.post("/adjustment", response_model=MovementOut, status_code=201)
def process_adjustment(
    data: MovementCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("adjust-stock")),
):
    if data.type == MovementType.TRANSFER:
        raise InvalidRequest("Use the transfer endpoint to move stock between locations")
    return movement_engine.apply_movement(db, data, user.id)


@router.post("/transfer", response_model=TransferResult, status_code=201)
def transfer(
    data: TransferCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("manage-stock")),
):
    return transfer_service.transfer(db, data, user.id)


@router.get("/{product_id}/{location_id}", response_model=StockRecordOut)
def get_stock_record(
    product_id: str,
    location_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("manage-stock")),
):
    record = ledger_store.get_stock_record(db, product_id, location_id)
    if not record:
        raise HTTPException(404, "Stock record not found")
    return record


@router.get("/{product_id}/{location_id}/reconcile", response_model=ReconcileOut)
def reconcile(
    product_id: str,
    location_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("view-audit-logs")),
):
    """Replay the journal for one pair and compare it with the stored quantity."""
    record = ledger_store.get_stock_record(db, product_id, location_id)
    if not record:
        raise HTTPException(404, "Stock record not found")
    return journal.reconcile(db, record)
