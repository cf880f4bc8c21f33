from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from stockledger.api.auth import require_permission
from stockledger.database import get_db
from stockledger.models.movement import MovementType
from stockledger.models.user import User
from stockledger.schemas.stock import (
    BatchResult,
    BulkScanRequest,
    MovementCreate,
    MovementOut,
    ScanTransaction,
    StockRecordOut,
)
from stockledger.services import batch_service, catalog_service, journal, ledger_store, movement_engine
from stockledger.services.errors import InvalidRequest
from stockledger.services.reference import new_reference

router = APIRouter(prefix="/scan", tags=["Scan"])


class LocationOut(BaseModel):
    id: str
    warehouse_id: str
    code: str
    name: str

    model_config = {"from_attributes": True}


class ScannedProductOut(BaseModel):
    id: str
    sku: str
    barcode: str
    name: str
    min_stock: int
    total_quantity: int
    stock: list[StockRecordOut]


@router.get("/locations", response_model=list[LocationOut])
def scan_locations(db: Session = Depends(get_db), user: User = Depends(require_permission("scan-barcode"))):
    return catalog_service.list_active_locations(db)


@router.get("/product/{barcode}", response_model=ScannedProductOut)
def scan_product(barcode: str, db: Session = Depends(get_db), user: User = Depends(require_permission("scan-barcode"))):
    product = catalog_service.get_product_by_barcode(db, barcode)
    if not product:
        raise HTTPException(404, f"Product not found with barcode: {barcode}")
    records = ledger_store.list_stock(db, product_id=product.id, limit=None)
    return ScannedProductOut(
        id=product.id,
        sku=product.sku,
        barcode=product.barcode,
        name=product.name,
        min_stock=product.min_stock,
        total_quantity=ledger_store.total_on_hand(db, product.id),
        stock=[StockRecordOut.model_validate(r) for r in records],
    )


@router.post("/transaction", response_model=MovementOut)
def quick_transaction(
    data: ScanTransaction,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("scan-barcode")),
):
    if data.type not in (MovementType.IN, MovementType.OUT):
        raise InvalidRequest("Scan transactions must be 'in' or 'out'")
    return movement_engine.apply_movement(
        db,
        MovementCreate(
            product_id=data.product_id,
            location_id=data.location_id,
            type=data.type,
            quantity=data.quantity,
            notes=data.notes,
            reference_number=new_reference("SCAN"),
        ),
        user.id,
    )


@router.post("/bulk", response_model=BatchResult)
def bulk_scan(
    data: BulkScanRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("scan-barcode")),
):
    if any(item.type not in (MovementType.IN, MovementType.OUT) for item in data.scans):
        raise InvalidRequest("Bulk scans must be 'in' or 'out'")
    return batch_service.process_batch(db, data.scans, user.id)


@router.get("/history", response_model=list[MovementOut])
def scan_history(
    day: date | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_permission("scan-barcode")),
):
    """The current user's movements for one UTC day (default today)."""
    day = day or journal.utc_today()
    return journal.list_movements(db, user_id=user.id, date_from=day, date_to=day)
