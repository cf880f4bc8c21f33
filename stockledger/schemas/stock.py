from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from stockledger.models.movement import MovementType


# --- Requests ---

class MovementCreate(BaseModel):
    product_id: str
    location_id: str
    type: MovementType
    quantity: int  # magnitude requested, must be > 0
    delta: int | None = None  # signed change, transfer legs only
    notes: str | None = None
    reference_number: str | None = None


class ScanTransaction(BaseModel):
    product_id: str
    location_id: str
    type: MovementType  # in / out
    quantity: int
    notes: str | None = None


class TransferCreate(BaseModel):
    product_id: str
    from_location_id: str
    to_location_id: str
    quantity: int
    notes: str | None = None


class BulkScanItem(BaseModel):
    # Either product_id or barcode identifies the product
    product_id: str = ""
    barcode: str = ""
    location_id: str
    type: MovementType
    quantity: int
    notes: str | None = None


class BulkScanRequest(BaseModel):
    scans: list[BulkScanItem]


# --- Responses ---

class MovementOut(BaseModel):
    id: int
    product_id: str
    location_id: str
    user_id: str
    type: MovementType
    quantity: int
    previous_quantity: int
    new_quantity: int
    delta: int
    notes: str | None = None
    reference_number: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class StockRecordOut(BaseModel):
    id: str
    product_id: str
    location_id: str
    quantity: int
    unit_cost: Decimal
    expiry_date: date | None = None
    batch_number: str | None = None
    is_expired: bool = False
    is_near_expiry: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class TransferResult(BaseModel):
    reference_number: str
    source: MovementOut
    destination: MovementOut


class BatchItemResult(BaseModel):
    index: int
    barcode: str = ""
    product_id: str = ""
    product_name: str = ""
    success: bool
    message: str
    code: str = ""
    movement: MovementOut | None = None


class BatchSummary(BaseModel):
    total: int
    succeeded: int
    failed: int


class BatchResult(BaseModel):
    reference_number: str
    results: list[BatchItemResult]
    summary: BatchSummary


class ReconcileOut(BaseModel):
    product_id: str
    location_id: str
    quantity: int
    replayed_quantity: int | None = None
    movement_count: int
    consistent: bool
    error: str | None = None
