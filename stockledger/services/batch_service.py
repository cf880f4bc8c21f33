import logging

from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.models.catalog import Product
from stockledger.schemas.stock import (
    BatchItemResult,
    BatchResult,
    BatchSummary,
    BulkScanItem,
    MovementCreate,
    MovementOut,
)
from stockledger.services import catalog_service, movement_engine
from stockledger.services.errors import InvalidRequest, LedgerError, NotFound
from stockledger.services.reference import new_reference

logger = logging.getLogger(__name__)


def _resolve_product(db: Session, item: BulkScanItem) -> Product:
    if item.product_id:
        product = catalog_service.get_product(db, item.product_id)
        if product is None:
            raise NotFound("product", item.product_id)
        return product
    if item.barcode:
        product = catalog_service.get_product_by_barcode(db, item.barcode)
        if product is None:
            raise NotFound("product", item.barcode)
        return product
    raise InvalidRequest("Each scan needs a product_id or a barcode")


def process_batch(db: Session, items: list[BulkScanItem], actor_id: str) -> BatchResult:
    if not items:
        raise InvalidRequest("At least one scan is required")
    if len(items) > settings.BULK_MAX_ITEMS:
        raise InvalidRequest(f"A batch may contain at most {settings.BULK_MAX_ITEMS} scans")

    reference = new_reference("BULK")
    results: list[BatchItemResult] = []

    for index, item in enumerate(items):
        try:
            product = _resolve_product(db, item)
            movement = movement_engine.apply_movement(
                db,
                MovementCreate(
                    product_id=product.id,
                    location_id=item.location_id,
                    type=item.type,
                    quantity=item.quantity,
                    notes=item.notes,
                    reference_number=f"{reference}-{index + 1}",
                ),
                actor_id,
            )
        except LedgerError as e:
            results.append(BatchItemResult(
                index=index,
                barcode=item.barcode,
                product_id=item.product_id,
                success=False,
                message=e.message,
                code=e.code,
            ))
            continue

        results.append(BatchItemResult(
            index=index,
            barcode=item.barcode,
            product_id=product.id,
            product_name=product.name,
            success=True,
            message="Processed successfully",
            movement=MovementOut.model_validate(movement),
        ))

    succeeded = sum(1 for r in results if r.success)
    summary = BatchSummary(total=len(items), succeeded=succeeded, failed=len(items) - succeeded)
    logger.info("Batch %s: %d/%d scans applied", reference, summary.succeeded, summary.total)
    return BatchResult(reference_number=reference, results=results, summary=summary)
