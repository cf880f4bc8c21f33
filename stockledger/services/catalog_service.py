from sqlalchemy.orm import Session, joinedload

from stockledger.models.catalog import Location, Product


def get_product(db: Session, product_id: str) -> Product | None:
    return db.query(Product).filter(Product.id == product_id).first()


def get_product_by_barcode(db: Session, barcode: str) -> Product | None:
    """Only active products can be scanned."""
    return db.query(Product).filter(Product.barcode == barcode, Product.is_active == True).first()  # noqa: E712


def get_location(db: Session, location_id: str) -> Location | None:
    return (
        db.query(Location)
        .options(joinedload(Location.warehouse))
        .filter(Location.id == location_id)
        .first()
    )


def list_active_locations(db: Session) -> list[Location]:
    return (
        db.query(Location)
        .options(joinedload(Location.warehouse))
        .filter(Location.is_active == True)  # noqa: E712
        .order_by(Location.code)
        .all()
    )
