from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.database import Base
from stockledger.models.catalog import Location, Product
from stockledger.models.user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MovementType(str, PyEnum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"  # one leg of a two-location transfer


class MovementRecord(Base):
    """Immutable audit entry for one applied quantity change."""

    __tablename__ = "movement_records"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        CheckConstraint("new_quantity >= 0", name="ck_movement_new_quantity_non_negative"),
    )

    # Integer key doubles as the journal sequence (application order)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(
        String, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id: Mapped[str] = mapped_column(
        String, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(
        Enum(MovementType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # magnitude, sign is new - previous
    previous_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    new_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    # naive UTC; journal day filters compare against UTC dates
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)

    product: Mapped["Product"] = relationship("Product")
    location: Mapped["Location"] = relationship("Location")
    user: Mapped["User"] = relationship("User")

    @property
    def delta(self) -> int:
        return self.new_quantity - self.previous_quantity
