"""Inventory movement model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, enum_type

if TYPE_CHECKING:
    from .departure import Departure


class MovementKind(str, Enum):
    """Kind of capacity movement."""
    RESERVE = "reserve"
    RELEASE = "release"
    QUOTA_ADJUST = "quota_adjust"


class InventoryMovement(Base):
    """Audit trail row for every change to a departure's seat inventory."""

    __tablename__ = "inventory_movements"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign key to departure
    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Movement details
    kind: Mapped[MovementKind] = mapped_column(enum_type(MovementKind), nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)  # Seats or quota, signed
    booking_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)

    # Snapshots for the audit trail
    quota_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quota_after: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_before: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_after: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now(),
        index=True
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("delta != 0", name="ck_inventory_movement_delta_nonzero"),
        CheckConstraint("length(reason) > 0", name="ck_inventory_movement_reason_not_empty"),
        CheckConstraint("length(actor) > 0", name="ck_inventory_movement_actor_not_empty"),
        CheckConstraint("booked_after <= quota_after", name="ck_inventory_movement_booked_lte_quota"),
    )

    # Relationships
    departure: Mapped["Departure"] = relationship("Departure", back_populates="movements")

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement(id={self.id}, departure_id={self.departure_id}, "
            f"kind={self.kind}, delta={self.delta}, actor='{self.actor}')>"
        )
