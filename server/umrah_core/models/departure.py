"""Departure model definition."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, CheckConstraint, Date, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, enum_type

if TYPE_CHECKING:
    from .inventory import InventoryMovement


class DepartureStatus(str, Enum):
    """Departure status enumeration."""
    OPEN = "open"
    CLOSED = "closed"
    FULL = "full"
    DEPARTED = "departed"


class RoomType(str, Enum):
    """Room type enumeration, also used as a passenger room preference."""
    QUAD = "quad"
    TRIPLE = "triple"
    DOUBLE = "double"
    SINGLE = "single"

    @property
    def capacity(self) -> int:
        """Beds in a room of this type."""
        return ROOM_CAPACITY[self]


ROOM_CAPACITY = {
    RoomType.SINGLE: 1,
    RoomType.DOUBLE: 2,
    RoomType.TRIPLE: 3,
    RoomType.QUAD: 4,
}


class Departure(Base):
    """Departure entity owning the seat capacity of one package date."""

    __tablename__ = "departures"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Package reference (owned by the catalogue, opaque here)
    package_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Schedule
    departure_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    return_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Seat inventory
    quota: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[DepartureStatus] = mapped_column(
        enum_type(DepartureStatus),
        nullable=False,
        default=DepartureStatus.OPEN,
        index=True
    )

    # Per person prices by room type, whole currency units
    price_quad: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    price_triple: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    price_double: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    price_single: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="IDR")

    # Hotels (owned by the catalogue, opaque here)
    hotel_makkah_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hotel_madinah_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        server_default=func.now()
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("quota >= 1", name="ck_departure_quota_positive"),
        CheckConstraint("booked_count >= 0", name="ck_departure_booked_count_non_negative"),
        CheckConstraint("booked_count <= quota", name="ck_departure_booked_count_lte_quota"),
        CheckConstraint("length(currency) = 3", name="ck_departure_currency_length"),
    )

    # Relationships
    movements: Mapped[list["InventoryMovement"]] = relationship(
        "InventoryMovement",
        back_populates="departure",
        cascade="all, delete-orphan",
        order_by="InventoryMovement.created_at"
    )

    @property
    def available(self) -> int:
        """Seats still free on this departure."""
        return max(0, self.quota - self.booked_count)

    @property
    def hotel_ids(self) -> list[str]:
        """Hotels this departure stays in, if the catalogue named any."""
        return [h for h in (self.hotel_makkah_id, self.hotel_madinah_id) if h]

    def price_for(self, room_type: RoomType) -> int | None:
        """Per person price for a room type, None when not offered."""
        return getattr(self, f"price_{RoomType(room_type).value}")

    def __repr__(self) -> str:
        return (
            f"<Departure(id={self.id}, departure_date={self.departure_date}, "
            f"booked={self.booked_count}/{self.quota}, status={self.status})>"
        )
