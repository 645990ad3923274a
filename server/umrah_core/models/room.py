"""Room assignment and occupant model definitions."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, enum_type
from .booking import Gender
from .departure import RoomType


class RoomAssignment(Base):
    """A hotel room allocated to a departure."""

    __tablename__ = "room_assignments"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    hotel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    room_number: Mapped[str] = mapped_column(String(20), nullable=False)
    room_type: Mapped[RoomType] = mapped_column(enum_type(RoomType), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    floor: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Occupancy, maintained by conditional updates only
    occupant_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gender: Mapped[Gender | None] = mapped_column(enum_type(Gender), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("capacity BETWEEN 1 AND 4", name="ck_room_capacity_range"),
        CheckConstraint("occupant_count >= 0", name="ck_room_occupant_count_non_negative"),
        CheckConstraint("occupant_count <= capacity", name="ck_room_occupant_count_lte_capacity"),
        UniqueConstraint("departure_id", "hotel_id", "room_number", name="uq_room_departure_hotel_number"),
    )

    occupants: Mapped[list["RoomOccupant"]] = relationship(
        "RoomOccupant",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="RoomOccupant.created_at"
    )

    def __repr__(self) -> str:
        return (
            f"<RoomAssignment(id={self.id}, hotel='{self.hotel_id}', room='{self.room_number}', "
            f"occupancy={self.occupant_count}/{self.capacity}, gender={self.gender})>"
        )


class RoomOccupant(Base):
    """A customer sleeping in a room."""

    __tablename__ = "room_occupants"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    room_assignment_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("room_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    departure_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    hotel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    gender: Mapped[Gender] = mapped_column(enum_type(Gender), nullable=False)
    bed_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now()
    )

    __table_args__ = (
        # A customer sleeps in one room per hotel per departure
        UniqueConstraint("departure_id", "hotel_id", "customer_id", name="uq_occupant_departure_hotel_customer"),
    )

    room: Mapped["RoomAssignment"] = relationship("RoomAssignment", back_populates="occupants")

    def __repr__(self) -> str:
        return (
            f"<RoomOccupant(room_assignment_id={self.room_assignment_id}, "
            f"customer_id='{self.customer_id}', gender={self.gender})>"
        )
