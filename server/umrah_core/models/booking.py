"""Booking and BookingPassenger model definitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Boolean, CheckConstraint, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, enum_type
from .departure import RoomType

if TYPE_CHECKING:
    from .payment import Payment


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REFUNDED)


class PaymentStatus(str, Enum):
    """Aggregate payment status of a booking."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class Gender(str, Enum):
    """Passenger gender."""
    MALE = "male"
    FEMALE = "female"


class PassengerType(str, Enum):
    """Passenger age category."""
    ADULT = "adult"
    CHILD = "child"
    INFANT = "infant"


class Booking(Base):
    """Booking entity holding reserved seats and the payment ledger totals."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_code: Mapped[str] = mapped_column(String(16), nullable=False, unique=True, index=True)

    # Foreign key to departure
    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    agent_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("agents.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Booking details
    room_type: Mapped[RoomType] = mapped_column(enum_type(RoomType), nullable=False)
    total_pax: Mapped[int] = mapped_column(Integer, nullable=False)

    # Pricing, whole currency units
    base_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    addons_price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_price: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Ledger totals
    paid_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    remaining_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    booking_status: Mapped[BookingStatus] = mapped_column(
        enum_type(BookingStatus),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Optimistic concurrency counter
    version: Mapped[int] = mapped_column(Integer, nullable=False)

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
        CheckConstraint("total_pax > 0", name="ck_booking_total_pax_positive"),
        CheckConstraint("total_price >= 0", name="ck_booking_total_price_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_booking_paid_amount_non_negative"),
        CheckConstraint("remaining_amount >= 0", name="ck_booking_remaining_amount_non_negative"),
        CheckConstraint("length(booking_code) > 0", name="ck_booking_code_not_empty"),
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    passengers: Mapped[list["BookingPassenger"]] = relationship(
        "BookingPassenger",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingPassenger.created_at"
    )
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="booking",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, code='{self.booking_code}', pax={self.total_pax}, "
            f"status={self.booking_status}/{self.payment_status}, "
            f"paid={self.paid_amount}/{self.total_price})>"
        )


class BookingPassenger(Base):
    """A traveller on a booking, the unit the roommate pairing works on."""

    __tablename__ = "booking_passengers"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Departure (denormalized for pairing and rooming queries)
    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gender: Mapped[Gender] = mapped_column(enum_type(Gender), nullable=False)
    passenger_type: Mapped[PassengerType] = mapped_column(
        enum_type(PassengerType),
        nullable=False,
        default=PassengerType.ADULT
    )
    room_preference: Mapped[RoomType] = mapped_column(enum_type(RoomType), nullable=False)
    is_main_passenger: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Roommate pairing
    roommate_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("booking_passengers.id", ondelete="SET NULL"),
        nullable=True
    )
    room_number: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=datetime.utcnow,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("roommate_id IS NULL OR roommate_id != id", name="ck_passenger_not_own_roommate"),
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="passengers")

    def __repr__(self) -> str:
        return (
            f"<BookingPassenger(id={self.id}, customer_id='{self.customer_id}', "
            f"gender={self.gender}, roommate_id={self.roommate_id})>"
        )
