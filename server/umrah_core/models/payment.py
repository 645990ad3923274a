"""Payment, savings plan and plan payment model definitions."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, enum_type

if TYPE_CHECKING:
    from .booking import Booking


class PaymentRecordStatus(str, Enum):
    """Status of a single payment submission."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PlanType(str, Enum):
    """Savings plans save toward a package, installment plans pay one off."""
    SAVINGS = "savings"
    INSTALLMENT = "installment"


class PlanStatus(str, Enum):
    """Savings or installment plan status."""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Payment(Base):
    """A customer payment submitted against a booking."""

    __tablename__ = "payments"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    payment_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[PaymentRecordStatus] = mapped_column(
        enum_type(PaymentRecordStatus),
        nullable=False,
        default=PaymentRecordStatus.PENDING,
        index=True
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    proof_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Verification
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

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

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="payments")

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, code='{self.payment_code}', booking_id={self.booking_id}, "
            f"amount={self.amount}, status={self.status})>"
        )


class SavingsPlan(Base):
    """A savings or installment plan with its own payment ledger."""

    __tablename__ = "savings_plans"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    package_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    plan_type: Mapped[PlanType] = mapped_column(enum_type(PlanType), nullable=False, default=PlanType.SAVINGS)

    # Ledger totals, whole currency units
    target_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    paid_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    remaining_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Schedule
    monthly_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    tenor_months: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[PlanStatus] = mapped_column(
        enum_type(PlanStatus),
        nullable=False,
        default=PlanStatus.ACTIVE,
        index=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

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

    __table_args__ = (
        CheckConstraint("target_amount > 0", name="ck_plan_target_amount_positive"),
        CheckConstraint("paid_amount >= 0", name="ck_plan_paid_amount_non_negative"),
        CheckConstraint("remaining_amount >= 0", name="ck_plan_remaining_amount_non_negative"),
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    payments: Mapped[list["PlanPayment"]] = relationship(
        "PlanPayment",
        back_populates="plan",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<SavingsPlan(id={self.id}, type={self.plan_type}, "
            f"paid={self.paid_amount}/{self.target_amount}, status={self.status})>"
        )


class PlanPayment(Base):
    """A payment submitted against a savings or installment plan."""

    __tablename__ = "plan_payments"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    plan_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("savings_plans.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    payment_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[PaymentRecordStatus] = mapped_column(
        enum_type(PaymentRecordStatus),
        nullable=False,
        default=PaymentRecordStatus.PENDING,
        index=True
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    proof_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

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

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_plan_payment_amount_positive"),
    )

    # Relationships
    plan: Mapped["SavingsPlan"] = relationship("SavingsPlan", back_populates="payments")

    def __repr__(self) -> str:
        return (
            f"<PlanPayment(id={self.id}, code='{self.payment_code}', plan_id={self.plan_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
