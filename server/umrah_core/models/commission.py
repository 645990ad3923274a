"""Agent, wallet and commission model definitions."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Boolean, CheckConstraint, ForeignKey, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, enum_type


class CommissionStatus(str, Enum):
    """Commission status enumeration."""
    PENDING = "pending"
    PAID = "paid"
    VOID = "void"


class Agent(Base):
    """Sales agent earning a percentage of the bookings they bring in."""

    __tablename__ = "agents"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    agent_code: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

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
        CheckConstraint("commission_rate >= 0", name="ck_agent_commission_rate_non_negative"),
        CheckConstraint("commission_rate <= 100", name="ck_agent_commission_rate_max"),
        CheckConstraint("length(agent_code) > 0", name="ck_agent_code_not_empty"),
    )

    def __repr__(self) -> str:
        return f"<Agent(id={self.id}, code='{self.agent_code}', rate={self.commission_rate})>"


class AgentWallet(Base):
    """Running balance of commission disbursed to an agent."""

    __tablename__ = "agent_wallets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    agent_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_agent_wallet_balance_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<AgentWallet(agent_id={self.agent_id}, balance={self.balance})>"


class AgentCommission(Base):
    """Commission owed to an agent for one booking."""

    __tablename__ = "agent_commissions"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    agent_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("agents.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )

    commission_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Rate at booking time, later agent rate changes do not apply
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    status: Mapped[CommissionStatus] = mapped_column(
        enum_type(CommissionStatus),
        nullable=False,
        default=CommissionStatus.PENDING,
        index=True
    )

    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

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
        CheckConstraint("commission_amount >= 0", name="ck_commission_amount_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<AgentCommission(id={self.id}, agent_id={self.agent_id}, booking_id={self.booking_id}, "
            f"amount={self.commission_amount}, status={self.status})>"
        )
