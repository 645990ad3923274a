"""Agent commission service."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import with_timeout
from ..core.exceptions import ConflictError, InvalidStateTransitionError, NotFoundError
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.commission import Agent, AgentCommission, AgentWallet, CommissionStatus
from ..schemas.commission import CreateAgentRequest
from .ledger import commission_for

logger = logging.getLogger(__name__)


class CommissionService:
    """Service deriving and disbursing agent commissions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_agent(self, request: CreateAgentRequest) -> Agent:
        """
        Register an agent together with an empty wallet.

        Raises:
            ConflictError: If the agent code is already taken
        """
        agent = Agent(
            agent_code=request.agent_code,
            name=request.name,
            commission_rate=Decimal(request.commission_rate).quantize(Decimal("0.01")),
            is_active=request.is_active,
        )
        self.db.add(agent)

        try:
            await with_timeout(self.db.flush(), "agent.create")
            self.db.add(AgentWallet(agent_id=agent.id, balance=0))
            await with_timeout(self.db.commit(), "agent.create")
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(
                detail=f"Agent code '{request.agent_code}' is already registered",
                code="AGENT_CODE_TAKEN",
                slug="agent-code-taken",
                conflicting_resource={"agent_code": request.agent_code},
            ) from e

        logger.info(
            "Agent created successfully",
            extra={
                "agent_id": str(agent.id),
                "agent_code": agent.agent_code,
                "commission_rate": str(agent.commission_rate)
            }
        )
        return agent

    async def get_agent_or_raise(self, agent_id: UUID) -> Agent:
        """Get agent by ID or raise NotFoundError."""
        result = await with_timeout(
            self.db.execute(select(Agent).where(Agent.id == agent_id)),
            "agent.get"
        )
        agent = result.scalar_one_or_none()
        if agent is None:
            raise NotFoundError(resource_type="agent", resource_id=str(agent_id))
        return agent

    async def get_commission_or_raise(self, commission_id: UUID) -> AgentCommission:
        """Get commission by ID, bypassing any stale copy in the session."""
        stmt = (
            select(AgentCommission)
            .where(AgentCommission.id == commission_id)
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "commission.get")
        commission = result.scalar_one_or_none()
        if commission is None:
            raise NotFoundError(resource_type="commission", resource_id=str(commission_id))
        return commission

    async def get_commission_for_booking(self, booking_id: UUID) -> AgentCommission | None:
        stmt = (
            select(AgentCommission)
            .where(AgentCommission.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "commission.get_for_booking")
        return result.scalar_one_or_none()

    async def on_booking_created(self, booking: Booking) -> AgentCommission | None:
        """
        Record the commission for a new booking inside the booking transaction.

        The agent's current rate is copied onto the commission so later rate
        changes do not alter it.

        Raises:
            NotFoundError: If the booking names an unknown agent
        """
        if booking.agent_id is None:
            return None

        agent = await self.get_agent_or_raise(booking.agent_id)
        if not agent.is_active:
            logger.info(
                "No commission for inactive agent",
                extra={"agent_id": str(agent.id), "booking_id": str(booking.id)}
            )
            return None

        commission = AgentCommission(
            agent_id=agent.id,
            booking_id=booking.id,
            commission_amount=commission_for(booking.total_price, agent.commission_rate),
            commission_rate=agent.commission_rate,
            status=CommissionStatus.PENDING,
        )
        self.db.add(commission)

        metrics_collector.record_commission("created")
        logger.info(
            "Commission recorded",
            extra={
                "agent_id": str(agent.id),
                "booking_id": str(booking.id),
                "commission_amount": commission.commission_amount,
                "commission_rate": str(agent.commission_rate)
            }
        )
        return commission

    async def on_booking_cancelled(self, booking_id: UUID) -> bool:
        """
        Void a pending commission inside the cancellation transaction.

        Paid commissions are left untouched.

        Returns:
            True if a commission was voided
        """
        stmt = (
            update(AgentCommission)
            .where(
                AgentCommission.booking_id == booking_id,
                AgentCommission.status == CommissionStatus.PENDING,
            )
            .values(status=CommissionStatus.VOID.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await with_timeout(self.db.execute(stmt), "commission.void")
        voided = result.rowcount > 0

        if voided:
            metrics_collector.record_commission("voided")
            logger.info("Commission voided", extra={"booking_id": str(booking_id)})

        return voided

    async def mark_paid(self, commission_id: UUID, actor: str, notes: str | None = None) -> AgentCommission:
        """
        Disburse a pending commission and credit the agent wallet.

        Raises:
            NotFoundError: If commission not found
            InvalidStateTransitionError: If the commission is not pending
        """
        values: dict[str, Any] = {
            "status": CommissionStatus.PAID.value,
            "paid_at": datetime.utcnow(),
            "paid_by": actor,
            "updated_at": datetime.utcnow(),
        }
        if notes is not None:
            values["notes"] = notes

        stmt = (
            update(AgentCommission)
            .where(
                AgentCommission.id == commission_id,
                AgentCommission.status == CommissionStatus.PENDING,
            )
            .values(**values)
            .returning(AgentCommission.agent_id, AgentCommission.commission_amount)
            .execution_options(synchronize_session=False)
        )
        row = (await with_timeout(self.db.execute(stmt), "commission.mark_paid")).first()

        if row is None:
            commission = await self.get_commission_or_raise(commission_id)
            raise InvalidStateTransitionError(
                entity="commission",
                entity_id=str(commission_id),
                current_state=commission.status.value,
                attempted="mark paid",
            )

        agent_id, amount = row
        credit = (
            update(AgentWallet)
            .where(AgentWallet.agent_id == agent_id)
            .values(balance=AgentWallet.balance + amount, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        credited = await with_timeout(self.db.execute(credit), "commission.credit_wallet")
        if credited.rowcount == 0:
            self.db.add(AgentWallet(agent_id=agent_id, balance=amount))

        await with_timeout(self.db.commit(), "commission.mark_paid")

        metrics_collector.record_commission("paid")
        logger.info(
            "Commission paid",
            extra={
                "commission_id": str(commission_id),
                "agent_id": str(agent_id),
                "amount": amount,
                "actor": actor
            }
        )
        return await self.get_commission_or_raise(commission_id)

    async def list_commissions(
        self,
        agent_id: UUID,
        status: CommissionStatus | None = None
    ) -> list[AgentCommission]:
        """Commissions of an agent, newest first."""
        await self.get_agent_or_raise(agent_id)
        stmt = select(AgentCommission).where(AgentCommission.agent_id == agent_id)
        if status:
            stmt = stmt.where(AgentCommission.status == status)
        stmt = stmt.order_by(AgentCommission.created_at.desc()).execution_options(populate_existing=True)
        result = await with_timeout(self.db.execute(stmt), "commission.list")
        return list(result.scalars())

    async def get_agent_summary(self, agent_id: UUID) -> dict[str, Any]:
        """Pending and paid totals, void count and wallet balance of an agent."""
        await self.get_agent_or_raise(agent_id)

        stmt = (
            select(
                AgentCommission.status,
                func.count(AgentCommission.id),
                func.coalesce(func.sum(AgentCommission.commission_amount), 0),
            )
            .where(AgentCommission.agent_id == agent_id)
            .group_by(AgentCommission.status)
        )
        result = await with_timeout(self.db.execute(stmt), "commission.summary")
        totals = {CommissionStatus(status): (count, int(amount)) for status, count, amount in result.all()}

        wallet_result = await with_timeout(
            self.db.execute(select(AgentWallet.balance).where(AgentWallet.agent_id == agent_id)),
            "commission.summary"
        )
        balance = wallet_result.scalar_one_or_none() or 0

        pending_count, pending_total = totals.get(CommissionStatus.PENDING, (0, 0))
        paid_count, paid_total = totals.get(CommissionStatus.PAID, (0, 0))
        void_count, _ = totals.get(CommissionStatus.VOID, (0, 0))

        return {
            "agent_id": agent_id,
            "pending_total": pending_total,
            "paid_total": paid_total,
            "pending_count": pending_count,
            "paid_count": paid_count,
            "void_count": void_count,
            "wallet_balance": balance,
        }
