"""Unit tests for agents and commissions."""

from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import booking_request, passenger
from umrah_core.core.exceptions import ConflictError, InvalidStateTransitionError, NotFoundError
from umrah_core.models.commission import CommissionStatus
from umrah_core.schemas.commission import CreateAgentRequest
from umrah_core.services.booking_service import BookingService
from umrah_core.services.commission_service import CommissionService


class TestCommissionService:
    """Test cases for CommissionService."""

    @pytest.mark.asyncio
    async def test_create_agent_with_empty_wallet(self, test_session, agent):
        summary = await CommissionService(test_session).get_agent_summary(agent.id)

        assert agent.agent_code == "AG-001"
        assert agent.commission_rate == Decimal("2.50")
        assert summary["wallet_balance"] == 0
        assert summary["pending_count"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_agent_code(self, test_session, agent):
        with pytest.raises(ConflictError) as exc_info:
            await CommissionService(test_session).create_agent(
                CreateAgentRequest(agent_code="AG-001", name="Other Agent", commission_rate=Decimal("1"))
            )

        assert exc_info.value.code == "AGENT_CODE_TAKEN"

    @pytest.mark.asyncio
    async def test_unknown_agent(self, test_session):
        with pytest.raises(NotFoundError):
            await CommissionService(test_session).get_agent_or_raise(uuid4())

    @pytest.mark.asyncio
    async def test_inactive_agent_earns_nothing(self, test_session, departure):
        service = CommissionService(test_session)
        inactive = await service.create_agent(
            CreateAgentRequest(agent_code="AG-OLD", name="Retired", commission_rate=Decimal("5"), is_active=False)
        )

        booking = await BookingService(test_session).create_booking(
            booking_request(departure.id, agent_id=inactive.id), actor="staff-1"
        )

        assert await service.get_commission_for_booking(booking.id) is None

    @pytest.mark.asyncio
    async def test_rate_is_frozen_on_commission(self, test_session, departure, agent):
        booking = await BookingService(test_session).create_booking(
            booking_request(departure.id, agent_id=agent.id), actor="staff-1"
        )
        agent.commission_rate = Decimal("10.00")
        await test_session.commit()

        commission = await CommissionService(test_session).get_commission_for_booking(booking.id)

        assert commission.commission_rate == Decimal("2.50")
        assert commission.commission_amount == 800_000

    @pytest.mark.asyncio
    async def test_mark_paid_credits_wallet_once(self, test_session, departure, agent):
        booking = await BookingService(test_session).create_booking(
            booking_request(departure.id, agent_id=agent.id), actor="staff-1"
        )
        service = CommissionService(test_session)
        commission = await service.get_commission_for_booking(booking.id)

        paid = await service.mark_paid(commission.id, actor="finance-1", notes="batch 2026-10")

        assert paid.status == CommissionStatus.PAID
        assert paid.paid_by == "finance-1"
        assert paid.paid_at is not None

        with pytest.raises(InvalidStateTransitionError):
            await service.mark_paid(commission.id, actor="finance-2")

        summary = await service.get_agent_summary(agent.id)
        assert summary["wallet_balance"] == 800_000
        assert summary["paid_total"] == 800_000
        assert summary["paid_count"] == 1

    @pytest.mark.asyncio
    async def test_cancel_after_payout_keeps_paid_commission(self, test_session, departure, agent):
        booking_service = BookingService(test_session)
        booking = await booking_service.create_booking(
            booking_request(departure.id, agent_id=agent.id), actor="staff-1"
        )
        service = CommissionService(test_session)
        commission = await service.get_commission_for_booking(booking.id)
        await service.mark_paid(commission.id, actor="finance-1")

        await booking_service.cancel(booking.id, actor="staff-1")

        commission = await service.get_commission_for_booking(booking.id)
        assert commission.status == CommissionStatus.PAID

    @pytest.mark.asyncio
    async def test_voided_commission_cannot_be_paid(self, test_session, departure, agent):
        booking_service = BookingService(test_session)
        booking = await booking_service.create_booking(
            booking_request(departure.id, agent_id=agent.id), actor="staff-1"
        )
        await booking_service.cancel(booking.id, actor="staff-1")
        service = CommissionService(test_session)
        commission = await service.get_commission_for_booking(booking.id)

        with pytest.raises(InvalidStateTransitionError):
            await service.mark_paid(commission.id, actor="finance-1")

    @pytest.mark.asyncio
    async def test_summary_and_listing(self, test_session, departure, agent):
        booking_service = BookingService(test_session)
        kept = await booking_service.create_booking(
            booking_request(departure.id, agent_id=agent.id), actor="staff-1"
        )
        dropped = await booking_service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-002"), passenger("CUST-003")], agent_id=agent.id),
            actor="staff-1",
        )
        await booking_service.cancel(dropped.id, actor="staff-1")
        service = CommissionService(test_session)

        summary = await service.get_agent_summary(agent.id)
        pending = await service.list_commissions(agent.id, CommissionStatus.PENDING)
        everything = await service.list_commissions(agent.id)

        assert summary["pending_total"] == 800_000
        assert summary["pending_count"] == 1
        assert summary["void_count"] == 1
        assert [c.booking_id for c in pending] == [kept.id]
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_mark_unknown_commission(self, test_session):
        with pytest.raises(NotFoundError):
            await CommissionService(test_session).mark_paid(uuid4(), actor="finance-1")
