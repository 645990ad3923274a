"""Property-based tests for ledger, lifecycle and seat inventory invariants."""

from contextlib import asynccontextmanager
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import settings as hypothesis_settings
from hypothesis import strategies as st
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conftest import TEST_DATABASE_URL, departure_request
from umrah_core.core.database import Base
from umrah_core.core.exceptions import CapacityExceededError, InvalidStateTransitionError
from umrah_core.models.booking import BookingStatus, PaymentStatus
from umrah_core.models.departure import DepartureStatus
from umrah_core.services.departure_service import DepartureService
from umrah_core.services.ledger import (
    apply_payment,
    commission_for,
    derive_payment_status,
    price_booking,
    remaining_for,
)
from umrah_core.services.state_machine import BookingEvent, allowed_events, resolve_transition

pytestmark = pytest.mark.property

# Strategies for generating test data
totals = st.integers(min_value=0, max_value=500_000_000)
amounts = st.integers(min_value=1, max_value=100_000_000)
rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("100"), places=2)
seat_ops = st.lists(
    st.tuples(st.sampled_from(["reserve", "release"]), st.integers(min_value=1, max_value=6)),
    min_size=1,
    max_size=15,
)


@given(total=totals, payments=st.lists(amounts, max_size=10))
def test_ledger_balances(total, payments):
    """Paid plus remaining always covers the total and remaining is never negative."""
    paid = 0
    for amount in payments:
        before = paid
        ledger = apply_payment(total, paid, amount)
        paid = ledger.paid_amount

        assert paid == before + amount
        assert ledger.remaining_amount >= 0
        assert ledger.remaining_amount == remaining_for(total, paid)
        assert ledger.fully_paid == (paid >= total)

    assert paid == sum(payments)


@given(total=totals, paid=st.integers(min_value=0, max_value=600_000_000))
def test_payment_status_follows_ledger(total, paid):
    status = derive_payment_status(total, paid)

    if paid >= total:
        assert status == PaymentStatus.PAID
    elif paid == 0:
        assert status == PaymentStatus.PENDING
    else:
        assert status == PaymentStatus.PARTIAL


@given(
    unit_price=st.integers(min_value=0, max_value=100_000_000),
    pax=st.integers(min_value=1, max_value=50),
    discount=st.integers(min_value=0, max_value=1_000_000_000),
    addons=st.integers(min_value=0, max_value=100_000_000),
)
def test_price_never_negative(unit_price, pax, discount, addons):
    base_price, total_price = price_booking(unit_price, pax, discount, addons)

    assert base_price == unit_price * pax
    assert total_price >= 0
    assert total_price <= base_price + addons


@given(price=st.integers(min_value=0, max_value=2_000_000_000), rate=rates)
def test_commission_bounded_by_price(price, rate):
    """A commission is within half a unit of the exact percentage and never exceeds the price."""
    commission = commission_for(price, rate)
    exact = Decimal(price) * rate / 100

    assert 0 <= commission <= price
    assert abs(Decimal(commission) - exact) <= Decimal("0.5")


@given(events=st.lists(st.sampled_from(list(BookingEvent)), max_size=12))
def test_lifecycle_only_follows_table(events):
    """Any event sequence keeps a booking inside the table; terminal states accept nothing."""
    state = BookingStatus.PENDING
    for event in events:
        if event in allowed_events(state):
            state = resolve_transition("b-1", state, event).next_state
        else:
            with pytest.raises(InvalidStateTransitionError):
                resolve_transition("b-1", state, event)

        if state in (BookingStatus.CANCELLED, BookingStatus.REFUNDED):
            assert allowed_events(state) == []


@asynccontextmanager
async def fresh_session():
    """A throwaway database per generated example."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool, connect_args={"check_same_thread": False})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        async with async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)() as session:
            yield session
    finally:
        await engine.dispose()


@pytest.mark.asyncio
@hypothesis_settings(max_examples=25, deadline=None)
@given(quota=st.integers(min_value=1, max_value=20), operations=seat_ops)
async def test_booked_count_stays_within_quota(quota, operations):
    """Booked seats never exceed the quota or drop below zero, and full means no seats left."""
    async with fresh_session() as session:
        service = DepartureService(session)
        departure = await service.create_departure(departure_request(quota=quota))
        departure_id = departure.id
        expected = 0

        for kind, pax in operations:
            if kind == "reserve":
                if expected + pax <= quota:
                    await service.reserve(departure_id, pax, "prop", reason="property")
                    expected += pax
                else:
                    with pytest.raises(CapacityExceededError):
                        await service.reserve(departure_id, pax, "prop", reason="property")
                    await session.rollback()
            else:
                await service.release(departure_id, pax, "prop", reason="property")
                expected = max(0, expected - pax)

            current = await service.get_departure_by_id_or_raise(departure_id, fresh=True)
            assert current.booked_count == expected
            assert 0 <= current.booked_count <= current.quota
            assert (current.status == DepartureStatus.FULL) == (current.booked_count == quota)
