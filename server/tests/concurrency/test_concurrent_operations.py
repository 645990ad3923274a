"""Concurrency tests racing real transactions against each other."""

import asyncio

import pytest

from conftest import HOTEL_MAKKAH, booking_request, departure_request, passenger
from umrah_core.core.database import with_timeout
from umrah_core.core.exceptions import (
    AlreadyPairedError,
    CapacityExceededError,
    PaymentAlreadyResolvedError,
    PersistenceConflictError,
    PersistenceTimeoutError,
    RoomFullError,
)
from umrah_core.models.booking import Gender
from umrah_core.models.departure import RoomType
from umrah_core.schemas.payment import SubmitPaymentRequest, VerifyPaymentRequest
from umrah_core.schemas.room import AssignRoomRequest, CreateRoomRequest, PairRequest
from umrah_core.services.booking_service import BookingService
from umrah_core.services.departure_service import DepartureService
from umrah_core.services.payment_service import PaymentService
from umrah_core.services.room_service import RoomService

pytestmark = pytest.mark.concurrency


async def gather_outcomes(*coroutines):
    """Run coroutines concurrently and split results from exceptions."""
    results = await asyncio.gather(*coroutines, return_exceptions=True)
    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    return successes, failures


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(session_factory):
    """Ten racers for five seats: exactly five win."""
    async with session_factory() as session:
        departure = await DepartureService(session).create_departure(departure_request(quota=5))

    async def reserve_one(n: int):
        async with session_factory() as session:
            return await DepartureService(session).reserve(departure.id, 1, f"racer-{n}", reason="race")

    successes, failures = await gather_outcomes(*(reserve_one(n) for n in range(10)))

    assert len(successes) == 5
    assert len(failures) == 5
    assert all(isinstance(f, CapacityExceededError) for f in failures)

    async with session_factory() as session:
        final = await DepartureService(session).get_departure_by_id_or_raise(departure.id, fresh=True)
        movements = await DepartureService(session).list_movements(departure.id)
    assert final.booked_count == 5
    assert final.status.value == "full"
    assert len(movements) == 5


@pytest.mark.asyncio
async def test_concurrent_bookings_never_oversell(session_factory):
    """Bookings racing for the last seats leave the quota exactly filled."""
    async with session_factory() as session:
        departure = await DepartureService(session).create_departure(departure_request(quota=3))

    async def book(n: int):
        async with session_factory() as session:
            request = booking_request(departure.id, passengers=[passenger(f"CUST-{n:03d}")])
            return await BookingService(session).create_booking(request, actor="staff-1")

    successes, failures = await gather_outcomes(*(book(n) for n in range(6)))

    assert len(successes) == 3
    assert all(isinstance(f, CapacityExceededError) for f in failures)
    assert len({b.booking_code for b in successes}) == 3

    async with session_factory() as session:
        final = await DepartureService(session).get_departure_by_id_or_raise(departure.id, fresh=True)
    assert final.booked_count == 3


@pytest.mark.asyncio
async def test_concurrent_verification_applies_once(session_factory):
    """Two finance staff approving the same payment credit the ledger once."""
    async with session_factory() as session:
        departure = await DepartureService(session).create_departure(departure_request())
        booking = await BookingService(session).create_booking(booking_request(departure.id), actor="staff-1")
        payment = await PaymentService(session).submit(
            SubmitPaymentRequest(booking_id=booking.id, amount=10_000_000), actor="customer"
        )

    async def verify(actor: str):
        async with session_factory() as session:
            return await PaymentService(session).verify(
                VerifyPaymentRequest(payment_id=payment.id, outcome="paid"), actor
            )

    successes, failures = await gather_outcomes(verify("finance-1"), verify("finance-2"))

    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], PaymentAlreadyResolvedError)

    async with session_factory() as session:
        final = await BookingService(session).get_booking_or_raise(booking.id)
    assert final.paid_amount == 10_000_000
    assert final.remaining_amount == booking.total_price - 10_000_000


@pytest.mark.asyncio
async def test_concurrent_pairing_has_one_winner(session_factory):
    """A passenger claimed by two pairings at once ends up with one roommate."""
    async with session_factory() as session:
        departure = await DepartureService(session).create_departure(departure_request())
        booking = await BookingService(session).create_booking(
            booking_request(
                departure.id,
                passengers=[
                    passenger("CUST-A", Gender.FEMALE),
                    passenger("CUST-B", Gender.FEMALE),
                    passenger("CUST-C", Gender.FEMALE),
                ],
            ),
            actor="staff-1",
        )
        ids = {p.customer_id: p.id for p in booking.passengers}

    async def pair(other: str):
        async with session_factory() as session:
            return await RoomService(session).pair(
                PairRequest(passenger_a_id=ids["CUST-A"], passenger_b_id=ids[other]), actor="staff-1"
            )

    successes, failures = await gather_outcomes(pair("CUST-B"), pair("CUST-C"))

    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], AlreadyPairedError)

    winner = successes[0][1]
    async with session_factory() as session:
        refreshed = await BookingService(session).get_booking_or_raise(booking.id)
    roommates = {p.id: p.roommate_id for p in refreshed.passengers}
    assert roommates[ids["CUST-A"]] == winner.id
    assert roommates[winner.id] == ids["CUST-A"]
    loser = ids["CUST-C"] if winner.id == ids["CUST-B"] else ids["CUST-B"]
    assert roommates[loser] is None


@pytest.mark.asyncio
async def test_concurrent_verification_of_two_payments_credits_both(session_factory):
    """Two different payments approved at once both land on the ledger."""
    async with session_factory() as session:
        departure = await DepartureService(session).create_departure(departure_request())
        booking = await BookingService(session).create_booking(booking_request(departure.id), actor="staff-1")
        service = PaymentService(session)
        first = await service.submit(SubmitPaymentRequest(booking_id=booking.id, amount=1_000_000), actor="customer")
        second = await service.submit(SubmitPaymentRequest(booking_id=booking.id, amount=2_000_000), actor="customer")
        booking_id, total_price = booking.id, booking.total_price

    async def verify(payment_id, actor: str):
        async with session_factory() as session:
            return await PaymentService(session).verify(
                VerifyPaymentRequest(payment_id=payment_id, outcome="paid"), actor
            )

    successes, failures = await gather_outcomes(
        verify(first.id, "finance-1"), verify(second.id, "finance-2")
    )

    assert failures == []
    assert len(successes) == 2

    async with session_factory() as session:
        final = await BookingService(session).get_booking_or_raise(booking_id)
    assert final.paid_amount == 3_000_000
    assert final.remaining_amount == total_price - 3_000_000
    assert final.paid_amount + final.remaining_amount == total_price


@pytest.mark.asyncio
async def test_concurrent_assignments_never_overfill_a_room(session_factory):
    """Two travellers racing for the only bed of a single room: one gets it."""
    async with session_factory() as session:
        departure = await DepartureService(session).create_departure(departure_request())
        for customer_id in ("CUST-001", "CUST-002"):
            await BookingService(session).create_booking(
                booking_request(departure.id, passengers=[passenger(customer_id, Gender.MALE)]),
                actor="staff-1",
            )
        room = await RoomService(session).create_room(
            CreateRoomRequest(
                departure_id=departure.id, hotel_id=HOTEL_MAKKAH, room_number="701", room_type=RoomType.SINGLE
            ),
            actor="staff-1",
        )
        room_id = room.id

    async def assign(customer_id: str):
        async with session_factory() as session:
            return await RoomService(session).assign(
                AssignRoomRequest(room_id=room_id, customer_id=customer_id), actor="staff-1"
            )

    successes, failures = await gather_outcomes(assign("CUST-001"), assign("CUST-002"))

    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], RoomFullError)

    async with session_factory() as session:
        final = await RoomService(session).get_room_or_raise(room_id)
    assert final.occupant_count == final.capacity == 1
    assert len(final.occupants) == 1
    assert final.occupants[0].customer_id == successes[0].occupants[0].customer_id


@pytest.mark.asyncio
async def test_stale_booking_write_is_a_conflict(session_factory):
    """A writer holding an outdated booking version is turned away with a retryable conflict."""
    async with session_factory() as session:
        departure = await DepartureService(session).create_departure(departure_request())
        booking = await BookingService(session).create_booking(booking_request(departure.id), actor="staff-1")
        booking_id = booking.id

    async with session_factory() as first, session_factory() as second:
        stale = await BookingService(first).get_booking_or_raise(booking_id)
        winner = await BookingService(second).get_booking_or_raise(booking_id)

        winner.notes = "updated by the second writer"
        await BookingService(second).commit_versioned(booking_id, "booking.update")

        stale.notes = "updated by the first writer"
        with pytest.raises(PersistenceConflictError) as exc_info:
            await BookingService(first).commit_versioned(booking_id, "booking.update")
        await first.rollback()

    assert exc_info.value.status_code == 409
    assert exc_info.value.retryable is True

    async with session_factory() as session:
        final = await BookingService(session).get_booking_or_raise(booking_id)
    assert final.notes == "updated by the second writer"


@pytest.mark.asyncio
async def test_slow_persistence_call_times_out():
    """A database call exceeding its limit becomes a retryable 503."""
    with pytest.raises(PersistenceTimeoutError) as exc_info:
        await with_timeout(asyncio.sleep(1), "booking.create", timeout=0.01)

    error = exc_info.value
    assert error.status_code == 503
    assert error.retryable is True
    assert error.headers["Retry-After"] == "1"
    assert error.problem_details["operation"] == "booking.create"
