"""Unit tests for the booking lifecycle."""

from uuid import uuid4

import pytest

from conftest import HOTEL_MAKKAH, PRICE_DOUBLE, PRICE_QUAD, booking_request, passenger
from umrah_core.core.exceptions import (
    CapacityExceededError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from umrah_core.models.booking import BookingStatus, Gender, PaymentStatus
from umrah_core.models.commission import CommissionStatus
from umrah_core.models.departure import DepartureStatus, RoomType
from umrah_core.schemas.booking import ListBookingsRequest
from umrah_core.schemas.room import AssignRoomRequest, CreateRoomRequest, PairRequest
from umrah_core.services.booking_service import BookingService
from umrah_core.services.commission_service import CommissionService
from umrah_core.services.departure_service import DepartureService
from umrah_core.services.room_service import RoomService


class TestCreateBooking:
    """Booking creation, pricing and seat reservation."""

    @pytest.mark.asyncio
    async def test_create_booking_prices_and_reserves(self, test_session, departure):
        service = BookingService(test_session)

        booking = await service.create_booking(
            booking_request(
                departure.id,
                passengers=[passenger("CUST-001"), passenger("CUST-002")],
                discount_amount=1_000_000,
                addons_price=250_000,
            ),
            actor="staff-1",
        )

        assert booking.booking_code.startswith("UMR")
        assert booking.total_pax == 2
        assert booking.base_price == 2 * PRICE_DOUBLE
        assert booking.total_price == 2 * PRICE_DOUBLE - 1_000_000 + 250_000
        assert booking.paid_amount == 0
        assert booking.remaining_amount == booking.total_price
        assert booking.booking_status == BookingStatus.PENDING
        assert booking.payment_status == PaymentStatus.PENDING
        assert booking.version == 1

        availability = await DepartureService(test_session).get_availability(departure.id)
        assert availability["booked"] == 2

    @pytest.mark.asyncio
    async def test_first_passenger_becomes_main_passenger(self, test_session, departure):
        booking = await BookingService(test_session).create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-001"), passenger("CUST-002")]),
            actor="staff-1",
        )

        mains = [p.customer_id for p in booking.passengers if p.is_main_passenger]
        assert mains == ["CUST-001"]
        assert all(p.room_preference == RoomType.DOUBLE for p in booking.passengers)
        assert all(p.departure_id == departure.id for p in booking.passengers)

    @pytest.mark.asyncio
    async def test_explicit_main_passenger_and_room_preference(self, test_session, departure):
        booking = await BookingService(test_session).create_booking(
            booking_request(
                departure.id,
                passengers=[
                    passenger("CUST-001", room_preference=RoomType.QUAD),
                    passenger("CUST-002", is_main_passenger=True),
                ],
                room_type=RoomType.QUAD,
            ),
            actor="staff-1",
        )

        by_customer = {p.customer_id: p for p in booking.passengers}
        assert by_customer["CUST-002"].is_main_passenger
        assert not by_customer["CUST-001"].is_main_passenger
        assert booking.base_price == 2 * PRICE_QUAD

    @pytest.mark.asyncio
    async def test_unpriced_room_type_is_rejected(self, test_session, departure):
        with pytest.raises(ValidationError):
            await BookingService(test_session).create_booking(
                booking_request(departure.id, room_type=RoomType.SINGLE), actor="staff-1"
            )

    @pytest.mark.asyncio
    async def test_unknown_departure(self, test_session):
        with pytest.raises(NotFoundError):
            await BookingService(test_session).create_booking(booking_request(uuid4()), actor="staff-1")

    @pytest.mark.asyncio
    async def test_more_passengers_than_seats(self, test_session, departure):
        departure_id = departure.id
        passengers = [passenger(f"CUST-{i:03d}") for i in range(11)]

        with pytest.raises(CapacityExceededError):
            await BookingService(test_session).create_booking(
                booking_request(departure_id, passengers=passengers), actor="staff-1"
            )

        availability = await DepartureService(test_session).get_availability(departure_id)
        assert availability["booked"] == 0

    @pytest.mark.asyncio
    async def test_unknown_agent_rolls_back_reservation(self, test_session, departure):
        departure_id = departure.id

        with pytest.raises(NotFoundError):
            await BookingService(test_session).create_booking(
                booking_request(departure_id, agent_id=uuid4()), actor="staff-1"
            )

        availability = await DepartureService(test_session).get_availability(departure_id)
        assert availability["booked"] == 0
        bookings, _ = await BookingService(test_session).list_bookings(ListBookingsRequest())
        assert bookings == []

    @pytest.mark.asyncio
    async def test_fully_discounted_booking_is_confirmed(self, test_session, departure):
        booking = await BookingService(test_session).create_booking(
            booking_request(departure.id, discount_amount=PRICE_DOUBLE), actor="staff-1"
        )

        assert booking.total_price == 0
        assert booking.payment_status == PaymentStatus.PAID
        assert booking.booking_status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_agent_booking_records_commission(self, test_session, departure, agent):
        booking = await BookingService(test_session).create_booking(
            booking_request(departure.id, agent_id=agent.id), actor="staff-1"
        )

        commission = await CommissionService(test_session).get_commission_for_booking(booking.id)
        assert commission is not None
        assert commission.commission_amount == 800_000
        assert commission.status == CommissionStatus.PENDING


class TestBookingLifecycle:
    """Staff lifecycle commands and their side effects."""

    @pytest.mark.asyncio
    async def test_confirm_processing_complete(self, test_session, departure):
        service = BookingService(test_session)
        booking = await service.create_booking(booking_request(departure.id), actor="staff-1")

        booking = await service.confirm(booking.id, actor="staff-1")
        assert booking.booking_status == BookingStatus.CONFIRMED

        booking = await service.start_processing(booking.id, actor="staff-1", reason="visa submitted")
        assert booking.booking_status == BookingStatus.PROCESSING
        assert "visa submitted" in booking.notes

        booking = await service.complete(booking.id, actor="staff-1")
        assert booking.booking_status == BookingStatus.COMPLETED
        assert booking.version == 4

    @pytest.mark.asyncio
    async def test_complete_pending_booking_is_rejected(self, test_session, departure):
        service = BookingService(test_session)
        booking = await service.create_booking(booking_request(departure.id), actor="staff-1")
        booking_id = booking.id

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            await service.complete(booking_id, actor="staff-1")

        assert exc_info.value.problem_details["conflicting_resource"]["current_state"] == "pending"
        booking = await service.get_booking_or_raise(booking_id)
        assert booking.booking_status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_command_on_unknown_booking(self, test_session):
        with pytest.raises(NotFoundError):
            await BookingService(test_session).confirm(uuid4(), actor="staff-1")

    @pytest.mark.asyncio
    async def test_cancel_releases_seats_and_voids_commission(self, test_session, departure, agent):
        service = BookingService(test_session)
        booking = await service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-001"), passenger("CUST-002")], agent_id=agent.id),
            actor="staff-1",
        )

        cancelled = await service.cancel(booking.id, actor="staff-1", reason="customer request")

        assert cancelled.booking_status == BookingStatus.CANCELLED
        availability = await DepartureService(test_session).get_availability(departure.id)
        assert availability["booked"] == 0
        commission = await CommissionService(test_session).get_commission_for_booking(booking.id)
        assert commission.status == CommissionStatus.VOID

    @pytest.mark.asyncio
    async def test_cancel_reopens_full_departure(self, test_session, departure):
        departure_service = DepartureService(test_session)
        await departure_service.reserve(departure.id, 9, actor="staff-1")
        service = BookingService(test_session)
        booking = await service.create_booking(booking_request(departure.id), actor="staff-1")
        assert (await departure_service.get_availability(departure.id))["status"] == DepartureStatus.FULL

        await service.cancel(booking.id, actor="staff-1")

        availability = await departure_service.get_availability(departure.id)
        assert availability["status"] == DepartureStatus.OPEN
        assert availability["available"] == 1

    @pytest.mark.asyncio
    async def test_cancel_unpairs_roommates(self, test_session, departure):
        service = BookingService(test_session)
        first = await service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-001", Gender.FEMALE)]), actor="staff-1"
        )
        second = await service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-002", Gender.FEMALE)]), actor="staff-1"
        )
        a, b = first.passengers[0], second.passengers[0]
        await RoomService(test_session).pair(
            PairRequest(passenger_a_id=a.id, passenger_b_id=b.id, room_number="1204"), actor="staff-1"
        )

        await service.cancel(first.id, actor="staff-1")

        second = await service.get_booking_or_raise(second.id)
        assert second.passengers[0].roommate_id is None
        assert second.passengers[0].room_number is None

    @pytest.mark.asyncio
    async def test_cancel_frees_room_beds(self, test_session, departure):
        service = BookingService(test_session)
        rooms = RoomService(test_session)
        first = await service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-001", Gender.FEMALE)]), actor="staff-1"
        )
        second = await service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-002", Gender.FEMALE)]), actor="staff-1"
        )
        room = await rooms.create_room(
            CreateRoomRequest(departure_id=departure.id, hotel_id=HOTEL_MAKKAH, room_number="1204",
                              room_type=RoomType.DOUBLE),
            actor="staff-1",
        )
        await rooms.assign(AssignRoomRequest(room_id=room.id, customer_id="CUST-001"), actor="staff-1")
        await rooms.assign(AssignRoomRequest(room_id=room.id, customer_id="CUST-002"), actor="staff-1")

        await service.cancel(first.id, actor="staff-1")

        room = await rooms.get_room_or_raise(room.id)
        assert room.occupant_count == 1
        assert room.gender == Gender.FEMALE
        assert [o.customer_id for o in room.occupants] == ["CUST-002"]

        await service.cancel(second.id, actor="staff-1")

        room = await rooms.get_room_or_raise(room.id)
        assert room.occupant_count == 0
        assert room.gender is None
        assert room.occupants == []

    @pytest.mark.asyncio
    async def test_cancelled_booking_cannot_be_cancelled_again(self, test_session, departure):
        service = BookingService(test_session)
        departure_id = departure.id
        booking = await service.create_booking(booking_request(departure.id), actor="staff-1")
        await service.cancel(booking.id, actor="staff-1")

        with pytest.raises(InvalidStateTransitionError):
            await service.cancel(booking.id, actor="staff-1")

        availability = await DepartureService(test_session).get_availability(departure_id)
        assert availability["booked"] == 0

    @pytest.mark.asyncio
    async def test_refund_confirmed_booking(self, test_session, departure):
        service = BookingService(test_session)
        booking = await service.create_booking(booking_request(departure.id), actor="staff-1")
        await service.confirm(booking.id, actor="staff-1")

        refunded = await service.refund(booking.id, actor="staff-1", reason="medical")

        assert refunded.booking_status == BookingStatus.REFUNDED
        assert refunded.payment_status == PaymentStatus.REFUNDED
        availability = await DepartureService(test_session).get_availability(departure.id)
        assert availability["booked"] == 0

    @pytest.mark.asyncio
    async def test_refund_after_departure_keeps_seats(self, test_session, departure):
        service = BookingService(test_session)
        booking = await service.create_booking(booking_request(departure.id), actor="staff-1")
        await service.confirm(booking.id, actor="staff-1")
        await DepartureService(test_session).set_status(departure.id, DepartureStatus.DEPARTED, actor="staff-1")

        refunded = await service.refund(booking.id, actor="staff-1")

        assert refunded.booking_status == BookingStatus.REFUNDED
        availability = await DepartureService(test_session).get_availability(departure.id)
        assert availability["booked"] == 1

    @pytest.mark.asyncio
    async def test_refund_frees_beds_before_departure_only(self, test_session, departure):
        service = BookingService(test_session)
        rooms = RoomService(test_session)
        room = await rooms.create_room(
            CreateRoomRequest(departure_id=departure.id, hotel_id=HOTEL_MAKKAH, room_number="1204",
                              room_type=RoomType.DOUBLE),
            actor="staff-1",
        )
        before = await service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-001")]), actor="staff-1"
        )
        after = await service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-002")]), actor="staff-1"
        )
        for booking in (before, after):
            await service.confirm(booking.id, actor="staff-1")
        await rooms.assign(AssignRoomRequest(room_id=room.id, customer_id="CUST-001"), actor="staff-1")
        await rooms.assign(AssignRoomRequest(room_id=room.id, customer_id="CUST-002"), actor="staff-1")

        await service.refund(before.id, actor="staff-1")
        room = await rooms.get_room_or_raise(room.id)
        assert [o.customer_id for o in room.occupants] == ["CUST-002"]

        await DepartureService(test_session).set_status(departure.id, DepartureStatus.DEPARTED, actor="staff-1")
        await service.refund(after.id, actor="staff-1")

        room = await rooms.get_room_or_raise(room.id)
        assert room.occupant_count == 1
        assert [o.customer_id for o in room.occupants] == ["CUST-002"]

    @pytest.mark.asyncio
    async def test_refund_pending_booking_is_rejected(self, test_session, departure):
        service = BookingService(test_session)
        booking = await service.create_booking(booking_request(departure.id), actor="staff-1")

        with pytest.raises(InvalidStateTransitionError):
            await service.refund(booking.id, actor="staff-1")


class TestBookingQueries:
    """Listing and outstanding balance queries."""

    @pytest.mark.asyncio
    async def test_list_bookings_by_customer_and_status(self, test_session, departure):
        service = BookingService(test_session)
        mine = await service.create_booking(booking_request(departure.id), actor="staff-1")
        other = await service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-900")]), actor="staff-1"
        )
        await service.cancel(other.id, actor="staff-1")

        by_customer, _ = await service.list_bookings(ListBookingsRequest(customer_id="CUST-001"))
        assert [b.id for b in by_customer] == [mine.id]

        cancelled, _ = await service.list_bookings(ListBookingsRequest(booking_status=BookingStatus.CANCELLED))
        assert [b.id for b in cancelled] == [other.id]

    @pytest.mark.asyncio
    async def test_list_bookings_pagination(self, test_session, departure):
        service = BookingService(test_session)
        for i in range(3):
            await service.create_booking(
                booking_request(departure.id, passengers=[passenger(f"CUST-{i:03d}")]), actor="staff-1"
            )

        first_page, cursor = await service.list_bookings(ListBookingsRequest(limit=2))
        second_page, last_cursor = await service.list_bookings(ListBookingsRequest(limit=2, cursor=cursor))

        assert len(first_page) == 2
        assert len(second_page) == 1
        assert last_cursor is None
        assert {b.id for b in first_page}.isdisjoint({b.id for b in second_page})

    @pytest.mark.asyncio
    async def test_list_outstanding_window(self, test_session, departure):
        service = BookingService(test_session)
        booking = await service.create_booking(booking_request(departure.id), actor="staff-1")
        settled = await service.create_booking(
            booking_request(departure.id, passengers=[passenger("CUST-002")], discount_amount=PRICE_DOUBLE),
            actor="staff-1",
        )

        inside = await service.list_outstanding(60)
        outside = await service.list_outstanding(30)

        assert [b.id for b, _ in inside] == [booking.id]
        assert settled.id not in [b.id for b, _ in inside]
        assert outside == []
