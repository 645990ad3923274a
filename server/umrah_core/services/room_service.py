"""Roommate pairing and room allocation service."""

import logging
from uuid import UUID

from sqlalchemy import Uuid, case, delete, literal, null, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.database import with_timeout
from ..core.exceptions import (
    AlreadyPairedError,
    ConflictError,
    DepartureMismatchError,
    GenderMismatchError,
    NotFoundError,
    RoomFullError,
    ValidationError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingPassenger, BookingStatus
from ..models.departure import RoomType
from ..models.room import RoomAssignment, RoomOccupant
from ..schemas.room import AssignRoomRequest, CreateRoomRequest, PairRequest
from .departure_service import DepartureService

logger = logging.getLogger(__name__)

# Booking statuses whose passengers still travel
ACTIVE_BOOKING_STATUSES = [
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.PROCESSING.value,
    BookingStatus.COMPLETED.value,
]

# Booking statuses whose passengers may still be paired
PAIRABLE_BOOKING_STATUSES = [BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value]


class RoomService:
    """Service pairing roommates and filling rooms under capacity and gender rules."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.departure_service = DepartureService(db)

    async def _get_passengers(self, passenger_ids: list[UUID]) -> dict[UUID, tuple[BookingPassenger, BookingStatus]]:
        stmt = (
            select(BookingPassenger, Booking.booking_status)
            .join(Booking, Booking.id == BookingPassenger.booking_id)
            .where(BookingPassenger.id.in_(passenger_ids))
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "room.get_passengers")
        return {passenger.id: (passenger, status) for passenger, status in result.all()}

    async def list_pairing_candidates(self, departure_id: UUID) -> list[BookingPassenger]:
        """Passengers of pending or confirmed bookings on a departure who prefer a double room."""
        await self.departure_service.get_departure_by_id_or_raise(departure_id)
        stmt = (
            select(BookingPassenger)
            .join(Booking, Booking.id == BookingPassenger.booking_id)
            .where(
                BookingPassenger.departure_id == departure_id,
                BookingPassenger.room_preference == RoomType.DOUBLE,
                Booking.booking_status.in_(PAIRABLE_BOOKING_STATUSES),
            )
            .order_by(BookingPassenger.gender, BookingPassenger.created_at)
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "room.list_candidates")
        return list(result.scalars())

    async def pair(self, request: PairRequest, actor: str) -> list[BookingPassenger]:
        """
        Make two passengers each other's roommate.

        Both rows are linked by one conditional UPDATE that only matches
        passengers without a roommate. Anything short of two rows means a
        concurrent pairing won, and nothing is kept.

        Raises:
            NotFoundError: If either passenger does not exist
            GenderMismatchError: If the passengers' genders differ
            ValidationError: If they travel on different departures, do not prefer
                a double room or their booking is no longer active
            AlreadyPairedError: If either passenger already has a roommate
        """
        a_id, b_id = request.passenger_a_id, request.passenger_b_id
        found = await self._get_passengers([a_id, b_id])
        for passenger_id in (a_id, b_id):
            if passenger_id not in found:
                raise NotFoundError(resource_type="passenger", resource_id=str(passenger_id))

        (a, a_status), (b, b_status) = found[a_id], found[b_id]

        if a.gender != b.gender:
            logger.warning(
                "Pairing rejected - gender mismatch",
                extra={"passenger_a_id": str(a_id), "passenger_b_id": str(b_id)}
            )
            raise GenderMismatchError(
                detail=f"Passengers {a_id} and {b_id} cannot share a room",
                conflicting_resource={
                    "passenger_a": {"id": str(a_id), "gender": a.gender.value},
                    "passenger_b": {"id": str(b_id), "gender": b.gender.value},
                },
            )

        if a.departure_id != b.departure_id:
            raise ValidationError(
                detail="Roommates must travel on the same departure",
                errors={"passenger_a_departure": str(a.departure_id), "passenger_b_departure": str(b.departure_id)},
            )

        not_double = [str(p.id) for p in (a, b) if p.room_preference != RoomType.DOUBLE]
        if not_double:
            raise ValidationError(
                detail="Only passengers preferring a double room can be paired",
                errors={"passenger_ids": not_double},
            )

        inactive = [str(p.id) for p, s in ((a, a_status), (b, b_status)) if s.value not in PAIRABLE_BOOKING_STATUSES]
        if inactive:
            raise ValidationError(
                detail="Passengers of cancelled, refunded or finished bookings cannot be paired",
                errors={"passenger_ids": inactive},
            )

        stmt = (
            update(BookingPassenger)
            .where(BookingPassenger.id.in_([a_id, b_id]), BookingPassenger.roommate_id.is_(None))
            .values(
                roommate_id=case(
                    (BookingPassenger.id == a_id, literal(b_id, Uuid)),
                    else_=literal(a_id, Uuid),
                ),
                room_number=request.room_number,
            )
            .execution_options(synchronize_session=False)
        )
        result = await with_timeout(self.db.execute(stmt), "room.pair")

        if result.rowcount != 2:
            await self.db.rollback()
            current = await self._get_passengers([a_id, b_id])
            paired = [str(pid) for pid, (p, _) in current.items() if p.roommate_id is not None]
            metrics_collector.record_room_event("pair_rejected")
            logger.warning(
                "Pairing rejected - already paired",
                extra={"passenger_a_id": str(a_id), "passenger_b_id": str(b_id), "paired": paired}
            )
            raise AlreadyPairedError(paired or [str(a_id), str(b_id)])

        await with_timeout(self.db.commit(), "room.pair")

        metrics_collector.record_room_event("paired")
        logger.info(
            "Passengers paired",
            extra={
                "passenger_a_id": str(a_id),
                "passenger_b_id": str(b_id),
                "room_number": request.room_number,
                "actor": actor
            }
        )
        current = await self._get_passengers([a_id, b_id])
        return [current[a_id][0], current[b_id][0]]

    async def unpair(self, passenger_id: UUID, actor: str) -> list[BookingPassenger]:
        """
        Dissolve a pair on both sides. Unpairing an unpaired passenger is a no-op.

        Returns:
            The passenger and, if there was one, the former roommate
        """
        found = await self._get_passengers([passenger_id])
        if passenger_id not in found:
            raise NotFoundError(resource_type="passenger", resource_id=str(passenger_id))
        passenger = found[passenger_id][0]
        roommate_id = passenger.roommate_id

        stmt = (
            update(BookingPassenger)
            .where(or_(BookingPassenger.id == passenger_id, BookingPassenger.roommate_id == passenger_id))
            .values(roommate_id=None, room_number=None)
            .execution_options(synchronize_session=False)
        )
        await with_timeout(self.db.execute(stmt), "room.unpair")
        await with_timeout(self.db.commit(), "room.unpair")

        if roommate_id:
            metrics_collector.record_room_event("unpaired")
        logger.info(
            "Passenger unpaired",
            extra={
                "passenger_id": str(passenger_id),
                "roommate_id": str(roommate_id) if roommate_id else None,
                "actor": actor
            }
        )
        ids = [passenger_id] + ([roommate_id] if roommate_id else [])
        current = await self._get_passengers(ids)
        return [current[pid][0] for pid in ids if pid in current]

    async def create_room(self, request: CreateRoomRequest, actor: str) -> RoomAssignment:
        """
        Add an empty room to a departure.

        Raises:
            NotFoundError: If departure not found
            ValidationError: If the hotel is not one the departure stays in
            ConflictError: If the room number already exists in that hotel
        """
        departure = await self.departure_service.get_departure_by_id_or_raise(request.departure_id)
        if departure.hotel_ids and request.hotel_id not in departure.hotel_ids:
            raise ValidationError(
                detail=f"Hotel {request.hotel_id} is not used by departure {departure.id}",
                errors={"hotel_id": request.hotel_id, "departure_hotels": departure.hotel_ids},
            )

        room = RoomAssignment(
            departure_id=departure.id,
            hotel_id=request.hotel_id,
            room_number=request.room_number,
            room_type=request.room_type,
            capacity=request.room_type.capacity,
            floor=request.floor,
            occupant_count=0,
            gender=None,
        )
        self.db.add(room)
        try:
            await with_timeout(self.db.commit(), "room.create")
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(
                detail=f"Room {request.room_number} already exists in hotel {request.hotel_id} for this departure",
                code="ROOM_NUMBER_TAKEN",
                slug="room-number-taken",
                conflicting_resource={"hotel_id": request.hotel_id, "room_number": request.room_number},
            ) from e

        logger.info(
            "Room created",
            extra={
                "room_id": str(room.id),
                "departure_id": str(departure.id),
                "hotel_id": room.hotel_id,
                "room_number": room.room_number,
                "capacity": room.capacity,
                "actor": actor
            }
        )
        return await self.get_room_or_raise(room.id)

    async def get_room_or_raise(self, room_id: UUID) -> RoomAssignment:
        """Get a room with its occupants, always reloaded from the database."""
        stmt = (
            select(RoomAssignment)
            .options(selectinload(RoomAssignment.occupants))
            .where(RoomAssignment.id == room_id)
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "room.get")
        room = result.scalar_one_or_none()
        if room is None:
            raise NotFoundError(resource_type="room", resource_id=str(room_id))
        return room

    async def assign(self, request: AssignRoomRequest, actor: str) -> RoomAssignment:
        """
        Place a customer in a room.

        The bed is taken by one conditional UPDATE that checks free capacity and
        the room's gender together. The room is only re-read to explain a
        rejection.

        Raises:
            NotFoundError: If room not found
            DepartureMismatchError: If the customer does not travel on the room's departure
            RoomFullError: If the room has no free bed
            GenderMismatchError: If the room is occupied by the other gender
            ConflictError: If the customer already has a room in this hotel
        """
        room = await self.get_room_or_raise(request.room_id)

        if request.bed_number is not None and request.bed_number > room.capacity:
            raise ValidationError(
                detail=f"Room {room.room_number} only has {room.capacity} beds",
                errors={"bed_number": request.bed_number},
            )

        stmt = (
            select(BookingPassenger)
            .join(Booking, Booking.id == BookingPassenger.booking_id)
            .where(
                BookingPassenger.departure_id == room.departure_id,
                BookingPassenger.customer_id == request.customer_id,
                Booking.booking_status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .limit(1)
        )
        passenger = (await with_timeout(self.db.execute(stmt), "room.assign")).scalar_one_or_none()
        if passenger is None:
            raise DepartureMismatchError(
                detail=f"Customer {request.customer_id} has no active booking on departure {room.departure_id}",
                conflicting_resource={"customer_id": request.customer_id, "departure_id": str(room.departure_id)},
            )

        gender = passenger.gender
        take_bed = (
            update(RoomAssignment)
            .where(
                RoomAssignment.id == room.id,
                RoomAssignment.occupant_count < RoomAssignment.capacity,
                or_(RoomAssignment.gender.is_(None), RoomAssignment.gender == gender),
            )
            .values(occupant_count=RoomAssignment.occupant_count + 1, gender=gender)
            .execution_options(synchronize_session=False)
        )
        result = await with_timeout(self.db.execute(take_bed), "room.assign")

        if result.rowcount == 0:
            current = await self.get_room_or_raise(room.id)
            metrics_collector.record_room_event("assign_rejected")
            if current.occupant_count >= current.capacity:
                raise RoomFullError(str(room.id), current.capacity)
            raise GenderMismatchError(
                detail=f"Room {current.room_number} is occupied by {current.gender.value} guests",
                conflicting_resource={
                    "room_id": str(room.id),
                    "room_gender": current.gender.value if current.gender else None,
                    "customer_gender": gender.value,
                },
            )

        self.db.add(RoomOccupant(
            room_assignment_id=room.id,
            departure_id=room.departure_id,
            hotel_id=room.hotel_id,
            customer_id=request.customer_id,
            gender=gender,
            bed_number=request.bed_number,
        ))
        try:
            await with_timeout(self.db.commit(), "room.assign")
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(
                detail=f"Customer {request.customer_id} already has a room in hotel {room.hotel_id}",
                code="ALREADY_ASSIGNED",
                slug="already-assigned",
                conflicting_resource={"customer_id": request.customer_id, "hotel_id": room.hotel_id},
            ) from e

        metrics_collector.record_room_event("assigned")
        logger.info(
            "Customer assigned to room",
            extra={
                "room_id": str(room.id),
                "customer_id": request.customer_id,
                "gender": gender.value,
                "actor": actor
            }
        )
        return await self.get_room_or_raise(room.id)

    async def unassign(self, room_id: UUID, customer_id: str, actor: str) -> RoomAssignment:
        """
        Remove a customer from a room. The room's gender clears once it is empty.

        Raises:
            NotFoundError: If the customer is not in this room
        """
        removed = await with_timeout(
            self.db.execute(
                delete(RoomOccupant)
                .where(RoomOccupant.room_assignment_id == room_id, RoomOccupant.customer_id == customer_id)
                .execution_options(synchronize_session=False)
            ),
            "room.unassign"
        )
        if removed.rowcount == 0:
            await self.db.rollback()
            raise NotFoundError(
                resource_type="room_occupant",
                detail=f"Customer {customer_id} is not in room {room_id}",
            )

        free_bed = (
            update(RoomAssignment)
            .where(RoomAssignment.id == room_id, RoomAssignment.occupant_count > 0)
            .values(
                occupant_count=RoomAssignment.occupant_count - 1,
                gender=case((RoomAssignment.occupant_count <= 1, null()), else_=RoomAssignment.gender),
            )
            .execution_options(synchronize_session=False)
        )
        await with_timeout(self.db.execute(free_bed), "room.unassign")
        await with_timeout(self.db.commit(), "room.unassign")

        metrics_collector.record_room_event("unassigned")
        logger.info(
            "Customer removed from room",
            extra={"room_id": str(room_id), "customer_id": customer_id, "actor": actor}
        )
        return await self.get_room_or_raise(room_id)

    async def release_beds(self, booking_id: UUID, departure_id: UUID) -> int:
        """
        Vacate the beds held by a booking's travellers, inside the current transaction.

        A traveller who still has another active booking on the same departure
        keeps their bed. Rooms left empty lose their gender.

        Returns:
            Number of beds freed
        """
        travellers = select(BookingPassenger.customer_id).where(BookingPassenger.booking_id == booking_id)
        still_booked = (
            select(BookingPassenger.customer_id)
            .join(Booking, Booking.id == BookingPassenger.booking_id)
            .where(
                BookingPassenger.departure_id == departure_id,
                Booking.id != booking_id,
                Booking.booking_status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )
        result = await with_timeout(
            self.db.execute(
                delete(RoomOccupant)
                .where(
                    RoomOccupant.departure_id == departure_id,
                    RoomOccupant.customer_id.in_(travellers),
                    RoomOccupant.customer_id.not_in(still_booked),
                )
                .returning(RoomOccupant.room_assignment_id)
                .execution_options(synchronize_session=False)
            ),
            "room.release_beds"
        )
        freed: dict[UUID, int] = {}
        for room_id in result.scalars():
            freed[room_id] = freed.get(room_id, 0) + 1

        for room_id, beds in freed.items():
            free_beds = (
                update(RoomAssignment)
                .where(RoomAssignment.id == room_id, RoomAssignment.occupant_count >= beds)
                .values(
                    occupant_count=RoomAssignment.occupant_count - beds,
                    gender=case((RoomAssignment.occupant_count <= beds, null()), else_=RoomAssignment.gender),
                )
                .execution_options(synchronize_session=False)
            )
            await with_timeout(self.db.execute(free_beds), "room.release_beds")

        total = sum(freed.values())
        if total:
            metrics_collector.record_room_event("beds_released")
            logger.info(
                "Room beds released",
                extra={"booking_id": str(booking_id), "departure_id": str(departure_id), "beds": total}
            )
        return total

    async def delete_room(self, room_id: UUID, actor: str) -> None:
        """
        Delete an empty room.

        Raises:
            NotFoundError: If room not found
            ConflictError: If the room still has occupants
        """
        result = await with_timeout(
            self.db.execute(
                delete(RoomAssignment)
                .where(RoomAssignment.id == room_id, RoomAssignment.occupant_count == 0)
                .execution_options(synchronize_session=False)
            ),
            "room.delete"
        )
        if result.rowcount == 0:
            room = await self.get_room_or_raise(room_id)
            raise ConflictError(
                detail=f"Room {room.room_number} still has {room.occupant_count} occupant(s)",
                code="ROOM_NOT_EMPTY",
                slug="room-not-empty",
                conflicting_resource={"room_id": str(room_id), "occupant_count": room.occupant_count},
            )

        await with_timeout(self.db.commit(), "room.delete")
        logger.info("Room deleted", extra={"room_id": str(room_id), "actor": actor})

    async def get_rooming_list(self, departure_id: UUID, hotel_id: str | None = None) -> list[RoomAssignment]:
        """Rooms of a departure with their occupants, by hotel and room number."""
        await self.departure_service.get_departure_by_id_or_raise(departure_id)
        stmt = (
            select(RoomAssignment)
            .options(selectinload(RoomAssignment.occupants))
            .where(RoomAssignment.departure_id == departure_id)
            .execution_options(populate_existing=True)
        )
        if hotel_id:
            stmt = stmt.where(RoomAssignment.hotel_id == hotel_id)
        stmt = stmt.order_by(RoomAssignment.hotel_id, RoomAssignment.room_number)
        result = await with_timeout(self.db.execute(stmt), "room.rooming_list")
        return list(result.scalars())
