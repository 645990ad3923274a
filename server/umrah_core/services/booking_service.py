"""Booking lifecycle service."""

import logging
import secrets
import string
from datetime import date, datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..core.concurrency import retry_on_conflict
from ..core.database import with_timeout
from ..core.exceptions import NotFoundError, PersistenceConflictError, ValidationError
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingPassenger, BookingStatus, PaymentStatus
from ..models.departure import Departure, DepartureStatus
from ..schemas.booking import CreateBookingRequest, ListBookingsRequest
from .commission_service import CommissionService
from .departure_service import DepartureService
from .ledger import derive_payment_status, price_booking
from .room_service import RoomService
from .state_machine import BookingEvent, SideEffect, Transition, resolve_transition

logger = logging.getLogger(__name__)

BOOKING_CODE_PREFIX = "UMR"

# Statuses that still owe money and still travel
OPEN_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.PROCESSING)


class BookingService:
    """Service for booking lifecycle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.departure_service = DepartureService(db)
        self.commission_service = CommissionService(db)
        self.room_service = RoomService(db)

    def _generate_booking_code(self, length: int = 8) -> str:
        """Generate a random booking code."""
        alphabet = string.ascii_uppercase + string.digits
        return BOOKING_CODE_PREFIX + ''.join(secrets.choice(alphabet) for _ in range(length))

    async def _booking_code_taken(self, code: str) -> bool:
        result = await with_timeout(
            self.db.execute(select(Booking.id).where(Booking.booking_code == code)),
            "booking.code_check"
        )
        return result.first() is not None

    async def commit_versioned(self, booking_id: UUID, operation: str) -> None:
        """Commit, turning a lost optimistic version race into PersistenceConflictError."""
        try:
            await with_timeout(self.db.commit(), operation)
        except StaleDataError as e:
            logger.info(
                "Booking version conflict",
                extra={"booking_id": str(booking_id), "operation": operation}
            )
            raise PersistenceConflictError("booking", str(booking_id)) from e

    async def create_booking(self, request: CreateBookingRequest, actor: str) -> Booking:
        """
        Reserve seats and create a pending booking in one transaction.

        Args:
            request: Booking creation request
            actor: Who is creating the booking

        Returns:
            Created booking with its passengers

        Raises:
            NotFoundError: If the departure or agent does not exist
            ValidationError: If the departure does not sell the requested room type
            DepartureClosedError: If the departure is not open
            CapacityExceededError: If not enough seats are free
        """
        departure = await self.departure_service.get_departure_by_id_or_raise(request.departure_id)
        unit_price = departure.price_for(request.room_type)
        if unit_price is None:
            raise ValidationError(
                detail=f"Departure {departure.id} has no price for room type '{request.room_type.value}'",
                errors={"room_type": request.room_type.value},
            )

        total_pax = len(request.passengers)
        base_price, total_price = price_booking(
            unit_price, total_pax, request.discount_amount, request.addons_price
        )
        booking_id = uuid4()

        try:
            await self.departure_service.reserve(
                departure.id,
                total_pax,
                actor=actor,
                booking_id=booking_id,
                reason="booking created",
                commit=False,
            )

            booking_code = self._generate_booking_code()
            while await self._booking_code_taken(booking_code):
                booking_code = self._generate_booking_code()

            payment_status = derive_payment_status(total_price, 0)
            booking = Booking(
                id=booking_id,
                booking_code=booking_code,
                departure_id=departure.id,
                customer_id=request.customer_id,
                agent_id=request.agent_id,
                room_type=request.room_type,
                total_pax=total_pax,
                base_price=base_price,
                discount_amount=request.discount_amount,
                addons_price=request.addons_price,
                total_price=total_price,
                paid_amount=0,
                remaining_amount=total_price,
                booking_status=BookingStatus.PENDING,
                payment_status=payment_status,
                notes=request.notes,
            )
            self.db.add(booking)

            has_main = any(p.is_main_passenger for p in request.passengers)
            for index, passenger in enumerate(request.passengers):
                self.db.add(BookingPassenger(
                    booking_id=booking_id,
                    departure_id=departure.id,
                    customer_id=passenger.customer_id,
                    full_name=passenger.full_name,
                    gender=passenger.gender,
                    passenger_type=passenger.passenger_type,
                    room_preference=passenger.room_preference or request.room_type,
                    is_main_passenger=passenger.is_main_passenger or (not has_main and index == 0),
                ))

            # A fully discounted booking is settled on creation
            if payment_status == PaymentStatus.PAID:
                await self.apply_event(booking, BookingEvent.PAYMENT_COMPLETED, actor)

            await self.commission_service.on_booking_created(booking)
            await with_timeout(self.db.commit(), "booking.create")
        except Exception:
            await self.db.rollback()
            raise

        metrics_collector.record_booking_transition("create", booking.booking_status.value)
        logger.info(
            "Booking created successfully",
            extra={
                "booking_id": str(booking_id),
                "booking_code": booking_code,
                "departure_id": str(departure.id),
                "total_pax": total_pax,
                "total_price": total_price,
                "agent_id": str(request.agent_id) if request.agent_id else None,
                "actor": actor
            }
        )

        return await self.get_booking_or_raise(booking_id)

    async def get_booking_by_id(self, booking_id: UUID, lock: bool = False) -> Booking | None:
        """
        Get booking by ID with its passengers, always reloaded from the database.

        Args:
            booking_id: Booking ID to search for
            lock: Take a row lock for the rest of the transaction
        """
        stmt = (
            select(Booking)
            .options(selectinload(Booking.passengers))
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update(of=Booking)
        result = await with_timeout(self.db.execute(stmt), "booking.get")
        return result.scalar_one_or_none()

    async def get_booking_or_raise(self, booking_id: UUID, lock: bool = False) -> Booking:
        """
        Get booking by ID or raise NotFoundError.

        Raises:
            NotFoundError: If booking not found
        """
        booking = await self.get_booking_by_id(booking_id, lock=lock)
        if not booking:
            logger.warning("Booking not found", extra={"booking_id": str(booking_id)})
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def list_bookings(self, request: ListBookingsRequest) -> tuple[list[Booking], str | None]:
        """
        List bookings by departure, customer or status.

        Returns:
            Tuple of (bookings, next_cursor)
        """
        stmt = select(Booking).options(selectinload(Booking.passengers))

        conditions = []
        if request.departure_id:
            conditions.append(Booking.departure_id == request.departure_id)
        if request.customer_id:
            conditions.append(Booking.customer_id == request.customer_id)
        if request.booking_status:
            conditions.append(Booking.booking_status == request.booking_status)
        if conditions:
            stmt = stmt.where(and_(*conditions))

        if request.cursor:
            try:
                stmt = stmt.where(Booking.id > UUID(request.cursor))
            except (ValueError, TypeError):
                logger.warning("Invalid cursor provided in booking list", extra={"cursor": request.cursor})

        stmt = stmt.order_by(Booking.id).limit(request.limit + 1).execution_options(populate_existing=True)
        result = await with_timeout(self.db.execute(stmt), "booking.list")
        bookings = list(result.scalars())

        has_next_page = len(bookings) > request.limit
        if has_next_page:
            bookings = bookings[:-1]

        return bookings, (str(bookings[-1].id) if has_next_page and bookings else None)

    async def list_outstanding(
        self,
        days_until_departure: int,
        today: date | None = None
    ) -> list[tuple[Booking, Departure]]:
        """
        Bookings with a remaining balance whose departure is inside the window.

        Returns:
            (booking, departure) pairs ordered by departure date
        """
        start = today or datetime.utcnow().date()
        stmt = (
            select(Booking, Departure)
            .join(Departure, Departure.id == Booking.departure_id)
            .options(selectinload(Booking.passengers))
            .where(
                Booking.remaining_amount > 0,
                Booking.booking_status.in_([s.value for s in OPEN_STATUSES]),
                Departure.departure_date >= start,
                Departure.departure_date <= start + timedelta(days=days_until_departure),
                Departure.status != DepartureStatus.DEPARTED,
            )
            .order_by(Departure.departure_date, Booking.booking_code)
            .execution_options(populate_existing=True)
        )
        result = await with_timeout(self.db.execute(stmt), "booking.list_outstanding")
        return [(booking, departure) for booking, departure in result.all()]

    async def _unpair_passengers(self, booking_id: UUID) -> int:
        """Clear roommate links of a booking's passengers on both sides."""
        passenger_ids = select(BookingPassenger.id).where(BookingPassenger.booking_id == booking_id)
        stmt = (
            update(BookingPassenger)
            .where(
                or_(
                    BookingPassenger.id.in_(passenger_ids),
                    BookingPassenger.roommate_id.in_(passenger_ids),
                ),
                or_(BookingPassenger.roommate_id.is_not(None), BookingPassenger.room_number.is_not(None)),
            )
            .values(roommate_id=None, room_number=None)
            .execution_options(synchronize_session=False)
        )
        result = await with_timeout(self.db.execute(stmt), "booking.unpair")
        if result.rowcount:
            metrics_collector.record_room_event("unpaired")
        return result.rowcount

    async def apply_event(
        self,
        booking: Booking,
        event: BookingEvent,
        actor: str,
        reason: str | None = None
    ) -> Transition:
        """
        Apply a lifecycle event and its side effects inside the current transaction.

        Raises:
            InvalidStateTransitionError: If the event is not allowed in the booking's state
        """
        previous = booking.booking_status
        transition = resolve_transition(str(booking.id), previous, event)
        audit_reason = f"booking {event.value}" + (f": {reason}" if reason else "")

        for effect in transition.side_effects:
            if effect == SideEffect.RELEASE_SEATS:
                await self.departure_service.release(
                    booking.departure_id, booking.total_pax, actor,
                    booking_id=booking.id, reason=audit_reason, commit=False
                )
            elif effect == SideEffect.RELEASE_SEATS_UNLESS_DEPARTED:
                departure = await self.departure_service.get_departure_by_id_or_raise(
                    booking.departure_id, fresh=True
                )
                if departure.status != DepartureStatus.DEPARTED:
                    await self.departure_service.release(
                        booking.departure_id, booking.total_pax, actor,
                        booking_id=booking.id, reason=audit_reason, commit=False
                    )
            elif effect == SideEffect.VOID_COMMISSION:
                await self.commission_service.on_booking_cancelled(booking.id)
            elif effect == SideEffect.UNPAIR_ROOMMATES:
                await self._unpair_passengers(booking.id)
            elif effect == SideEffect.RELEASE_BEDS:
                await self.room_service.release_beds(booking.id, booking.departure_id)
            elif effect == SideEffect.RELEASE_BEDS_UNLESS_DEPARTED:
                departure = await self.departure_service.get_departure_by_id_or_raise(
                    booking.departure_id, fresh=True
                )
                if departure.status != DepartureStatus.DEPARTED:
                    await self.room_service.release_beds(booking.id, booking.departure_id)
            elif effect == SideEffect.MARK_PAYMENT_REFUNDED:
                booking.payment_status = PaymentStatus.REFUNDED

        booking.booking_status = transition.next_state
        if reason:
            booking.notes = f"{booking.notes}\n{audit_reason}" if booking.notes else audit_reason

        metrics_collector.record_booking_transition(event.value, transition.next_state.value)
        logger.info(
            "Booking transitioned",
            extra={
                "booking_id": str(booking.id),
                "event": event.value,
                "from_status": previous.value,
                "to_status": transition.next_state.value,
                "side_effects": [effect.value for effect in transition.side_effects],
                "actor": actor
            }
        )
        return transition

    async def transition(
        self,
        booking_id: UUID,
        event: BookingEvent,
        actor: str,
        reason: str | None = None
    ) -> Booking:
        """
        Run a staff lifecycle command under a row lock and optimistic version.

        Raises:
            NotFoundError: If booking not found
            InvalidStateTransitionError: If the command is not allowed in the current state
            PersistenceConflictError: If concurrent writers won every retry
        """
        operation = f"booking.{event.value}"

        async def attempt() -> None:
            booking = await self.get_booking_or_raise(booking_id, lock=True)
            await self.apply_event(booking, event, actor, reason)
            await self.commit_versioned(booking_id, operation)

        try:
            await retry_on_conflict(self.db, attempt, operation)
        except Exception:
            await self.db.rollback()
            raise

        return await self.get_booking_or_raise(booking_id)

    async def confirm(self, booking_id: UUID, actor: str, reason: str | None = None) -> Booking:
        return await self.transition(booking_id, BookingEvent.CONFIRM, actor, reason)

    async def cancel(self, booking_id: UUID, actor: str, reason: str | None = None) -> Booking:
        return await self.transition(booking_id, BookingEvent.CANCEL, actor, reason)

    async def start_processing(self, booking_id: UUID, actor: str, reason: str | None = None) -> Booking:
        return await self.transition(booking_id, BookingEvent.START_PROCESSING, actor, reason)

    async def complete(self, booking_id: UUID, actor: str, reason: str | None = None) -> Booking:
        return await self.transition(booking_id, BookingEvent.COMPLETE, actor, reason)

    async def refund(self, booking_id: UUID, actor: str, reason: str | None = None) -> Booking:
        return await self.transition(booking_id, BookingEvent.REFUND, actor, reason)
